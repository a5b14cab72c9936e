import asyncio
import dataclasses
import unittest
from unittest.mock import AsyncMock, MagicMock

from diag_session.errors import ApiError
from diag_session.lifecycle import ThreadLifecycleController
from diag_session.notifications import NotificationCenter

from tests.session.base import make_thread


class UpdateStatusTests(unittest.TestCase):
    def setUp(self) -> None:
        self._api = AsyncMock()
        self._notifications = NotificationCenter()
        self._controller = ThreadLifecycleController(self._api, self._notifications)
        self._thread = make_thread("t-1", license_plate="1234ABC")

    def test_success_returns_server_thread_and_notifies(self) -> None:
        server_thread = dataclasses.replace(self._thread, status="archived", is_resolved=False)
        self._api.update_thread.return_value = server_thread

        result = asyncio.run(self._controller.update_status(self._thread, "archived"))

        self.assertIs(server_thread, result)
        self._api.update_thread.assert_awaited_once_with("t-1", status="archived", is_resolved=False)
        [notification] = self._notifications.active
        self.assertEqual("success", notification.level)
        self.assertEqual("Status Updated", notification.title)
        self.assertEqual("Chat status updated to Archived", notification.message)

    def test_completed_defaults_to_resolved(self) -> None:
        self._api.update_thread.return_value = self._thread
        asyncio.run(self._controller.update_status(self._thread, "completed"))
        self._api.update_thread.assert_awaited_once_with("t-1", status="completed", is_resolved=True)

    def test_explicit_resolution_wins(self) -> None:
        self._api.update_thread.return_value = self._thread
        asyncio.run(self._controller.update_status(self._thread, "active", is_resolved=True))
        self._api.update_thread.assert_awaited_once_with("t-1", status="active", is_resolved=True)
        self.assertEqual("Chat status updated to In Progress", self._notifications.active[0].message)

    def test_failure_returns_none_and_shows_critical(self) -> None:
        self._api.update_thread.side_effect = ApiError("HTTP 403", status_code=403, detail="Not allowed")

        result = asyncio.run(self._controller.update_status(self._thread, "completed"))

        self.assertIsNone(result)
        self.assertEqual("active", self._thread.status)
        [notification] = self._notifications.active
        self.assertEqual("critical", notification.level)
        self.assertEqual("Not allowed", notification.message)
        self.assertEqual({}, self._controller._pending)

    def test_unknown_status_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            asyncio.run(self._controller.update_status(self._thread, "closed"))
        self._api.update_thread.assert_not_awaited()

    def test_overlapping_updates_both_complete(self) -> None:
        async def scenario() -> list:
            gate = asyncio.Event()

            async def slow_update(thread_id, *, status, is_resolved):
                await gate.wait()
                return dataclasses.replace(self._thread, status=status, is_resolved=is_resolved)

            self._api.update_thread.side_effect = slow_update
            first = asyncio.create_task(self._controller.update_status(self._thread, "completed"))
            second = asyncio.create_task(self._controller.update_status(self._thread, "archived"))
            await asyncio.sleep(0)
            self.assertEqual(2, self._controller._pending["t-1"])
            gate.set()
            return await asyncio.gather(first, second)

        first, second = asyncio.run(scenario())
        self.assertEqual("completed", first.status)
        self.assertEqual("archived", second.status)
        self.assertEqual({}, self._controller._pending)


class DeleteTests(unittest.TestCase):
    def setUp(self) -> None:
        self._api = AsyncMock()
        self._notifications = NotificationCenter()
        self._controller = ThreadLifecycleController(self._api, self._notifications)
        self._thread = make_thread("t-1", license_plate="1234ABC")

    def test_confirm_prompt_names_the_plate(self) -> None:
        confirm = MagicMock(return_value=False)
        self.assertFalse(asyncio.run(self._controller.delete(self._thread, confirm)))
        confirm.assert_called_once_with(
            "Are you sure you want to delete this chat history for 1234ABC? This action cannot be undone."
        )
        self._api.delete_thread.assert_not_awaited()
        self.assertEqual([], self._notifications.active)

    def test_async_confirm_then_delete(self) -> None:
        confirm = AsyncMock(return_value=True)
        self.assertTrue(asyncio.run(self._controller.delete(self._thread, confirm)))
        self._api.delete_thread.assert_awaited_once_with("t-1")
        [notification] = self._notifications.active
        self.assertEqual("Deleted", notification.title)
        self.assertEqual("Chat history deleted successfully", notification.message)

    def test_delete_failure_shows_critical(self) -> None:
        self._api.delete_thread.side_effect = RuntimeError("boom")
        self.assertFalse(asyncio.run(self._controller.delete(self._thread, lambda prompt: True)))
        [notification] = self._notifications.active
        self.assertEqual("critical", notification.level)
        self.assertEqual("Failed to delete chat history", notification.message)


if __name__ == "__main__":
    unittest.main()
