import asyncio
import unittest

from diag_session.events import MessageEvent, TypingEvent
from diag_session.presence import DEFAULT_TYPING_TIMEOUT_MS, PresenceTracker

from tests.session.base import make_message


class PresenceTrackerTests(unittest.TestCase):
    def test_default_timeout_is_three_seconds(self) -> None:
        self.assertEqual(3000, DEFAULT_TYPING_TIMEOUT_MS)

    def test_signal_expires_after_timeout(self) -> None:
        changes: list[frozenset[str]] = []

        async def scenario() -> None:
            tracker = PresenceTracker(timeout_ms=100, on_change=lambda: changes.append(tracker.typing_users))
            tracker.on_signal("u-2")
            self.assertEqual(frozenset({"u-2"}), tracker.typing_users)
            expected = asyncio.get_running_loop().time() + 0.1
            self.assertAlmostEqual(expected, tracker.signals[0].expires_at, delta=0.02)
            await asyncio.sleep(0.15)
            self.assertEqual(frozenset(), tracker.typing_users)
            self.assertEqual([], tracker.signals)

        asyncio.run(scenario())
        self.assertEqual([frozenset({"u-2"}), frozenset()], changes)

    def test_renewal_restarts_the_timer(self) -> None:
        async def scenario() -> None:
            tracker = PresenceTracker(timeout_ms=100)
            tracker.handle(TypingEvent(user_id="u-2"))
            await asyncio.sleep(0.06)
            tracker.handle(TypingEvent(user_id="u-2"))
            await asyncio.sleep(0.06)
            self.assertIn("u-2", tracker.typing_users)
            await asyncio.sleep(0.08)
            self.assertNotIn("u-2", tracker.typing_users)

        asyncio.run(scenario())

    def test_users_expire_independently(self) -> None:
        async def scenario() -> None:
            tracker = PresenceTracker(timeout_ms=100)
            tracker.on_signal("u-2")
            await asyncio.sleep(0.06)
            tracker.on_signal("u-3")
            await asyncio.sleep(0.06)
            self.assertEqual(frozenset({"u-3"}), tracker.typing_users)

        asyncio.run(scenario())

    def test_clear_cancels_timers(self) -> None:
        calls: list[int] = []

        async def scenario() -> None:
            tracker = PresenceTracker(timeout_ms=50, on_change=lambda: calls.append(1))
            tracker.on_signal("u-2")
            tracker.on_signal("u-3")
            tracker.clear()
            self.assertEqual(frozenset(), tracker.typing_users)
            await asyncio.sleep(0.08)

        asyncio.run(scenario())
        # two adds and one clear; the cancelled timers never fire
        self.assertEqual(3, len(calls))

    def test_non_typing_events_are_ignored(self) -> None:
        async def scenario() -> None:
            tracker = PresenceTracker()
            tracker.handle(MessageEvent(user_message=make_message("m-1"), assistant_message=make_message("m-2")))
            self.assertEqual(frozenset(), tracker.typing_users)

        asyncio.run(scenario())


if __name__ == "__main__":
    unittest.main()
