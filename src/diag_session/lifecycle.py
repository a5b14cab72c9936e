from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable

from loguru import logger

from diag_session.api_client import ChatApiClient
from diag_session.errors import describe_failure
from diag_session.models import THREAD_STATUSES, Thread
from diag_session.notifications import NotificationCenter

ConfirmCallback = Callable[[str], bool | Awaitable[bool]]

_STATUS_LABELS = {
    "active": "In Progress",
    "completed": "Completed",
    "archived": "Archived",
}


class ThreadLifecycleController:
    """Status changes and deletion of a thread, confirmed by the server.

    Nothing here updates a thread optimistically: callers receive the server's
    version of the thread after a successful call and ``None`` otherwise, so a
    failed call leaves their prior state untouched.
    """

    def __init__(self, api: ChatApiClient, notifications: NotificationCenter) -> None:
        self._api = api
        self._notifications = notifications
        self._pending: dict[str, int] = {}

    async def update_status(
        self,
        thread: Thread,
        status: str,
        is_resolved: bool | None = None,
    ) -> Thread | None:
        if status not in THREAD_STATUSES:
            raise ValueError(f"Unknown thread status: {status!r}. Expected one of {THREAD_STATUSES}")
        resolved = is_resolved if is_resolved is not None else status == "completed"

        in_flight = self._pending.get(thread.id, 0)
        if in_flight:
            # Overlapping updates are not serialized; the last response wins.
            logger.debug(f"Status update for thread {thread.id} overlaps {in_flight} in-flight update(s)")
        self._pending[thread.id] = in_flight + 1
        try:
            updated = await self._api.update_thread(thread.id, status=status, is_resolved=resolved)
        except Exception as ex:
            logger.error(f"Failed to update status of thread {thread.id}: {ex}")
            self._notifications.show_critical(describe_failure(ex, "Failed to update chat status"), "Error")
            return None
        finally:
            self._release(thread.id)

        self._notifications.show_success(
            f"Chat status updated to {_STATUS_LABELS[status]}",
            "Status Updated",
        )
        return updated

    async def delete(self, thread: Thread, confirm: ConfirmCallback) -> bool:
        prompt = (
            f"Are you sure you want to delete this chat history for {thread.license_plate}? "
            "This action cannot be undone."
        )
        answer = confirm(prompt)
        if inspect.isawaitable(answer):
            answer = await answer
        if not answer:
            logger.debug(f"Deletion of thread {thread.id} declined")
            return False

        try:
            await self._api.delete_thread(thread.id)
        except Exception as ex:
            logger.error(f"Failed to delete thread {thread.id}: {ex}")
            self._notifications.show_critical(describe_failure(ex, "Failed to delete chat history"), "Error")
            return False

        self._notifications.show_success("Chat history deleted successfully", "Deleted")
        return True

    def _release(self, thread_id: str) -> None:
        remaining = self._pending.get(thread_id, 1) - 1
        if remaining <= 0:
            self._pending.pop(thread_id, None)
        else:
            self._pending[thread_id] = remaining
