from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from diag_session.api_client import ChatApiClient
from diag_session.errors import PermissionDeniedError, SendFailedError, describe_failure
from diag_session.events import ChannelEvent, ErrorEvent, MessageEvent, TypingEvent
from diag_session.fallback import FallbackDispatcher
from diag_session.lifecycle import ConfirmCallback, ThreadLifecycleController
from diag_session.models import (
    Message,
    NewThreadRequest,
    Thread,
    ThreadDetail,
    ThreadFilters,
    ThreadPage,
    TokenUsageSnapshot,
)
from diag_session.notifications import Notification, NotificationCenter
from diag_session.presence import DEFAULT_TYPING_TIMEOUT_MS, PresenceTracker
from diag_session.reconciler import MessageReconciler
from diag_session.session_context import SessionContext
from diag_session.token_estimator import TokenEstimator
from diag_session.transport import TransportManager

TransportFactory = Callable[..., TransportManager]
ViewListener = Callable[["SessionView"], None]

CONNECTION_ERROR_NOTICE = "Connection error. Attempting to reconnect..."


@dataclass(frozen=True)
class SessionView:
    thread: Thread | None
    messages: tuple[Message, ...]
    is_loading: bool
    error: str | None
    is_connected: bool
    typing_users: frozenset[str]
    estimated_tokens: int
    remaining_tokens: int | None
    token_usage: TokenUsageSnapshot | None
    notifications: tuple[Notification, ...]


def _keep_token_total(previous: Thread | None, fresh: Thread) -> Thread:
    # A thread's token total only ever grows; never let a late answer lower it.
    if previous is None or previous.id != fresh.id or fresh.total_tokens >= previous.total_tokens:
        return fresh
    return dataclasses.replace(fresh, total_tokens=previous.total_tokens)


class SessionStore:
    """The consultation session as the console sees it.

    Holds the selected thread and its messages and owns the channel, presence
    and token accounting for that thread. Selecting another thread discards
    all of it synchronously; results of calls made for an earlier selection
    are dropped when they arrive.
    """

    def __init__(
        self,
        context: SessionContext,
        api: ChatApiClient,
        *,
        transport_factory: TransportFactory,
        typing_timeout_ms: int = DEFAULT_TYPING_TIMEOUT_MS,
        notifications: NotificationCenter | None = None,
    ) -> None:
        self._context = context
        self._api = api
        self._typing_timeout_ms = typing_timeout_ms
        self._notifications = notifications or NotificationCenter()
        self._reconciler = MessageReconciler()
        self._estimator = TokenEstimator()
        self._fallback = FallbackDispatcher(api, self._reconciler)
        self._lifecycle = ThreadLifecycleController(api, self._notifications)
        self._transport = transport_factory(
            on_event=self._on_channel_event,
            on_connect=self._on_channel_connect,
            on_connection_error=self._on_channel_error,
        )
        self._presence = self._new_presence()
        self._channel_lock = asyncio.Lock()
        self._listeners: list[ViewListener] = []

        self._generation = 0
        self._thread: Thread | None = None
        self._messages: list[Message] = []
        self._is_loading = False
        self._error: str | None = None

    # -- view --

    @property
    def thread(self) -> Thread | None:
        return self._thread

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def is_connected(self) -> bool:
        return self._transport.is_connected

    @property
    def view(self) -> SessionView:
        return SessionView(
            thread=self._thread,
            messages=tuple(self._messages),
            is_loading=self._is_loading,
            error=self._error,
            is_connected=self._transport.is_connected,
            typing_users=self._presence.typing_users,
            estimated_tokens=self._estimator.last_estimate,
            remaining_tokens=self._estimator.remaining,
            token_usage=self._estimator.snapshot,
            notifications=tuple(self._notifications.active),
        )

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def clear_error(self) -> None:
        self._error = None
        self._changed()

    def dismiss_notification(self, notification_id: str) -> bool:
        dismissed = self._notifications.dismiss(notification_id)
        if dismissed:
            self._changed()
        return dismissed

    # -- thread selection --

    async def select_thread(self, thread: Thread | None, history: Iterable[Message] | None = None) -> None:
        generation = self._begin_selection(thread, loading=thread is not None and history is None)
        await self._release_channel()
        if thread is None or generation != self._generation:
            return

        if history is not None:
            self._messages = self._reconciler.replace(history)
            self._changed()
        else:
            detail = await self._load(thread.id, generation)
            if generation != self._generation:
                return
            if detail is not None:
                self._thread = _keep_token_total(self._thread, detail.thread)
                self._messages = self._reconciler.replace(detail.messages)
                self._changed()

        await self._open_channel(thread.id, generation)

    async def open_thread(self, thread_id: str) -> Thread | None:
        generation = self._begin_selection(None, loading=True)
        await self._release_channel()
        if generation != self._generation:
            return None

        detail = await self._load(thread_id, generation)
        if detail is None or generation != self._generation:
            return None
        self._thread = detail.thread
        self._messages = self._reconciler.replace(detail.messages)
        self._changed()

        await self._open_channel(thread_id, generation)
        return detail.thread

    async def create_session(
        self,
        license_plate: str,
        *,
        vehicle_id: str | None = None,
        vehicle_km: int | None = None,
        error_codes: str | None = None,
        vehicle_context: str | None = None,
    ) -> Thread:
        request = NewThreadRequest(
            license_plate=license_plate,
            workshop_id=self._context.require_workshop(),
            vehicle_id=vehicle_id,
            vehicle_km=vehicle_km,
            error_codes=error_codes,
            vehicle_context=vehicle_context,
        )
        thread = await self._api.create_thread(request)
        await self.select_thread(thread, history=[])
        return thread

    async def list_threads(self, filters: ThreadFilters | None = None) -> ThreadPage:
        filters = filters or ThreadFilters()
        if filters.workshop_id is None:
            filters = dataclasses.replace(filters, workshop_id=self._context.workshop_id)
        return await self._api.list_threads(filters)

    # -- sending --

    async def send_message(self, content: str, attachments: Any = None) -> bool:
        thread = self._thread
        if thread is None or not content.strip():
            return False
        try:
            self._context.require_send()
        except PermissionDeniedError as ex:
            logger.warning(f"Send refused for thread {thread.id}: {ex}")
            self._error = str(ex)
            self._changed()
            return False

        generation = self._generation
        self._error = None
        self._estimator.record_estimate(content)
        self._changed()

        if self._transport.is_connected:
            try:
                await self._transport.send(content, attachments)
            except Exception as ex:
                logger.error(f"Channel send failed for thread {thread.id}: {ex}")
                if generation == self._generation:
                    self._error = describe_failure(ex, "Failed to send message")
                    self._changed()
                return False
            return True

        try:
            exchange = await self._fallback.dispatch(thread.id, content, attachments)
        except SendFailedError as ex:
            if generation == self._generation:
                self._error = str(ex)
                self._changed()
            return False

        if generation != self._generation:
            logger.debug(f"Dropping fallback result for thread {thread.id}; no longer selected")
            return False
        self._messages = self._fallback.merge(self._messages, exchange)
        self._changed()
        return True

    async def notify_typing(self) -> None:
        if self._thread is not None:
            await self._transport.send_typing()

    # -- lifecycle --

    async def update_thread_status(self, status: str, is_resolved: bool | None = None) -> bool:
        thread = self._thread
        if thread is None:
            return False
        updated = await self._lifecycle.update_status(thread, status, is_resolved)
        if updated is None:
            self._changed()
            return False
        if self._thread is None or self._thread.id != updated.id:
            logger.debug(f"Status update for thread {updated.id} arrived after it was deselected")
            self._changed()
            return True
        self._thread = _keep_token_total(self._thread, updated)
        self._changed()
        return True

    async def delete_thread(self, confirm: ConfirmCallback) -> bool:
        thread = self._thread
        if thread is None:
            return False
        deleted = await self._lifecycle.delete(thread, confirm)
        if deleted and self._thread is not None and self._thread.id == thread.id:
            await self.select_thread(None)
        else:
            self._changed()
        return deleted

    async def close(self) -> None:
        self._generation += 1
        self._thread = None
        self._messages = []
        self._presence.clear()
        try:
            async with self._channel_lock:
                await self._transport.close()
        finally:
            try:
                await self._api.close()
            finally:
                self._context.close()
                self._listeners.clear()

    # -- channel callbacks --

    def _on_channel_event(self, thread_id: str, event: ChannelEvent) -> None:
        thread = self._thread
        if thread is None or thread.id != thread_id:
            logger.debug(f"Dropping {type(event).__name__} for thread {thread_id}; not selected")
            return

        if isinstance(event, MessageEvent):
            self._messages = self._reconciler.apply(self._messages, event)
            changes: dict[str, Any] = {}
            if event.total_tokens is not None and event.total_tokens > thread.total_tokens:
                changes["total_tokens"] = event.total_tokens
            if event.last_message_at is not None:
                changes["last_message_at"] = event.last_message_at
            if changes:
                self._thread = dataclasses.replace(thread, **changes)
            self._estimator.handle(event)
        elif isinstance(event, TypingEvent):
            self._presence.handle(event)
        elif isinstance(event, ErrorEvent):
            self._error = event.message or "An error occurred"
            logger.error(f"Channel error for thread {thread_id}: {self._error} (error_type={event.error_type})")
        self._changed()

    def _on_channel_connect(self, thread_id: str) -> None:
        if self._thread is None or self._thread.id != thread_id:
            return
        if self._error == CONNECTION_ERROR_NOTICE:
            self._error = None
        self._changed()

    def _on_channel_error(self, thread_id: str, ex: Exception) -> None:
        if self._thread is None or self._thread.id != thread_id:
            return
        self._error = CONNECTION_ERROR_NOTICE
        self._changed()

    # -- internals --

    def _begin_selection(self, thread: Thread | None, *, loading: bool) -> int:
        self._generation += 1
        self._presence.clear()
        self._presence = self._new_presence()
        self._thread = thread
        self._messages = []
        self._error = None
        self._is_loading = loading
        logger.info(f"Selected thread {thread.id if thread else None}")
        self._changed()
        return self._generation

    async def _load(self, thread_id: str, generation: int) -> ThreadDetail | None:
        try:
            detail = await self._api.get_thread(thread_id)
        except Exception as ex:
            logger.error(f"Failed to load messages for thread {thread_id}: {ex}")
            if generation == self._generation:
                self._is_loading = False
                self._error = describe_failure(ex, "Failed to load messages")
                self._changed()
            return None
        if generation == self._generation:
            self._is_loading = False
        logger.debug(f"Loaded {len(detail.messages)} message(s) for thread {thread_id}")
        return detail

    async def _release_channel(self) -> None:
        async with self._channel_lock:
            await self._transport.disconnect()

    async def _open_channel(self, thread_id: str, generation: int) -> None:
        async with self._channel_lock:
            if generation != self._generation:
                return
            await self._transport.connect(thread_id)

    def _new_presence(self) -> PresenceTracker:
        return PresenceTracker(timeout_ms=self._typing_timeout_ms, on_change=self._changed)

    def _changed(self) -> None:
        if not self._listeners:
            return
        view = self.view
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("Session view listener failed")
