from __future__ import annotations

import asyncio
from collections.abc import Callable

from loguru import logger

from diag_session.events import ChannelEvent, TypingEvent
from diag_session.models import TypingSignal

DEFAULT_TYPING_TIMEOUT_MS = 3000


class PresenceTracker:
    """Set of user ids currently typing, each with its own expiry timer.

    Must be used from within a running event loop; timers are scheduled on it.
    """

    def __init__(
        self,
        *,
        timeout_ms: int = DEFAULT_TYPING_TIMEOUT_MS,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._timeout_seconds = max(0, timeout_ms) / 1000
        self._on_change = on_change
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._expires_at: dict[str, float] = {}

    @property
    def typing_users(self) -> frozenset[str]:
        return frozenset(self._timers)

    @property
    def signals(self) -> list[TypingSignal]:
        return [TypingSignal(user_id=uid, expires_at=at) for uid, at in self._expires_at.items()]

    def handle(self, event: ChannelEvent) -> None:
        if isinstance(event, TypingEvent):
            self.on_signal(event.user_id)

    def on_signal(self, user_id: str) -> None:
        loop = asyncio.get_running_loop()
        existing = self._timers.pop(user_id, None)
        if existing is not None:
            existing.cancel()
        self._timers[user_id] = loop.call_later(self._timeout_seconds, self._expire, user_id)
        self._expires_at[user_id] = loop.time() + self._timeout_seconds
        if existing is None:
            self._notify()

    def clear(self) -> None:
        if not self._timers:
            return
        for handle in self._timers.values():
            handle.cancel()
        logger.debug(f"Cleared {len(self._timers)} typing signal(s)")
        self._timers.clear()
        self._expires_at.clear()
        self._notify()

    def _expire(self, user_id: str) -> None:
        if self._timers.pop(user_id, None) is None:
            return
        self._expires_at.pop(user_id, None)
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
