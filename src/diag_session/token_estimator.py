from __future__ import annotations

import math

from diag_session.events import ChannelEvent, MessageEvent
from diag_session.models import TokenUsageSnapshot

CHARS_PER_TOKEN = 4
PER_TURN_OVERHEAD_TOKENS = 800


def estimate_tokens(content: str) -> int:
    """Rough, non-billing cost of sending ``content`` as one turn."""
    return math.ceil(len(content) / CHARS_PER_TOKEN) + PER_TURN_OVERHEAD_TOKENS


class TokenEstimator:
    def __init__(self) -> None:
        self._last_estimate = 0
        self._snapshot: TokenUsageSnapshot | None = None

    @property
    def last_estimate(self) -> int:
        return self._last_estimate

    @property
    def snapshot(self) -> TokenUsageSnapshot | None:
        return self._snapshot

    @property
    def remaining(self) -> int | None:
        if self._snapshot is None or self._snapshot.user is None:
            return None
        return self._snapshot.user.daily_remaining

    def estimate(self, content: str) -> int:
        return estimate_tokens(content)

    def record_estimate(self, content: str) -> int:
        self._last_estimate = estimate_tokens(content)
        return self._last_estimate

    def apply_snapshot(self, snapshot: TokenUsageSnapshot) -> None:
        self._snapshot = snapshot

    def handle(self, event: ChannelEvent) -> None:
        if isinstance(event, MessageEvent) and event.token_usage is not None:
            self.apply_snapshot(event.token_usage)
