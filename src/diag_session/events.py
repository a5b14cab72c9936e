"""Typed events decoded from the real-time channel.

Every frame pushed by the server is a JSON object tagged by ``type``. The
three kinds the session engine understands are modelled as frozen
dataclasses and grouped under ``ChannelEvent``; frames with any other tag
decode to ``None`` so newer servers can add kinds without breaking older
clients.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Union

from loguru import logger

from diag_session.models import Message, TokenUsageSnapshot


@dataclass(frozen=True)
class MessageEvent:
    user_message: Message
    assistant_message: Message
    total_tokens: int | None = None
    last_message_at: str | None = None
    token_usage: TokenUsageSnapshot | None = None

    @property
    def messages(self) -> list[Message]:
        return [self.user_message, self.assistant_message]


@dataclass(frozen=True)
class TypingEvent:
    user_id: str


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    error_type: str | None = None


ChannelEvent = Union[MessageEvent, TypingEvent, ErrorEvent]


def parse_channel_event(frame: dict) -> ChannelEvent | None:
    kind = frame.get("type")
    if kind == "message":
        return _parse_message_event(frame)
    if kind == "typing":
        user_id = frame.get("user_id")
        if user_id is None:
            return None
        return TypingEvent(user_id=str(user_id))
    if kind == "error":
        return ErrorEvent(
            message=str(frame.get("message") or ""),
            error_type=frame.get("error_type"),
        )
    logger.debug(f"Ignoring channel frame with unknown type: {kind!r}")
    return None


def decode_frame(raw: str) -> ChannelEvent | None:
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Dropping malformed channel frame ({len(raw)} chars)")
        return None
    if not isinstance(frame, dict):
        return None
    return parse_channel_event(frame)


def _parse_message_event(frame: dict) -> MessageEvent | None:
    user_data = frame.get("user_message")
    assistant_data = frame.get("assistant_message")
    # A push without both halves of the exchange carries nothing to show.
    if not isinstance(user_data, dict) or not isinstance(assistant_data, dict):
        return None

    thread = frame.get("thread") if isinstance(frame.get("thread"), dict) else {}
    total_tokens = thread.get("total_tokens")
    usage = frame.get("token_usage")
    try:
        return MessageEvent(
            user_message=Message.from_dict(user_data),
            assistant_message=Message.from_dict(assistant_data),
            total_tokens=int(total_tokens) if total_tokens is not None else None,
            last_message_at=thread.get("last_message_at"),
            token_usage=TokenUsageSnapshot.from_dict(usage) if isinstance(usage, dict) else None,
        )
    except (KeyError, TypeError, ValueError) as ex:
        logger.warning(f"Dropping message frame with unusable payload: {type(ex).__name__}: {ex}")
        return None
