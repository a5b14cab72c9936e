from __future__ import annotations

from collections.abc import Iterable

from diag_session.events import ChannelEvent, MessageEvent
from diag_session.models import Message


def merge_messages(current: list[Message], incoming: Iterable[Message]) -> list[Message]:
    """Append the messages of ``incoming`` whose id is not already known.

    Known messages keep their position; new ones are appended in the order
    they appear in ``incoming``. Returns ``current`` itself when nothing is new.
    """
    seen = {m.id for m in current}
    fresh: list[Message] = []
    for message in incoming:
        if message.id in seen:
            continue
        seen.add(message.id)
        fresh.append(message)
    if not fresh:
        return current
    return [*current, *fresh]


def replace_history(messages: Iterable[Message]) -> list[Message]:
    return merge_messages([], messages)


class MessageReconciler:
    def apply(self, messages: list[Message], event: ChannelEvent) -> list[Message]:
        if isinstance(event, MessageEvent):
            return merge_messages(messages, event.messages)
        return messages

    def merge(self, messages: list[Message], incoming: Iterable[Message]) -> list[Message]:
        return merge_messages(messages, incoming)

    def replace(self, history: Iterable[Message]) -> list[Message]:
        return replace_history(history)
