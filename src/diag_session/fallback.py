from __future__ import annotations

from typing import Any

from loguru import logger

from diag_session.api_client import ChatApiClient
from diag_session.errors import SendFailedError, describe_failure
from diag_session.models import Message
from diag_session.reconciler import MessageReconciler

_GENERIC_SEND_FAILURE = "Failed to send message"


class FallbackDispatcher:
    """Sends a message over request/response when no channel is connected.

    No push follows a REST send, so the returned user/assistant pair is merged
    into the message list here, through the same deduplicating reconciler the
    channel uses.
    """

    def __init__(self, api: ChatApiClient, reconciler: MessageReconciler) -> None:
        self._api = api
        self._reconciler = reconciler

    async def dispatch(
        self,
        thread_id: str,
        content: str,
        attachments: Any = None,
    ) -> tuple[Message, Message]:
        logger.info(f"Channel unavailable; sending message for thread {thread_id} via REST")
        try:
            return await self._api.send_message(thread_id, content, attachments)
        except Exception as ex:
            logger.error(f"Fallback send failed for thread {thread_id}: {ex}")
            raise SendFailedError(describe_failure(ex, _GENERIC_SEND_FAILURE)) from ex

    def merge(self, messages: list[Message], exchange: tuple[Message, Message]) -> list[Message]:
        user_message, assistant_message = exchange
        return self._reconciler.merge(messages, [user_message, assistant_message])
