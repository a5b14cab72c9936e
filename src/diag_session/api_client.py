from __future__ import annotations

from typing import Any

import httpx
from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from diag_session.errors import ApiError
from diag_session.models import (
    Message,
    NewThreadRequest,
    Thread,
    ThreadDetail,
    ThreadFilters,
    ThreadPage,
)

_THREADS_PATH = "/api/v1/chat/threads"
_DEFAULT_TIMEOUT_SECONDS = 30.0
_READ_ATTEMPTS = 3


def _on_retry(retry_state) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"{reason}. Retrying in {wait:.1f}s (attempt {attempt}/{_READ_ATTEMPTS})...")


def _extract_detail(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    detail = body.get("detail")
    if isinstance(detail, str) and detail.strip():
        return detail.strip()
    if isinstance(detail, list):
        parts = [str(item.get("msg", "")) for item in detail if isinstance(item, dict)]
        joined = "; ".join(p for p in parts if p)
        return joined or None
    return None


class ChatApiClient:
    """Client for the thread/message persistence API.

    Reads are retried on transport failures; writes are sent exactly once so a
    retried request can never post the same message twice.
    """

    def __init__(
        self,
        base_url: str,
        *,
        access_token: str | None = None,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
        retry_min_seconds: float = 0.5,
        retry_max_seconds: float = 8.0,
    ) -> None:
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_seconds,
        )
        self._retry_kwargs = {
            "retry": retry_if_exception_type(httpx.TransportError),
            "wait": wait_exponential(multiplier=retry_min_seconds, min=retry_min_seconds, max=retry_max_seconds),
            "stop": stop_after_attempt(_READ_ATTEMPTS),
            "before_sleep": _on_retry,
            "reraise": True,
        }

    async def close(self) -> None:
        await self._client.aclose()

    async def get_thread(self, thread_id: str) -> ThreadDetail:
        response = await self._request("GET", f"{_THREADS_PATH}/{thread_id}", idempotent=True)
        return ThreadDetail.from_dict(response.json())

    async def list_threads(self, filters: ThreadFilters | None = None) -> ThreadPage:
        params = (filters or ThreadFilters()).to_params()
        response = await self._request("GET", _THREADS_PATH, idempotent=True, params=params)
        return ThreadPage.from_dict(response.json())

    async def create_thread(self, request: NewThreadRequest) -> Thread:
        response = await self._request("POST", _THREADS_PATH, json=request.to_payload())
        thread = Thread.from_dict(response.json())
        logger.info(f"Created thread {thread.id} for {thread.license_plate}")
        return thread

    async def send_message(
        self,
        thread_id: str,
        content: str,
        attachments: Any = None,
    ) -> tuple[Message, Message]:
        payload = {"content": content, "attachments": attachments if attachments is not None else {}}
        response = await self._request("POST", f"{_THREADS_PATH}/{thread_id}/messages", json=payload)
        body = response.json()
        return Message.from_dict(body["user_message"]), Message.from_dict(body["assistant_message"])

    async def update_thread(
        self,
        thread_id: str,
        *,
        status: str | None = None,
        is_resolved: bool | None = None,
    ) -> Thread:
        payload: dict[str, Any] = {}
        if status is not None:
            payload["status"] = status
        if is_resolved is not None:
            payload["is_resolved"] = is_resolved
        response = await self._request("PUT", f"{_THREADS_PATH}/{thread_id}", json=payload)
        return Thread.from_dict(response.json())

    async def delete_thread(self, thread_id: str) -> None:
        await self._request("DELETE", f"{_THREADS_PATH}/{thread_id}")
        logger.info(f"Deleted thread {thread_id}")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        idempotent: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        logger.debug(f"API request: {method} {path}")
        try:
            if idempotent:
                async for attempt in AsyncRetrying(**self._retry_kwargs):
                    with attempt:
                        response = await self._client.request(method, path, **kwargs)
            else:
                response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as ex:
            raise ApiError(f"{method} {path} failed: {type(ex).__name__}: {ex}") from ex

        if response.status_code >= 400:
            raise ApiError(
                f"HTTP {response.status_code} from {method} {path}",
                status_code=response.status_code,
                detail=_extract_detail(response),
            )
        return response
