from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager
from typing import Any
from urllib.parse import urlencode

import aiohttp
from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, wait_exponential

from diag_session.errors import ChannelNotConnectedError
from diag_session.events import ChannelEvent, decode_frame

ConnectFactory = Callable[[str], AbstractAsyncContextManager[Any]]


class ChannelDroppedError(Exception):
    pass


class TransportManager:
    """Owns the single real-time channel for the selected thread.

    Each ``connect`` starts a new generation; frames read by a channel of an
    older generation are discarded before they reach ``on_event``.
    """

    _CHANNEL_PATH = "/api/v1/chat/ws"

    def __init__(
        self,
        ws_base_url: str,
        *,
        on_event: Callable[[str, ChannelEvent], None],
        on_connect: Callable[[str], None] | None = None,
        on_connection_error: Callable[[str, Exception], None] | None = None,
        access_token: str | None = None,
        heartbeat_seconds: float = 20.0,
        reconnect_min_seconds: float = 1.0,
        reconnect_max_seconds: float = 30.0,
        max_reconnect_attempts: int = 0,
        connect_factory: ConnectFactory | None = None,
    ) -> None:
        self._ws_base_url = ws_base_url.rstrip("/")
        self._on_event = on_event
        self._on_connect = on_connect
        self._on_connection_error = on_connection_error
        self._access_token = access_token
        self._heartbeat_seconds = heartbeat_seconds
        self._reconnect_min_seconds = reconnect_min_seconds
        self._reconnect_max_seconds = reconnect_max_seconds
        self._max_reconnect_attempts = max(0, max_reconnect_attempts)
        self._connect_factory = connect_factory or self._aiohttp_connect
        self._session: aiohttp.ClientSession | None = None
        self._thread_id: str | None = None
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._ws: Any = None
        self._connected = asyncio.Event()
        self._consecutive_failures = 0

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def thread_id(self) -> str | None:
        return self._thread_id

    async def connect(self, thread_id: str) -> None:
        await self.disconnect()
        self._generation += 1
        self._thread_id = thread_id
        self._consecutive_failures = 0
        self._task = asyncio.create_task(self._run(thread_id, self._generation))
        logger.debug(f"Channel task started for thread {thread_id} (generation {self._generation})")

    async def disconnect(self) -> None:
        task = self._task
        ws = self._ws
        previous = self._thread_id
        self._generation += 1
        self._task = None
        self._ws = None
        self._thread_id = None
        self._connected.clear()

        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.bind(thread=previous or "-").exception("Channel task ended with an error")
        if previous is not None:
            logger.info(f"Channel for thread {previous} disconnected")

    async def close(self) -> None:
        await self.disconnect()
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def wait_connected(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def send(self, content: str, attachments: Any = None) -> None:
        ws = self._require_channel()
        await ws.send_json(
            {
                "type": "message",
                "content": content,
                "attachments": attachments if attachments is not None else [],
            }
        )

    async def send_typing(self) -> None:
        if not self.is_connected or self._ws is None:
            return
        try:
            await self._ws.send_json({"type": "typing"})
        except (aiohttp.ClientError, ConnectionError) as ex:
            logger.debug(f"Typing signal not delivered: {ex}")

    def _require_channel(self) -> Any:
        if not self.is_connected or self._ws is None:
            raise ChannelNotConnectedError("Real-time channel is not connected")
        return self._ws

    def _channel_url(self, thread_id: str) -> str:
        url = f"{self._ws_base_url}{self._CHANNEL_PATH}/{thread_id}"
        if self._access_token:
            url += "?" + urlencode({"token": self._access_token})
        return url

    @contextlib.asynccontextmanager
    async def _aiohttp_connect(self, url: str) -> AsyncIterator[aiohttp.ClientWebSocketResponse]:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        async with self._session.ws_connect(url, heartbeat=self._heartbeat_seconds) as ws:
            yield ws

    def _should_stop(self, retry_state) -> bool:
        if self._max_reconnect_attempts == 0:
            return False
        return self._consecutive_failures >= self._max_reconnect_attempts

    def _before_reconnect(self, retry_state) -> None:
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Channel for thread {self._thread_id} dropped. Reconnecting in {wait:.1f}s "
            f"(consecutive failures: {self._consecutive_failures})..."
        )

    async def _run(self, thread_id: str, generation: int) -> None:
        log = logger.bind(thread=thread_id)
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(ChannelDroppedError),
            wait=wait_exponential(
                multiplier=self._reconnect_min_seconds,
                min=self._reconnect_min_seconds,
                max=self._reconnect_max_seconds,
            ),
            stop=self._should_stop,
            before_sleep=self._before_reconnect,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    try:
                        await self._run_channel(thread_id, generation)
                    except ChannelDroppedError as ex:
                        if generation != self._generation:
                            return
                        self._consecutive_failures += 1
                        self._report_drop(thread_id, generation, ex)
                        raise
        except ChannelDroppedError:
            log.error(
                f"Giving up on channel for thread {thread_id} after "
                f"{self._consecutive_failures} consecutive failures"
            )

    async def _run_channel(self, thread_id: str, generation: int) -> None:
        log = logger.bind(thread=thread_id)
        try:
            async with self._connect_factory(self._channel_url(thread_id)) as ws:
                if generation != self._generation:
                    return
                self._ws = ws
                self._consecutive_failures = 0
                self._connected.set()
                log.info("Channel connected")
                if self._on_connect is not None:
                    self._on_connect(thread_id)

                async for msg in ws:
                    if generation != self._generation:
                        return
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        self._dispatch(thread_id, generation, msg.data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        raise ChannelDroppedError(f"Channel error: {ws.exception()}")
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as ex:
            raise ChannelDroppedError(f"{type(ex).__name__}: {ex}") from ex
        finally:
            if generation == self._generation:
                self._ws = None
                self._connected.clear()

        if generation == self._generation:
            raise ChannelDroppedError("Channel closed by server")

    def _dispatch(self, thread_id: str, generation: int, raw: str) -> None:
        log = logger.bind(thread=thread_id)
        try:
            event = decode_frame(raw)
        except Exception:
            log.exception("Dropping channel frame that failed to decode")
            return
        if event is None:
            return
        if generation != self._generation or thread_id != self._thread_id:
            log.debug(f"Discarding {type(event).__name__} for stale thread {thread_id}")
            return
        try:
            self._on_event(thread_id, event)
        except Exception:
            log.exception("Channel event handler failed")

    def _report_drop(self, thread_id: str, generation: int, ex: Exception) -> None:
        if generation != self._generation:
            return
        logger.bind(thread=thread_id).warning(f"Channel lost: {ex}")
        if self._on_connection_error is not None:
            self._on_connection_error(thread_id, ex)
