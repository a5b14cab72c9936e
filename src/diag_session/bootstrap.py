from __future__ import annotations

import functools
from dataclasses import dataclass

from diag_session.api_client import ChatApiClient
from diag_session.app_config import AppConfig, RuntimeEnv
from diag_session.logging_config import setup_logging
from diag_session.session_context import CapabilityFlags, SessionContext
from diag_session.session_store import SessionStore
from diag_session.transport import TransportManager


@dataclass
class AppRuntime:
    store: SessionStore
    api: ChatApiClient
    context: SessionContext
    log_descriptions: list[str]

    async def close(self) -> None:
        await self.store.close()


async def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    context = SessionContext(
        workshop_id=app.workshop_id,
        user_id=app.user_id,
        access_token=env.access_token,
        capabilities=CapabilityFlags(can_send_messages=app.can_send_messages),
    )
    api = ChatApiClient(
        app.api_base_url,
        access_token=env.access_token,
        timeout_seconds=app.request_timeout_seconds,
    )
    transport_factory = functools.partial(
        TransportManager,
        app.ws_base_url,
        access_token=env.access_token,
        heartbeat_seconds=app.heartbeat_seconds,
        reconnect_min_seconds=app.reconnect_min_seconds,
        reconnect_max_seconds=app.reconnect_max_seconds,
        max_reconnect_attempts=app.max_reconnect_attempts,
    )
    store = SessionStore(
        context,
        api,
        transport_factory=transport_factory,
        typing_timeout_ms=app.typing_timeout_ms,
    )

    return AppRuntime(
        store=store,
        api=api,
        context=context,
        log_descriptions=log_descriptions,
    )
