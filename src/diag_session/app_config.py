from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class RuntimeEnv:
    access_token: str | None
    access_token_env_var: str


@dataclass
class AppConfig:
    api_base_url: str
    ws_base_url: str
    workshop_id: str | None
    user_id: str | None
    can_send_messages: bool
    typing_timeout_ms: int
    heartbeat_seconds: float
    reconnect_min_seconds: float
    reconnect_max_seconds: float
    max_reconnect_attempts: int
    request_timeout_seconds: float
    log_level: str
    log_consumers: list | None


def load_json_config(path: Path | None = None) -> dict:
    config_path = path or Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _derive_ws_base_url(api_base_url: str) -> str:
    if api_base_url.startswith("https://"):
        return "wss://" + api_base_url[len("https://"):]
    if api_base_url.startswith("http://"):
        return "ws://" + api_base_url[len("http://"):]
    return api_base_url


def parse_app_config(config: dict) -> AppConfig:
    api_base_url = str(config.get("ApiBaseUrl", "http://localhost:8000")).rstrip("/")
    ws_base_url = str(config.get("WsBaseUrl") or _derive_ws_base_url(api_base_url)).rstrip("/")
    return AppConfig(
        api_base_url=api_base_url,
        ws_base_url=ws_base_url,
        workshop_id=str(config.get("WorkshopId", "")).strip() or None,
        user_id=str(config.get("UserId", "")).strip() or None,
        can_send_messages=_to_bool(config.get("CanSendMessages", True), default=True),
        typing_timeout_ms=int(config.get("TypingTimeoutMs", 3000)),
        heartbeat_seconds=float(config.get("HeartbeatSeconds", 20.0)),
        reconnect_min_seconds=float(config.get("ReconnectMinSeconds", 1.0)),
        reconnect_max_seconds=float(config.get("ReconnectMaxSeconds", 30.0)),
        max_reconnect_attempts=int(config.get("MaxReconnectAttempts", 0)),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", 30.0)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env(env_var: str = "DIAG_ACCESS_TOKEN") -> RuntimeEnv:
    return RuntimeEnv(
        access_token=os.environ.get(env_var) or None,
        access_token_env_var=env_var,
    )
