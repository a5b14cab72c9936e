from __future__ import annotations

from dataclasses import dataclass
from typing import Any

THREAD_STATUSES = ("active", "completed", "archived")


def _opt_int(value: object) -> int | None:
    if value is None:
        return None
    return int(value)


def _opt_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True)
class Message:
    id: str
    role: str
    content: str
    created_at: str | None = None
    attachments: Any = None
    thread_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Message:
        return cls(
            id=str(data["id"]),
            role=str(data.get("role", "user")),
            content=str(data.get("content") or ""),
            created_at=_opt_str(data.get("created_at")),
            attachments=data.get("attachments"),
            thread_id=_opt_str(data.get("thread_id")),
        )


@dataclass(frozen=True)
class Thread:
    id: str
    license_plate: str
    status: str = "active"
    is_resolved: bool = False
    total_tokens: int = 0
    created_at: str | None = None
    last_message_at: str | None = None
    title: str | None = None
    workshop_id: str | None = None
    vehicle_id: str | None = None
    vehicle_km: int | None = None
    error_codes: str | None = None
    vehicle_context: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Thread:
        status = str(data.get("status") or "active")
        if status not in THREAD_STATUSES:
            raise ValueError(f"Unknown thread status: {status!r}")
        return cls(
            id=str(data["id"]),
            license_plate=str(data.get("license_plate") or ""),
            status=status,
            is_resolved=bool(data.get("is_resolved", False)),
            total_tokens=max(0, int(data.get("total_tokens") or 0)),
            created_at=_opt_str(data.get("created_at")),
            last_message_at=_opt_str(data.get("last_message_at")),
            title=_opt_str(data.get("title")),
            workshop_id=_opt_str(data.get("workshop_id")),
            vehicle_id=_opt_str(data.get("vehicle_id")),
            vehicle_km=_opt_int(data.get("vehicle_km")),
            error_codes=_opt_str(data.get("error_codes")),
            vehicle_context=_opt_str(data.get("vehicle_context")),
        )


@dataclass(frozen=True)
class ThreadDetail:
    thread: Thread
    messages: list[Message]

    @classmethod
    def from_dict(cls, data: dict) -> ThreadDetail:
        # The retrieve endpoint answers either {thread, messages} or the
        # thread fields with a messages list alongside them.
        thread_data = data.get("thread")
        if not isinstance(thread_data, dict):
            thread_data = {k: v for k, v in data.items() if k != "messages"}
        return cls(
            thread=Thread.from_dict(thread_data),
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
        )


@dataclass(frozen=True)
class ThreadPage:
    threads: list[Thread]
    total: int

    @classmethod
    def from_dict(cls, data: dict) -> ThreadPage:
        threads = [Thread.from_dict(t) for t in data.get("threads") or []]
        return cls(threads=threads, total=int(data.get("total", len(threads))))


@dataclass(frozen=True)
class UserTokenUsage:
    daily_limit: int | None = None
    daily_used: int = 0
    daily_remaining: int | None = None
    monthly_limit: int | None = None
    monthly_used: int = 0
    monthly_remaining: int | None = None
    is_unlimited: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> UserTokenUsage:
        return cls(
            daily_limit=_opt_int(data.get("daily_limit")),
            daily_used=int(data.get("daily_used") or 0),
            daily_remaining=_opt_int(data.get("daily_remaining")),
            monthly_limit=_opt_int(data.get("monthly_limit")),
            monthly_used=int(data.get("monthly_used") or 0),
            monthly_remaining=_opt_int(data.get("monthly_remaining")),
            is_unlimited=bool(data.get("is_unlimited", False)),
        )


@dataclass(frozen=True)
class WorkshopTokenUsage:
    monthly_limit: int | None = None
    monthly_used: int = 0
    monthly_remaining: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> WorkshopTokenUsage:
        return cls(
            monthly_limit=_opt_int(data.get("monthly_limit")),
            monthly_used=int(data.get("monthly_used") or 0),
            monthly_remaining=_opt_int(data.get("monthly_remaining")),
        )


@dataclass(frozen=True)
class TokenUsageSnapshot:
    user: UserTokenUsage | None = None
    workshop: WorkshopTokenUsage | None = None

    @classmethod
    def from_dict(cls, data: dict) -> TokenUsageSnapshot:
        user = data.get("user")
        workshop = data.get("workshop")
        return cls(
            user=UserTokenUsage.from_dict(user) if isinstance(user, dict) else None,
            workshop=WorkshopTokenUsage.from_dict(workshop) if isinstance(workshop, dict) else None,
        )


@dataclass(frozen=True)
class TypingSignal:
    user_id: str
    expires_at: float


@dataclass(frozen=True)
class NewThreadRequest:
    license_plate: str
    workshop_id: str | None = None
    vehicle_id: str | None = None
    vehicle_km: int | None = None
    error_codes: str | None = None
    vehicle_context: str | None = None

    def to_payload(self) -> dict:
        payload: dict[str, Any] = {"license_plate": self.license_plate}
        for key in ("workshop_id", "vehicle_id", "vehicle_km", "error_codes", "vehicle_context"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


@dataclass
class ThreadFilters:
    workshop_id: str | None = None
    license_plate: str | None = None
    status: str | None = None
    is_resolved: bool | None = None
    search: str | None = None
    limit: int = 20
    offset: int = 0

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": self.limit, "offset": self.offset}
        for key in ("workshop_id", "license_plate", "status", "search"):
            value = getattr(self, key)
            if value:
                params[key] = value
        if self.is_resolved is not None:
            params["is_resolved"] = "true" if self.is_resolved else "false"
        return params
