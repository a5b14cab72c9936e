from __future__ import annotations

from dataclasses import dataclass, field

from diag_session.errors import PermissionDeniedError


@dataclass(frozen=True)
class CapabilityFlags:
    """Answers from the permission evaluator that this engine consumes."""

    can_send_messages: bool = True


@dataclass
class SessionContext:
    """Who is using the console and on behalf of which workshop.

    Built once at startup and handed to the session store; ``close`` drops the
    credentials when the store is torn down.
    """

    workshop_id: str | None = None
    user_id: str | None = None
    access_token: str | None = None
    capabilities: CapabilityFlags = field(default_factory=CapabilityFlags)

    def require_workshop(self) -> str:
        if not self.workshop_id:
            raise ValueError("No workshop selected")
        return self.workshop_id

    def require_send(self) -> None:
        if not self.capabilities.can_send_messages:
            raise PermissionDeniedError("You do not have permission to send messages")

    def close(self) -> None:
        self.access_token = None
