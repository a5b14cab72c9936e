from __future__ import annotations


class DiagSessionError(Exception):
    """Base class for errors raised by the consultation session engine."""


class ApiError(DiagSessionError):
    def __init__(self, message: str, *, status_code: int | None = None, detail: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail

    def user_message(self, default: str) -> str:
        return self.detail or default


class SendFailedError(DiagSessionError):
    pass


class ChannelNotConnectedError(DiagSessionError):
    pass


class PermissionDeniedError(DiagSessionError):
    pass


def describe_failure(ex: Exception, default: str) -> str:
    """Text to surface for a failed call: the server detail when there is one."""
    if isinstance(ex, ApiError):
        return ex.user_message(default)
    return default
