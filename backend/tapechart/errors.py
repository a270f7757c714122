from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class AppError(Exception):
    status_code: int
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    retryable: Optional[bool] = None

    def __str__(self) -> str:
        return self.message

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "details": self.details or {},
        }
        if self.retryable is not None:
            payload["retryable"] = self.retryable
        return {"error": payload}


class ValidationError(AppError):
    """Malformed input to a lifecycle operation. Never sent to the remote service."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(422, "validation_error", message, details)


class InvalidStateError(AppError):
    """Operation not allowed for the current room/block status."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(409, "invalid_state", message, details)


class NotFoundError(AppError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(404, "not_found", message, details)


class RemoteError(AppError):
    """The remote room-block service rejected a well-formed request.

    Surfaced verbatim; nothing in this package retries. `retryable` is only
    a hint for the transport layer.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 502,
        code: str = "remote_error",
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(status_code, code, message, details, retryable)


def error_response(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }
