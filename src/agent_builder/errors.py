"""Error kinds shared by the API, the orchestrator and the agent stages."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Tagged error kinds carrying the HTTP status, code and operational flag."""

    VALIDATION = (400, "VALIDATION_ERROR", True)
    UNAUTHORIZED = (401, "UNAUTHORIZED", True)
    FORBIDDEN = (403, "FORBIDDEN", True)
    NOT_FOUND = (404, "NOT_FOUND", True)
    CONFLICT = (409, "CONFLICT", True)
    RATE_LIMIT = (429, "RATE_LIMIT_EXCEEDED", True)
    INTERNAL = (500, "INTERNAL_SERVER_ERROR", False)
    SERVICE_UNAVAILABLE = (503, "SERVICE_UNAVAILABLE", True)

    def __init__(self, status_code: int, code: str, is_operational: bool) -> None:
        self.status_code = status_code
        self.code = code
        self.is_operational = is_operational


class ServiceError(Exception):
    """Single exception type for every expected failure; ``kind`` says which."""

    def __init__(self, kind: ErrorKind, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @property
    def code(self) -> str:
        return self.kind.code

    @property
    def is_operational(self) -> bool:
        return self.kind.is_operational

    @classmethod
    def validation(cls, message: str, **details: Any) -> "ServiceError":
        return cls(ErrorKind.VALIDATION, message, details)

    @classmethod
    def not_found(cls, resource: str, identifier: Optional[str] = None) -> "ServiceError":
        message = f"{resource} not found" if identifier is None else f"{resource} {identifier} not found"
        details = {"resource": resource}
        if identifier is not None:
            details["id"] = identifier
        return cls(ErrorKind.NOT_FOUND, message, details)

    @classmethod
    def conflict(cls, message: str, **details: Any) -> "ServiceError":
        return cls(ErrorKind.CONFLICT, message, details)

    @classmethod
    def unavailable(cls, message: str, **details: Any) -> "ServiceError":
        return cls(ErrorKind.SERVICE_UNAVAILABLE, message, details)

    def __repr__(self) -> str:
        return f"ServiceError({self.kind.name}, {self.message!r})"


def as_service_error(exc: BaseException) -> ServiceError:
    """Return ``exc`` unchanged if it is a ``ServiceError``, otherwise wrap it as INTERNAL."""

    if isinstance(exc, ServiceError):
        return exc
    wrapped = ServiceError(ErrorKind.INTERNAL, "Internal server error", {"error_type": type(exc).__name__})
    wrapped.__cause__ = exc
    return wrapped


def error_body(error: ServiceError) -> Dict[str, Any]:
    """Render the structured error payload returned to callers."""

    body: Dict[str, Any] = {
        "success": False,
        "message": error.message,
        "code": error.code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    match error.kind:
        case ErrorKind.INTERNAL:
            # Internal details stay in the logs.
            pass
        case ErrorKind.RATE_LIMIT:
            body["details"] = {"retry_after_seconds": error.details.get("retry_after_seconds")}
        case _:
            if error.details:
                body["details"] = error.details
    return body


def log_error(logger: logging.Logger, error: ServiceError, context: str) -> None:
    """Log at warning for operational errors and with a traceback otherwise."""

    match error.kind:
        case ErrorKind.INTERNAL:
            logger.error("%s: %s", context, error.message, exc_info=error.__cause__ or error)
        case kind if kind.is_operational:
            logger.warning("%s: [%s] %s", context, kind.code, error.message)


__all__ = ["ErrorKind", "ServiceError", "as_service_error", "error_body", "log_error"]
