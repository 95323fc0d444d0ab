"""
Application exception hierarchy.

Every metered route raises one of these; the handler registered in main.py
renders them as JSON with a human-readable `error`/`message` and a
machine-readable `reason`.

    NoteCompanionError      -> 500
    ├── Unauthorized        -> 401
    ├── QuotaExceeded       -> 429
    ├── NeedsUpgrade        -> 429
    ├── UsageCheckFailed    -> 500
    ├── InternalError       -> 500
    ├── InvalidRequest      -> 400
    └── ProviderError       -> 502
"""
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)

UPGRADE_HINT = "Upgrade your plan or purchase a top-up to continue."


class NoteCompanionError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code = 500
    reason = "internal_error"
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        # Extra fields are returned to the caller alongside the message
        self.extra = extra or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "message": self.message,
            "reason": self.reason,
            **self.extra,
        }


class Unauthorized(NoteCompanionError):
    """Missing, invalid or unverifiable credential."""
    status_code = 401
    reason = "unauthorized"
    default_message = "Unauthorized"


class QuotaExceeded(NoteCompanionError):
    """Not enough remaining balance for the requested resource."""
    status_code = 429
    reason = "quota_exceeded"
    default_message = "Token limit exceeded. Please upgrade your plan for more tokens."

    def __init__(self, message: Optional[str] = None, remaining: int = 0, required: int = 0):
        super().__init__(
            message,
            extra={"remaining": remaining, "required": required, "upgradeHint": UPGRADE_HINT},
        )


class NeedsUpgrade(NoteCompanionError):
    """Account-level gate, independent of the raw balance."""
    status_code = 429
    reason = "needs_upgrade"
    default_message = "Your subscription is no longer active. Please upgrade your plan."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, extra={"upgradeHint": UPGRADE_HINT})


class UsageCheckFailed(NoteCompanionError):
    """The usage store could not be read before a metered call."""
    status_code = 500
    reason = "usage_check_failed"
    default_message = "Failed to check usage"


class InternalError(NoteCompanionError):
    """Storage or infrastructure malfunction."""
    status_code = 500
    reason = "internal_error"


class InvalidRequest(NoteCompanionError):
    """The request payload cannot be processed."""
    status_code = 400
    reason = "invalid_request"
    default_message = "Invalid request"


class ProviderError(NoteCompanionError):
    """An upstream AI provider failed."""
    status_code = 502
    reason = "provider_error"
    default_message = "AI provider request failed"


def add_exception_handlers(app: FastAPI) -> None:
    """Register JSON rendering for NoteCompanionError subclasses."""

    @app.exception_handler(NoteCompanionError)
    async def note_companion_error_handler(request: Request, exc: NoteCompanionError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                f"{exc.reason}: {exc.message}",
                extra={"event": "request_failed", "reason": exc.reason, "path": request.url.path},
            )
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)
