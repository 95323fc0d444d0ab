"""
Production logging utility for structured JSON logging.

Provides event-specific logging functions with mandatory fields:
- timestamp (ISO8601)
- level
- service
- event

Optional fields (included when applicable):
- user_id
- duration_ms

Usage:
    from app.utils.logging import configure_logging, log_usage_recorded

    configure_logging('nc-api', 'INFO')
    log_usage_recorded(logger, user_id='user_123', resource='tokens', amount=150, remaining=850)
"""
import logging
import sys
from typing import Optional, Dict, Any
from pythonjsonlogger import jsonlogger


class StructuredLogger:
    """Structured JSON logger with mandatory fields."""

    _service_name = None
    _configured = False

    @classmethod
    def configure(cls, service_name: str, log_level: str = "INFO"):
        """
        Configure structured JSON logging for the application.

        Args:
            service_name: Service identifier (nc-api or nc-worker)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        if cls._configured:
            return  # Already configured

        cls._service_name = service_name

        # Remove default handlers
        root_logger = logging.getLogger()
        root_logger.handlers = []

        # Create JSON formatter
        formatter = jsonlogger.JsonFormatter(
            '%(timestamp)s %(levelname)s %(name)s %(message)s',
            timestamp=True,
            json_ensure_ascii=False
        )

        # Create console handler (for container logs)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)

        # Configure root logger
        root_logger.addHandler(handler)
        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        # Add service name to all log records via filter
        class ServiceFilter(logging.Filter):
            def filter(self, record):
                record.service = cls._service_name
                return True

        handler.addFilter(ServiceFilter())
        cls._configured = True


def _build_log_extra(
    event: str,
    user_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Build extra fields for structured logging.

    Args:
        event: Event name (mandatory)
        user_id: Optional user ID
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields

    Returns:
        Dictionary of extra fields
    """
    extra = {
        "event": event,
        **kwargs
    }

    if user_id:
        extra["user_id"] = user_id
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)

    return extra


# Authorization events

def log_key_verified(
    logger: logging.Logger,
    user_id: str,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """Log a successful key verification."""
    extra = _build_log_extra(
        event="key_verified",
        user_id=user_id,
        duration_ms=duration_ms,
        **kwargs
    )
    logger.info(f"Key verified for user: {user_id}", extra=extra)


def log_key_rejected(
    logger: logging.Logger,
    reason: str,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """
    Log a rejected credential.

    Args:
        logger: Logger instance
        reason: Why the credential was rejected (invalid_key, verification_error, no_credentials, ...)
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields (never the key itself)
    """
    extra = _build_log_extra(
        event="key_rejected",
        duration_ms=duration_ms,
        reason=reason,
        **kwargs
    )
    logger.warning(f"Credential rejected: {reason}", extra=extra)


# Quota and usage events

def log_quota_rejected(
    logger: logging.Logger,
    user_id: str,
    resource: str,
    decision: str,
    remaining: int,
    required: int = 0,
    **kwargs
):
    """
    Log a request rejected by the quota gate.

    Args:
        logger: Logger instance
        user_id: User ID (required)
        resource: Resource kind (tokens, audio_minutes)
        decision: Gate decision (quota_exceeded, needs_upgrade, usage_check_failed)
        remaining: Remaining balance at check time
        required: Amount the request needed, when known upfront
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="quota_rejected",
        user_id=user_id,
        resource=resource,
        decision=decision,
        remaining=remaining,
        required=required,
        **kwargs
    )
    logger.info(f"Quota gate rejected {resource} request for user {user_id}: {decision}", extra=extra)


def log_usage_recorded(
    logger: logging.Logger,
    user_id: str,
    resource: str,
    amount: int,
    remaining: int,
    **kwargs
):
    """Log a successful usage increment."""
    extra = _build_log_extra(
        event="usage_recorded",
        user_id=user_id,
        resource=resource,
        amount=amount,
        remaining=remaining,
        **kwargs
    )
    logger.info(f"Recorded {amount} {resource} for user {user_id} ({remaining} remaining)", extra=extra)


def log_usage_recording_failed(
    logger: logging.Logger,
    user_id: str,
    resource: str,
    amount: int,
    error: str,
    **kwargs
):
    """
    Log a usage increment that could not be stored.

    The user-facing request still succeeds; this record is the only trace
    of the uncounted consumption.
    """
    extra = _build_log_extra(
        event="usage_recording_failed",
        user_id=user_id,
        resource=resource,
        amount=amount,
        error=str(error),
        **kwargs
    )
    logger.error(f"Failed to record {amount} {resource} for user {user_id}: {error}", extra=extra)


def log_usage_reset(
    logger: logging.Logger,
    users_reset: int,
    free_tier_users_reset: int,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """Log a completed periodic reset run."""
    extra = _build_log_extra(
        event="usage_reset",
        duration_ms=duration_ms,
        users_reset=users_reset,
        free_tier_users_reset=free_tier_users_reset,
        **kwargs
    )
    logger.info(
        f"Usage reset complete: {users_reset} subscribers, {free_tier_users_reset} free tier",
        extra=extra
    )


# Provider event functions

def log_provider_request(
    logger: logging.Logger,
    provider: str,
    operation: str,
    duration_ms: Optional[float] = None,
    user_id: Optional[str] = None,
    **kwargs
):
    """
    Log AI provider request event.

    Args:
        logger: Logger instance
        provider: Provider name (openai, groq) (required)
        operation: Operation name (title, transcribe) (required)
        duration_ms: Optional duration in milliseconds
        user_id: Optional user ID
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="provider_request",
        user_id=user_id,
        duration_ms=duration_ms,
        provider=provider,
        operation=operation,
        **kwargs
    )

    logger.info(f"Provider request: {provider}.{operation}", extra=extra)


def log_provider_failure(
    logger: logging.Logger,
    provider: str,
    operation: str,
    error: str,
    duration_ms: Optional[float] = None,
    user_id: Optional[str] = None,
    **kwargs
):
    """Log AI provider failure event."""
    extra = _build_log_extra(
        event="provider_failure",
        user_id=user_id,
        duration_ms=duration_ms,
        provider=provider,
        operation=operation,
        error=str(error),
        **kwargs
    )

    logger.error(f"Provider failure: {provider}.{operation} - {error}", extra=extra)


def configure_logging(service_name: str, log_level: str = "INFO"):
    """Configure logging (alias for StructuredLogger.configure)."""
    StructuredLogger.configure(service_name, log_level)
