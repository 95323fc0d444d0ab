"""
API key verification against the Unkey key service.

The service has answered in several shapes over time:
- v2: {"meta": {...}, "data": {"valid": true, "identity": {"id", "externalId"}}, "error": null}
- v1: {"result": {"valid": true, "ownerId": "..."}, "error": null}
- flat: {"valid": true, "ownerId": "..."}
- error only: {"meta": {...}, "error": {"code": "...", "message": "..."}}

normalize_verification_response() collapses all of them into one
VerificationResult; nothing downstream looks at the raw shape.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from app.config import settings
from app.utils.metrics import key_verifications_total, key_verification_duration_seconds

logger = logging.getLogger(__name__)

VERIFY_PATH = "/v2/keys.verifyKey"


class KeyVerificationError(Exception):
    """The verification service could not give a definite answer."""


@dataclass(frozen=True)
class VerificationResult:
    """Normalized verification outcome."""
    valid: bool
    user_id: Optional[str] = None
    key_id: Optional[str] = None
    code: Optional[str] = None


def _non_empty(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def extract_user_id(payload: dict) -> Optional[str]:
    """
    Pick the user id from a verification payload.

    Precedence: identity.externalId, then identity.id, then the legacy ownerId.
    """
    identity = payload.get("identity")
    if isinstance(identity, dict):
        for field in ("externalId", "id"):
            user_id = _non_empty(identity.get(field))
            if user_id:
                return user_id
    return _non_empty(payload.get("ownerId"))


def _error_code(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("code") or error.get("title") or "ERROR")
    return str(error)


def normalize_verification_response(raw: Any) -> VerificationResult:
    """
    Map any known response shape to a VerificationResult.

    An envelope carrying an error is never valid, whatever its payload says.
    """
    if not isinstance(raw, dict):
        return VerificationResult(valid=False, code="MALFORMED_RESPONSE")

    if "data" in raw:
        payload = raw.get("data")
    elif "result" in raw:
        payload = raw.get("result")
    elif "valid" in raw:
        payload = raw
    else:
        payload = None

    error = raw.get("error")
    if error:
        return VerificationResult(valid=False, code=_error_code(error))

    if not isinstance(payload, dict):
        return VerificationResult(valid=False, code="MALFORMED_RESPONSE")

    return VerificationResult(
        valid=payload.get("valid") is True,
        user_id=extract_user_id(payload),
        key_id=_non_empty(payload.get("keyId")),
        code=_non_empty(payload.get("code")),
    )


class KeyVerifier:
    """
    Client for the key verification service.

    Every call has a bounded timeout. Transport failures, timeouts and
    unreadable bodies raise KeyVerificationError so callers can fail closed.
    """

    def __init__(
        self,
        root_key: Optional[str] = None,
        api_id: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.root_key = root_key if root_key is not None else settings.unkey_root_key
        self.api_id = api_id if api_id is not None else settings.unkey_api_id
        self.base_url = base_url or settings.unkey_base_url
        self.timeout = timeout if timeout is not None else settings.key_verification_timeout_seconds
        self._transport = transport

        if not self.root_key:
            logger.warning("UNKEY_ROOT_KEY not set - key verification may fail")

    def build_payload(self, key: str) -> dict:
        """Request body; apiId is only sent when configured."""
        payload = {"key": key}
        if self.api_id:
            payload["apiId"] = self.api_id
        return payload

    async def verify(self, key: str) -> VerificationResult:
        """
        Verify a key and return the normalized result.

        Raises:
            KeyVerificationError: If the service is unreachable, times out or
                returns something that is not JSON
        """
        headers = {"Content-Type": "application/json"}
        if self.root_key:
            headers["Authorization"] = f"Bearer {self.root_key}"

        start_time = time.time()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(VERIFY_PATH, json=self.build_payload(key), headers=headers)
        except httpx.HTTPError as e:
            key_verifications_total.labels(outcome="error").inc()
            raise KeyVerificationError(f"Key verification request failed: {e}") from e
        finally:
            key_verification_duration_seconds.observe(time.time() - start_time)

        if response.status_code >= 500:
            key_verifications_total.labels(outcome="error").inc()
            raise KeyVerificationError(f"Key verification service error: {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            key_verifications_total.labels(outcome="error").inc()
            raise KeyVerificationError("Key verification service returned invalid JSON") from e

        result = normalize_verification_response(body)
        key_verifications_total.labels(outcome="valid" if result.valid else "invalid").inc()
        return result
