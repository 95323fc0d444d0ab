"""
FastAPI dependencies for authentication.
Provides get_current_user_id, which resolves a request to a user identity.
"""
import logging
import time
from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends, Request

from app.auth.firebase import verify_session_cookie
from app.auth.key_verification import KeyVerifier, KeyVerificationError
from app.config import settings, AuthorizationMode
from app.exceptions import Unauthorized
from app.utils.logging import log_key_verified, log_key_rejected

logger = logging.getLogger(__name__)

# Identity every request resolves to when user management is disabled
PLACEHOLDER_USER_ID = "user"


class KeyResolver:
    """
    Resolves a bearer key (or a session cookie) to a user id.

    Flow:
    1. Disabled mode: return PLACEHOLDER_USER_ID
    2. Bearer token present: verify it with the key service
    3. No bearer token: verify the session cookie
    4. Anything else: Unauthorized

    Verification failures of any kind raise Unauthorized; an indeterminate
    answer from the key service never grants access.
    """

    def __init__(
        self,
        mode: AuthorizationMode,
        verifier: Optional[KeyVerifier] = None,
        session_verifier: Callable[[str], str] = verify_session_cookie,
    ):
        self.mode = mode
        self.verifier = verifier
        self.session_verifier = session_verifier

    async def resolve(self, token: Optional[str], session_cookie: Optional[str] = None) -> str:
        if self.mode is AuthorizationMode.DISABLED:
            return PLACEHOLDER_USER_ID

        if token:
            return await self._resolve_key(token)

        if session_cookie:
            try:
                user_id = self.session_verifier(session_cookie)
            except ValueError as e:
                log_key_rejected(logger, reason="invalid_session", error=str(e))
                raise Unauthorized()
            log_key_verified(logger, user_id=user_id, source="session")
            return user_id

        log_key_rejected(logger, reason="no_credentials")
        raise Unauthorized()

    async def _resolve_key(self, token: str) -> str:
        if self.verifier is None:
            log_key_rejected(logger, reason="verifier_not_configured")
            raise Unauthorized()

        start_time = time.time()
        try:
            result = await self.verifier.verify(token)
        except KeyVerificationError as e:
            log_key_rejected(logger, reason="verification_error", error=str(e))
            raise Unauthorized()
        except Exception as e:
            logger.error(f"Unexpected key verification failure: {e}", exc_info=True)
            raise Unauthorized()
        duration_ms = (time.time() - start_time) * 1000

        if not result.valid:
            log_key_rejected(logger, reason="invalid_key", code=result.code, duration_ms=duration_ms)
            raise Unauthorized("Invalid key")
        if not result.user_id:
            log_key_rejected(logger, reason="missing_identity", key_id=result.key_id, duration_ms=duration_ms)
            raise Unauthorized("Invalid key")

        log_key_verified(logger, user_id=result.user_id, duration_ms=duration_ms, source="key")
        return result.user_id


@lru_cache()
def get_key_verifier() -> KeyVerifier:
    """Key verifier configured from settings."""
    return KeyVerifier()


@lru_cache()
def get_key_resolver() -> KeyResolver:
    """Key resolver built once from settings."""
    mode = settings.authorization_mode
    if mode is AuthorizationMode.DISABLED:
        logger.warning(
            "User management disabled: all requests resolve to a single identity and quotas are not enforced"
        )
        return KeyResolver(mode)
    return KeyResolver(mode, verifier=get_key_verifier())


def get_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Token from an `Authorization: Bearer <token>` header value, or None."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


async def get_current_user_id(
    request: Request,
    resolver: KeyResolver = Depends(get_key_resolver),
) -> str:
    """
    FastAPI dependency that resolves the caller to a user id.

    Raises:
        Unauthorized: If no credential verifies
    """
    token = get_bearer_token(request.headers.get("Authorization"))
    session_cookie = request.cookies.get(settings.session_cookie_name)
    return await resolver.resolve(token, session_cookie)
