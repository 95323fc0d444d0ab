"""
License key check endpoint.
Used by the plugin settings screen: verifies the key only, without touching
usage records or quotas.
"""
import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.auth.dependencies import KeyResolver, get_key_resolver, get_bearer_token, PLACEHOLDER_USER_ID
from app.auth.key_verification import KeyVerificationError
from app.config import AuthorizationMode
from app.schemas.usage import CheckKeyResponse
from app.utils.logging import log_key_rejected

logger = logging.getLogger(__name__)

router = APIRouter()

UNKNOWN_USER_ID = "unknown"


def _invalid_key_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error": "Invalid key", "message": "Please provide a valid license key"},
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post("/check-key", response_model=CheckKeyResponse)
async def check_key(
    request: Request,
    resolver: KeyResolver = Depends(get_key_resolver),
):
    """
    Check that a license key is valid.

    - 400 when no bearer token is sent
    - 401 when the key is invalid or cannot be verified
    - 200 with the key's user id otherwise
    """
    if resolver.mode is AuthorizationMode.DISABLED:
        return CheckKeyResponse(message="Valid key", user_id=PLACEHOLDER_USER_ID)

    token = get_bearer_token(request.headers.get("Authorization"))
    if not token:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "No token provided"})

    if resolver.verifier is None:
        log_key_rejected(logger, reason="verifier_not_configured")
        return _invalid_key_response()

    try:
        result = await resolver.verifier.verify(token)
    except KeyVerificationError as e:
        log_key_rejected(logger, reason="verification_error", error=str(e))
        return _invalid_key_response()

    if not result.valid:
        log_key_rejected(logger, reason="invalid_key", code=result.code)
        return _invalid_key_response()

    return CheckKeyResponse(message="Valid key", user_id=result.user_id or UNKNOWN_USER_ID)
