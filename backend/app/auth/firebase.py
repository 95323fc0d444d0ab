"""
Firebase Admin SDK initialization and session cookie verification.
Session cookies are the identity fallback for browser requests that carry no API key.
"""
import json
import os
import logging
from typing import Optional
import firebase_admin
from firebase_admin import credentials, auth
from app.config import settings

logger = logging.getLogger(__name__)


# Global Firebase app instance
_firebase_app: Optional[firebase_admin.App] = None


def initialize_firebase() -> None:
    """
    Initialize Firebase Admin SDK.

    FIREBASE_CREDENTIALS_JSON may be a file path or a JSON string.
    If neither is provided, uses default credentials (for local dev with gcloud).
    """
    global _firebase_app

    if _firebase_app is not None:
        return

    if not settings.firebase_project_id:
        raise ValueError("FIREBASE_PROJECT_ID must be set")

    if settings.firebase_credentials_json:
        credential_source = settings.firebase_credentials_json
        if os.path.exists(credential_source):
            cred = credentials.Certificate(credential_source)
            logger.info(f"Loaded Firebase credentials from file: {credential_source}")
        else:
            try:
                cred = credentials.Certificate(json.loads(credential_source))
                logger.info("Loaded Firebase credentials from JSON string")
            except json.JSONDecodeError:
                raise ValueError("FIREBASE_CREDENTIALS_JSON must be a valid file path or JSON string")
    else:
        cred = credentials.ApplicationDefault()

    _firebase_app = firebase_admin.initialize_app(
        cred,
        {"projectId": settings.firebase_project_id}
    )


def is_firebase_initialized() -> bool:
    return _firebase_app is not None


def verify_session_cookie(session_cookie: str) -> str:
    """
    Verify a Firebase session cookie and return the user id.

    Args:
        session_cookie: Value of the session cookie

    Returns:
        Firebase uid of the signed-in user

    Raises:
        ValueError: If the SDK is not initialized or the cookie is invalid,
            expired or revoked
    """
    if not is_firebase_initialized():
        raise ValueError("Firebase Admin SDK not initialized")

    try:
        claims = auth.verify_session_cookie(session_cookie, check_revoked=True)
    except Exception as e:
        raise ValueError(f"Session verification failed: {str(e)}")

    uid = claims.get("uid")
    if not uid:
        raise ValueError("Session cookie has no uid")
    return uid
