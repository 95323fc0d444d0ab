"""
Tests for identity resolution.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from app.auth import firebase
from app.auth.dependencies import KeyResolver, get_bearer_token, PLACEHOLDER_USER_ID
from app.auth.key_verification import KeyVerificationError, VerificationResult
from app.config import AuthorizationMode
from app.exceptions import Unauthorized

from tests.conftest import VALID_KEY, VALID_USER_ID


class TestGetBearerToken:
    def test_extracts_token(self):
        assert get_bearer_token("Bearer abc123") == "abc123"

    def test_scheme_is_case_insensitive(self):
        assert get_bearer_token("bearer abc123") == "abc123"

    @pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer   ", "Basic abc123", "abc123"])
    def test_missing_or_other_scheme(self, header):
        assert get_bearer_token(header) is None


class TestKeyResolver:
    """Tests for KeyResolver.resolve."""

    @pytest.mark.asyncio
    async def test_valid_key_resolves_to_external_id(self, key_resolver: KeyResolver):
        assert await key_resolver.resolve(VALID_KEY) == VALID_USER_ID

    @pytest.mark.asyncio
    async def test_invalid_key_is_unauthorized(self, key_resolver: KeyResolver):
        with pytest.raises(Unauthorized):
            await key_resolver.resolve("nc_wrong_key")

    @pytest.mark.asyncio
    async def test_verification_failure_fails_closed(self):
        verifier = MagicMock()
        verifier.verify = AsyncMock(side_effect=KeyVerificationError("timed out"))
        resolver = KeyResolver(AuthorizationMode.ENFORCED, verifier=verifier)

        with pytest.raises(Unauthorized):
            await resolver.resolve(VALID_KEY)

    @pytest.mark.asyncio
    async def test_unexpected_verifier_error_fails_closed(self):
        verifier = MagicMock()
        verifier.verify = AsyncMock(side_effect=RuntimeError("boom"))
        resolver = KeyResolver(AuthorizationMode.ENFORCED, verifier=verifier)

        with pytest.raises(Unauthorized):
            await resolver.resolve(VALID_KEY)

    @pytest.mark.asyncio
    async def test_valid_key_without_identity_is_unauthorized(self):
        verifier = MagicMock()
        verifier.verify = AsyncMock(return_value=VerificationResult(valid=True, key_id="key_1"))
        resolver = KeyResolver(AuthorizationMode.ENFORCED, verifier=verifier)

        with pytest.raises(Unauthorized):
            await resolver.resolve(VALID_KEY)

    @pytest.mark.asyncio
    async def test_session_cookie_used_without_bearer(self, key_resolver: KeyResolver, session_verifier: MagicMock):
        session_verifier.side_effect = None
        session_verifier.return_value = "firebase_uid_1"

        assert await key_resolver.resolve(None, session_cookie="cookie") == "firebase_uid_1"
        session_verifier.assert_called_once_with("cookie")

    @pytest.mark.asyncio
    async def test_invalid_session_cookie_is_unauthorized(self, key_resolver: KeyResolver):
        with pytest.raises(Unauthorized):
            await key_resolver.resolve(None, session_cookie="expired")

    @pytest.mark.asyncio
    async def test_invalid_bearer_does_not_fall_back_to_session(
        self, key_resolver: KeyResolver, session_verifier: MagicMock
    ):
        session_verifier.side_effect = None
        session_verifier.return_value = "firebase_uid_1"

        with pytest.raises(Unauthorized):
            await key_resolver.resolve("nc_wrong_key", session_cookie="cookie")
        session_verifier.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_credentials_is_unauthorized(self, key_resolver: KeyResolver):
        with pytest.raises(Unauthorized):
            await key_resolver.resolve(None, None)

    @pytest.mark.asyncio
    async def test_disabled_mode_returns_placeholder_without_verifying(self):
        verifier = MagicMock()
        verifier.verify = AsyncMock()
        resolver = KeyResolver(AuthorizationMode.DISABLED, verifier=verifier)

        assert await resolver.resolve(None) == PLACEHOLDER_USER_ID
        assert await resolver.resolve("anything") == PLACEHOLDER_USER_ID
        verifier.verify.assert_not_called()

    @pytest.mark.asyncio
    async def test_enforced_without_verifier_is_unauthorized(self):
        resolver = KeyResolver(AuthorizationMode.ENFORCED)
        with pytest.raises(Unauthorized):
            await resolver.resolve(VALID_KEY)


class TestSessionCookieVerification:
    def test_uninitialized_sdk_rejects_cookie(self, monkeypatch):
        monkeypatch.setattr(firebase, "_firebase_app", None)

        assert firebase.is_firebase_initialized() is False
        with pytest.raises(ValueError):
            firebase.verify_session_cookie("cookie")

    def test_cookie_without_uid_is_rejected(self, monkeypatch):
        monkeypatch.setattr(firebase, "_firebase_app", MagicMock())
        monkeypatch.setattr(firebase.auth, "verify_session_cookie", MagicMock(return_value={}))

        with pytest.raises(ValueError):
            firebase.verify_session_cookie("cookie")
