"""
Unit tests for token verification and user provisioning.
"""
import pytest
from datetime import timedelta
from jose import jwt
from tunislock.services import auth_service, user_service
from tunislock.utils.datetime_utils import utcnow


def _token(claims, secret=None, expires_in=timedelta(minutes=5)):
    payload = dict(claims)
    payload["exp"] = utcnow() + expires_in
    return jwt.encode(
        payload, secret or auth_service.AUTH_JWT_SECRET, algorithm=auth_service.AUTH_JWT_ALGORITHM
    )


class TestVerifyToken:
    """Tests for provider token verification."""

    def test_valid_token(self):
        decoded = auth_service.verify_token(_token({"sub": "provider|42", "name": "Ali"}))
        assert decoded is not None
        assert decoded["sub"] == "provider|42"
        assert decoded["name"] == "Ali"

    def test_garbage_token(self):
        assert auth_service.verify_token("invalid_token_string") is None

    def test_wrong_signature(self):
        assert auth_service.verify_token(_token({"sub": "x"}, secret="another-secret")) is None

    def test_expired_token(self):
        assert auth_service.verify_token(_token({"sub": "x"}, expires_in=timedelta(seconds=-1))) is None

    def test_token_without_subject(self):
        assert auth_service.verify_token(_token({"name": "No Subject"})) is None


class TestUserProvisioning:
    """Tests for resolving local users from token claims."""

    @pytest.mark.asyncio
    async def test_first_sight_creates_user(self, db_session):
        user = await user_service.get_or_create_user(
            db_session, auth_subject="provider|1", name="Ali", email="ali@example.com"
        )
        assert user["id"] > 0
        assert user["auth_subject"] == "provider|1"

        again = await user_service.get_or_create_user(db_session, auth_subject="provider|1")
        assert again["id"] == user["id"]
        assert again["name"] == "Ali"

    @pytest.mark.asyncio
    async def test_claims_refresh_stored_values(self, db_session):
        await user_service.get_or_create_user(db_session, auth_subject="provider|2", name="Old")
        user = await user_service.get_or_create_user(
            db_session, auth_subject="provider|2", name="New", email="new@example.com"
        )
        assert user["name"] == "New"
        assert user["email"] == "new@example.com"

    @pytest.mark.asyncio
    async def test_display_names_fall_back_to_unknown(self, db_session, make_user):
        user = await make_user(name="Named")
        names = await user_service.get_display_names(db_session, [user.id, 9999])
        assert names == {user.id: "Named", 9999: user_service.UNKNOWN_USER_NAME}
