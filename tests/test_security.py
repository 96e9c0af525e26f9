"""Tests for password hashing, tokens and identity resolution."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from bson import ObjectId

import config
from errors import InternalError
from security import (
    ANONYMOUS,
    create_access_token,
    hash_password,
    identity_from_token,
    verify_password,
    verify_token,
)


class TestPasswords:

    def test_hash_is_salted_and_verifiable(self):
        first = hash_password("momos")
        second = hash_password("momos")

        assert first != "momos"
        assert first != second
        assert verify_password("momos", first)
        assert not verify_password("dumplings", first)

    def test_non_bcrypt_hash_does_not_verify(self):
        assert not verify_password("momos", "plaintext")


class TestTokens:

    def test_token_binds_user_id(self):
        user_id = ObjectId()
        payload = verify_token(create_access_token(user_id))

        assert payload["userId"] == str(user_id)

    def test_token_expires_after_configured_lifetime(self):
        before = datetime.now(timezone.utc)
        payload = verify_token(create_access_token(ObjectId()))

        lifetime = payload["exp"] - before.timestamp()
        assert 59 * 60 <= lifetime <= 61 * 60

    def test_missing_secret(self, monkeypatch):
        monkeypatch.setattr(config, "JWT_SECRET", None)

        with pytest.raises(InternalError, match="JWT_SECRET not configured"):
            create_access_token(ObjectId())

    def test_wrong_signature_rejected(self):
        token = jwt.encode({"userId": str(ObjectId())}, "someone-else", algorithm="HS256")
        assert verify_token(token) is None


class TestIdentityResolution:
    """Optional tokens degrade to the anonymous identity."""

    def test_valid_token(self):
        user_id = ObjectId()
        identity = identity_from_token(create_access_token(user_id))

        assert identity.is_authenticated
        assert identity.user_id == user_id

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
    def test_absent_or_garbage_token(self, token):
        assert identity_from_token(token) == ANONYMOUS

    def test_expired_token(self):
        expired = jwt.encode(
            {"userId": str(ObjectId()), "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
            config.JWT_SECRET,
            algorithm=config.ALGORITHM,
        )
        assert not identity_from_token(expired).is_authenticated

    def test_token_with_malformed_user_id(self):
        token = jwt.encode({"userId": "nope"}, config.JWT_SECRET, algorithm=config.ALGORITHM)
        assert identity_from_token(token) == ANONYMOUS
