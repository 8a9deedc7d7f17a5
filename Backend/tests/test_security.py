"""
Tests for password hashing and access tokens.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from monitor_api.core.security import (
    InvalidTokenError,
    PasswordPolicy,
    TokenManager,
    coerce_user_id,
)


class TestPasswordPolicy:
    def test_hash_and_verify(self):
        hashed = PasswordPolicy.hash("admin123")

        assert hashed != "admin123"
        assert PasswordPolicy.verify("admin123", hashed)
        assert not PasswordPolicy.verify("wrong", hashed)

    def test_non_bcrypt_hash_does_not_verify(self):
        assert not PasswordPolicy.verify("admin123", "plaintext")


class TestTokenManager:
    def test_round_trip(self):
        tokens = TokenManager(secret="s", expire_hours=1)

        claims = tokens.parse(tokens.create(7, "alice"))

        assert claims.user_id == 7
        assert claims.username == "alice"

    def test_wrong_secret_rejected(self):
        token = TokenManager(secret="a", expire_hours=1).create(1, "admin")

        with pytest.raises(InvalidTokenError):
            TokenManager(secret="b", expire_hours=1).parse(token)

    def test_expired_token_rejected(self):
        payload = {"user_id": 1, "username": "admin", "exp": datetime.now(timezone.utc) - timedelta(seconds=5)}
        token = jwt.encode(payload, "s", algorithm="HS256")

        with pytest.raises(InvalidTokenError):
            TokenManager(secret="s").parse(token)

    def test_token_without_exp_rejected(self):
        token = jwt.encode({"user_id": 1, "username": "admin"}, "s", algorithm="HS256")

        with pytest.raises(InvalidTokenError):
            TokenManager(secret="s").parse(token)

    @pytest.mark.parametrize("user_id", [3, 3.0, "3"])
    def test_user_id_decoded_tolerantly(self, user_id):
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
        token = jwt.encode({"user_id": user_id, "username": "admin", "exp": exp}, "s", algorithm="HS256")

        assert TokenManager(secret="s").parse(token).user_id == 3

    def test_empty_username_rejected(self):
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
        token = jwt.encode({"user_id": 1, "username": "", "exp": exp}, "s", algorithm="HS256")

        with pytest.raises(InvalidTokenError):
            TokenManager(secret="s").parse(token)


@pytest.mark.parametrize("value", [-1, 1.5, "abc", None, True, [1]])
def test_coerce_user_id_rejects(value):
    with pytest.raises(InvalidTokenError):
        coerce_user_id(value)
