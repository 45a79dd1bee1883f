"""
Tests for session stores and access token claims.
"""

import jwt
import pytest

from gowise_premium.services.session_store import (
    InMemorySessionStore,
    TokenSessionStore,
    user_id_from_token,
)

SECRET = "test-secret-key-for-jwt-signing-min-32-chars"


def token(claims: dict) -> str:
    return jwt.encode(claims, SECRET, algorithm="HS256")


class TestUserIdFromToken:
    """Tests for user id extraction."""

    @pytest.mark.parametrize("claim", ["userId", "user_id", "id", "sub"])
    def test_known_claims(self, claim):
        assert user_id_from_token(token({claim: "42"})) == "42"

    def test_numeric_claim_is_stringified(self):
        assert user_id_from_token(token({"userId": 42})) == "42"

    def test_claim_order(self):
        """userId takes precedence over sub."""
        assert user_id_from_token(token({"sub": "auth0|x", "userId": "42"})) == "42"

    def test_signature_not_verified(self):
        """A token signed with an unknown key still yields its id."""
        foreign = jwt.encode({"userId": "7"}, "another-secret-key-with-enough-length!", algorithm="HS256")
        assert user_id_from_token(foreign) == "7"

    def test_no_id_claim(self):
        assert user_id_from_token(token({"name": "Lan"})) is None

    def test_garbage_token(self):
        assert user_id_from_token("not-a-jwt") is None


class TestInMemorySessionStore:
    """Tests for the in-memory store."""

    @pytest.mark.asyncio
    async def test_signed_out_by_default(self):
        store = InMemorySessionStore()
        assert await store.get_credential() is None
        assert await store.get_user_id() is None

    @pytest.mark.asyncio
    async def test_sign_in_and_out(self):
        store = InMemorySessionStore()
        store.sign_in("tok", "42")
        assert await store.get_credential() == "tok"
        assert await store.get_user_id() == "42"

        store.sign_out()
        assert await store.get_credential() is None

    @pytest.mark.asyncio
    async def test_empty_credential_is_none(self):
        store = InMemorySessionStore(credential="", user_id="")
        assert await store.get_credential() is None
        assert await store.get_user_id() is None


class TestTokenSessionStore:
    """Tests for the claim-deriving store."""

    @pytest.mark.asyncio
    async def test_user_id_from_inner_credential(self, access_token):
        store = TokenSessionStore(InMemorySessionStore(credential=access_token))
        assert await store.get_credential() == access_token
        assert await store.get_user_id() == "42"

    @pytest.mark.asyncio
    async def test_signed_out(self):
        store = TokenSessionStore(InMemorySessionStore())
        assert await store.get_user_id() is None
