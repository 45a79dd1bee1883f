"""
Session Store - Access credential and user identity for the signed-in user.

The store is owned by the host app's auth flow; this package only reads it.
"""

from typing import Protocol

import jwt
from structlog import get_logger

logger = get_logger(__name__)

# Claim names the Gowise backend has used for the user id, in lookup order
USER_ID_CLAIMS = ("userId", "user_id", "id", "sub")


class SessionStore(Protocol):
    """Read-only view of the signed-in session."""

    async def get_credential(self) -> str | None:
        """Return the current access token, or None when signed out."""
        ...

    async def get_user_id(self) -> str | None:
        """Return the signed-in user's id, or None when unknown."""
        ...


def user_id_from_token(token: str) -> str | None:
    """
    Extract the user id from an access token's claims.

    The signature is not verified: the token was issued to this client by the
    backend, and the backend verifies it on every call. Only the id is needed
    to build request paths.
    """
    try:
        claims: dict[str, object] = jwt.decode(token, options={"verify_signature": False})
    except jwt.exceptions.DecodeError as exc:
        logger.warning("access_token_undecodable", error=str(exc))
        return None

    for claim in USER_ID_CLAIMS:
        value = claims.get(claim)
        if value is not None and str(value):
            return str(value)
    return None


class InMemorySessionStore:
    """Session store holding the credential in process memory."""

    def __init__(self, credential: str | None = None, user_id: str | None = None) -> None:
        self._credential = credential
        self._user_id = user_id

    async def get_credential(self) -> str | None:
        return self._credential or None

    async def get_user_id(self) -> str | None:
        return self._user_id or None

    def sign_in(self, credential: str, user_id: str) -> None:
        """Replace the session after a login (performed by the host app)."""
        self._credential = credential
        self._user_id = user_id

    def sign_out(self) -> None:
        self._credential = None
        self._user_id = None


class TokenSessionStore:
    """
    Session store that derives the user id from the access token.

    Wraps another store that only knows the credential (e.g. the platform's
    secure storage).
    """

    def __init__(self, inner: SessionStore) -> None:
        self.inner = inner

    async def get_credential(self) -> str | None:
        return await self.inner.get_credential()

    async def get_user_id(self) -> str | None:
        token = await self.inner.get_credential()
        if not token:
            return None
        return user_id_from_token(token)
