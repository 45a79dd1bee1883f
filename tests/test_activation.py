"""
Tests for the activation sequence (write, re-read, verify, cache).
"""

from typing import Any
from unittest.mock import AsyncMock

import pytest

from gowise_premium.exceptions import (
    AccountServiceError,
    ProfileCacheError,
    VerificationMismatchError,
)
from gowise_premium.models.api import AccountRecord
from gowise_premium.services.account_service import AccountServiceClient
from gowise_premium.services.activation import ActivationSequence


class FailingCache:
    """Profile cache whose writes always fail."""

    async def save(self, profile: dict[str, Any] | None) -> None:
        raise ProfileCacheError("disk full")

    async def load(self) -> dict[str, Any] | None:
        return None


class TestActivationSequence:
    """Tests for ActivationSequence.activate."""

    @pytest.mark.asyncio
    async def test_write_then_read(self, accounts, profile_cache, backend):
        sequence = ActivationSequence(accounts, profile_cache)

        state = await sequence.activate("42", "tok")

        assert state.user_id == "42"
        assert state.is_premium is True
        assert [r.method for r in backend.requests] == ["PUT", "GET"]

    @pytest.mark.asyncio
    async def test_cache_gets_verified_profile(self, accounts, profile_cache):
        await ActivationSequence(accounts, profile_cache).activate("42", "tok")

        assert profile_cache.profile["isPremium"] is True
        assert profile_cache.profile["name"] == "Lan"

    @pytest.mark.asyncio
    async def test_lost_write_is_mismatch(self, accounts, profile_cache, backend):
        """An acknowledged write that the read does not reflect fails verification."""
        backend.persist_premium = False

        with pytest.raises(VerificationMismatchError) as exc_info:
            await ActivationSequence(accounts, profile_cache).activate("42", "tok")

        assert exc_info.value.reason == "verification_mismatch"
        assert profile_cache.profile is None

    @pytest.mark.asyncio
    async def test_write_failure_skips_read(self, accounts, profile_cache, backend):
        backend.premium_write_status = 500

        with pytest.raises(AccountServiceError):
            await ActivationSequence(accounts, profile_cache).activate("42", "tok")

        assert backend.calls("GET", "/account/42") == []

    @pytest.mark.asyncio
    async def test_read_failure(self, accounts, profile_cache, backend):
        backend.account_status = 500

        with pytest.raises(AccountServiceError):
            await ActivationSequence(accounts, profile_cache).activate("42", "tok")

        assert profile_cache.profile is None

    @pytest.mark.asyncio
    async def test_cache_failure_does_not_fail_activation(self, accounts):
        state = await ActivationSequence(accounts, FailingCache()).activate("42", "tok")

        assert state.is_premium is True

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self, accounts, profile_cache, backend):
        backend.premium_write_status = 503

        with pytest.raises(AccountServiceError):
            await ActivationSequence(accounts, profile_cache).activate("42", "tok")

        assert len(backend.calls("PUT", "/account/42/premium")) == 1

    @pytest.mark.asyncio
    async def test_uses_same_credential_for_both_calls(self, profile_cache):
        accounts = AsyncMock(spec=AccountServiceClient)
        accounts.get_account.return_value = AccountRecord(is_premium=True)

        await ActivationSequence(accounts, profile_cache).activate("42", "tok")

        accounts.set_premium.assert_awaited_once_with("42", "tok")
        accounts.get_account.assert_awaited_once_with("42", "tok")
