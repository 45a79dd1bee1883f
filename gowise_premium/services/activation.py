"""
Activation Sequence - set premium, re-read, verify, cache.

A write acknowledgement alone is not proof of durability: the account is
only considered premium once a fresh read says so.
"""

import time

from structlog import get_logger

from gowise_premium.exceptions import ActivationError, VerificationMismatchError
from gowise_premium.models.domain import AccountPremiumState, utc_now
from gowise_premium.observability.metrics import metrics
from gowise_premium.services.account_service import AccountServiceClient
from gowise_premium.services.profile_cache import ProfileCache

logger = get_logger(__name__)


class ActivationSequence:
    """
    Drives the Account Service through one activation.

    No automatic retries: idempotency of the premium endpoint is assumed by
    the backend, not verified here, so a failure goes back to the user.
    """

    def __init__(self, accounts: AccountServiceClient, cache: ProfileCache) -> None:
        self.accounts = accounts
        self.cache = cache

    async def activate(self, user_id: str, credential: str) -> AccountPremiumState:
        """
        Mark the account premium and confirm it.

        Raises:
            AccountServiceError: If the write or the read fails
            VerificationMismatchError: If the read does not show premium
        """
        start = time.monotonic()
        try:
            await self.accounts.set_premium(user_id, credential)
            record = await self.accounts.get_account(user_id, credential)

            if not record.is_premium:
                logger.error("activation_verification_mismatch", user_id=user_id)
                raise VerificationMismatchError(user_id)
        except ActivationError as exc:
            metrics.record_activation("failed", time.monotonic() - start, error_type=exc.reason)
            raise

        state = AccountPremiumState(
            user_id=user_id,
            is_premium=True,
            last_verified_at=utc_now(),
            profile=record.model_dump(by_alias=True),
        )
        logger.info("activation_verified", user_id=user_id)

        try:
            await self.cache.save(state.profile)
        except Exception as exc:
            # Cache is best-effort
            logger.warning("profile_cache_update_failed", user_id=user_id, error=str(exc))

        metrics.record_activation("succeeded", time.monotonic() - start)
        return state
