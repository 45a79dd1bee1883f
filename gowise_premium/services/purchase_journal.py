"""
Purchase Journal - durable record of purchases awaiting reconciliation.

A payment completed in the external browser must not be forgotten when the
app is killed while waiting for the return notification, or while the user
is sent to log in. The journal keeps at most one entry per user and is
cleared once the purchase reaches a terminal state.
"""

from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from structlog import get_logger

from gowise_premium.db.models import PendingPurchase
from gowise_premium.db.session import JournalDatabase
from gowise_premium.exceptions import JournalError
from gowise_premium.models.domain import (
    JournalEntry,
    PaymentSession,
    PlanTier,
    ReconciliationState,
    utc_now,
)

logger = get_logger(__name__)


class PurchaseJournal(Protocol):
    """Storage for the one non-terminal purchase per user."""

    async def record(self, entry: JournalEntry) -> None:
        """Insert or replace the user's entry."""
        ...

    async def load(self, user_id: str) -> JournalEntry | None:
        """Return the user's entry, if any."""
        ...

    async def clear(self, user_id: str) -> None:
        """Remove the user's entry."""
        ...


class InMemoryPurchaseJournal:
    """Journal held in process memory. Does not survive restarts."""

    def __init__(self) -> None:
        self.entries: dict[str, JournalEntry] = {}

    async def record(self, entry: JournalEntry) -> None:
        self.entries[entry.user_id] = entry

    async def load(self, user_id: str) -> JournalEntry | None:
        return self.entries.get(user_id)

    async def clear(self, user_id: str) -> None:
        self.entries.pop(user_id, None)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _to_row(entry: JournalEntry) -> PendingPurchase:
    session = entry.session
    return PendingPurchase(
        user_id=entry.user_id,
        state=entry.state.value,
        activation_owed=entry.activation_owed,
        session_id=session.session_id if session else None,
        plan_duration_months=session.plan_tier.duration_months if session else None,
        plan_label=session.plan_tier.label if session else None,
        plan_endpoint=session.plan_tier.endpoint if session else None,
        amount_minor=session.amount_minor if session else None,
        currency=session.currency if session else None,
        checkout_url=session.checkout_url if session else None,
        return_url=session.return_url if session else None,
        cancel_url=session.cancel_url if session else None,
        session_created_at=session.created_at if session else None,
        updated_at=entry.updated_at,
    )


def _from_row(row: PendingPurchase) -> JournalEntry:
    session: PaymentSession | None = None
    if row.session_id and row.checkout_url and row.plan_duration_months and row.amount_minor:
        plan = PlanTier(
            duration_months=row.plan_duration_months,
            amount_minor=row.amount_minor,
            currency=row.currency or "VND",
            label=row.plan_label or f"{row.plan_duration_months} months",
            endpoint=row.plan_endpoint,
        )
        session = PaymentSession(
            session_id=row.session_id,
            plan_tier=plan,
            amount_minor=row.amount_minor,
            currency=plan.currency,
            created_at=_as_utc(row.session_created_at) or utc_now(),
            checkout_url=row.checkout_url,
            return_url=row.return_url or "",
            cancel_url=row.cancel_url or "",
        )

    return JournalEntry(
        user_id=row.user_id,
        session=session,
        state=ReconciliationState(row.state),
        activation_owed=row.activation_owed,
        updated_at=_as_utc(row.updated_at) or utc_now(),
    )


class SqlPurchaseJournal:
    """
    Journal backed by SQLAlchemy.

    Writes follow the pattern:
    1. Merge the row
    2. Commit
    3. Read back and verify the stored state
    """

    def __init__(self, database: JournalDatabase) -> None:
        self.database = database

    async def record(self, entry: JournalEntry) -> None:
        try:
            async with self.database.session() as session:
                await session.merge(_to_row(entry))
                await session.commit()

                stored = await session.get(PendingPurchase, entry.user_id, populate_existing=True)
                if stored is None or stored.state != entry.state.value:
                    raise JournalError(f"Journal write for user {entry.user_id} not visible")
        except SQLAlchemyError as exc:
            logger.error("journal_write_failed", user_id=entry.user_id, error=str(exc))
            raise JournalError(str(exc)) from exc

        logger.debug(
            "journal_entry_recorded",
            user_id=entry.user_id,
            state=entry.state.value,
            activation_owed=entry.activation_owed,
        )

    async def load(self, user_id: str) -> JournalEntry | None:
        try:
            async with self.database.session() as session:
                row = await session.get(PendingPurchase, user_id)
                return _from_row(row) if row is not None else None
        except SQLAlchemyError as exc:
            logger.error("journal_read_failed", user_id=user_id, error=str(exc))
            raise JournalError(str(exc)) from exc
        except ValueError as exc:
            # Unknown state or invalid stored plan
            logger.error("journal_entry_unreadable", user_id=user_id, error=str(exc))
            raise JournalError(f"Unreadable journal entry for user {user_id}: {exc}") from exc

    async def clear(self, user_id: str) -> None:
        try:
            async with self.database.session() as session:
                await session.execute(
                    delete(PendingPurchase).where(PendingPurchase.user_id == user_id)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("journal_clear_failed", user_id=user_id, error=str(exc))
            raise JournalError(str(exc)) from exc
