"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class PendingPurchase(Base):
    """
    ORM model for pending_purchases table.

    One row per user: the purchase the client is still responsible for.
    The row is deleted once the purchase reaches a terminal state.
    """

    __tablename__ = "pending_purchases"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    # Engine state the purchase was last in (awaiting_return / reconciling / needs_reauth)
    state: Mapped[str] = mapped_column(String(50), nullable=False)
    activation_owed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # PaymentSession (null when a late notification arrived without one)
    session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    plan_duration_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    plan_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    plan_endpoint: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount_minor: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    checkout_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    return_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancel_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    session_created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
