"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class ReturnClassification(str, Enum):
    """Outcome of classifying a return notification."""

    SUCCESS = "success"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class AttemptOutcome(str, Enum):
    """Activation attempt outcome."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ReconciliationState(str, Enum):
    """Reconciliation engine states."""

    IDLE = "idle"
    LINK_REQUESTED = "link_requested"
    AWAITING_RETURN = "awaiting_return"
    RECONCILING = "reconciling"
    NEEDS_REAUTH = "needs_reauth"
    ACTIVATED = "activated"
    ACTIVATION_FAILED = "activation_failed"
    CANCELLED_BY_USER = "cancelled_by_user"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        ReconciliationState.ACTIVATED,
        ReconciliationState.ACTIVATION_FAILED,
        ReconciliationState.CANCELLED_BY_USER,
    }
)


class NotificationKind(str, Enum):
    """User-facing notification kinds."""

    ACTIVATED = "activated"
    ACTIVATION_FAILED = "activation_failed"
    CANCELLED = "cancelled"
    LOGIN_REQUIRED = "login_required"
    INFO = "info"


@dataclass(frozen=True)
class PlanTier:
    """A purchasable premium plan (duration/price tuple)."""

    duration_months: int
    amount_minor: int
    currency: str
    label: str
    endpoint: str | None = None

    def __post_init__(self) -> None:
        """Validate plan constraints."""
        if self.duration_months <= 0:
            raise ValueError(f"Plan duration must be positive: {self.duration_months}")
        if self.amount_minor <= 0:
            raise ValueError(f"Plan amount must be positive: {self.amount_minor}")
        if len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency}")
        if not self.label:
            raise ValueError("Plan label cannot be empty")


# Prices are whole VND (the currency has no minor unit)
PREMIUM_PLANS: tuple[PlanTier, ...] = (
    PlanTier(
        duration_months=1,
        amount_minor=52397,
        currency="VND",
        label="Gói 1 tháng",
        endpoint="/api/payos/payment-link",
    ),
    PlanTier(
        duration_months=6,
        amount_minor=314380,
        currency="VND",
        label="Gói 6 tháng",
        endpoint="/api/payos/payment-link/premium",
    ),
    PlanTier(
        duration_months=12,
        amount_minor=628760,
        currency="VND",
        label="Gói 1 năm",
        endpoint="/api/payos/payment-link/enterprise",
    ),
)


def plan_for_duration(duration_months: int) -> PlanTier:
    """Look up a built-in plan by its duration."""
    for plan in PREMIUM_PLANS:
        if plan.duration_months == duration_months:
            return plan
    raise ValueError(f"No premium plan for {duration_months} months")


@dataclass(frozen=True)
class PaymentSession:
    """Hosted checkout session. Immutable once created."""

    session_id: str
    plan_tier: PlanTier
    amount_minor: int
    currency: str
    created_at: datetime
    checkout_url: str
    return_url: str
    cancel_url: str

    def __post_init__(self) -> None:
        """Validate session fields."""
        if not self.session_id:
            raise ValueError("session_id cannot be empty")
        if not self.checkout_url:
            raise ValueError("checkout_url cannot be empty")


@dataclass(frozen=True)
class ReturnEvent:
    """A return notification as delivered on screen focus."""

    raw_status_code: str | None
    raw_order_reference: str | None
    cancel_flag: bool
    received_at: datetime
    raw_code: str | None = None


@dataclass(frozen=True)
class ActivationAttempt:
    """
    One attempt to convert a confirmed payment into premium state.

    user_id is None while the attempt waits for a login that identifies the account.
    """

    user_id: str | None
    session_id: str | None
    started_at: datetime
    outcome: AttemptOutcome = AttemptOutcome.PENDING
    error_detail: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.outcome == AttemptOutcome.PENDING


@dataclass(frozen=True)
class AccountPremiumState:
    """Premium state as confirmed by a read from the Account Service."""

    user_id: str
    is_premium: bool
    last_verified_at: datetime
    profile: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class Notification:
    """User-facing message emitted by the engine."""

    kind: NotificationKind
    title: str
    message: str


@dataclass(frozen=True)
class BrowserDismissal:
    """Signal that the external checkout surface was dismissed. Carries no outcome."""

    kind: str = "dismiss"


@dataclass(frozen=True)
class JournalEntry:
    """Durable record of a purchase that has not reached a terminal state."""

    user_id: str
    session: PaymentSession | None
    state: ReconciliationState
    activation_owed: bool
    updated_at: datetime
