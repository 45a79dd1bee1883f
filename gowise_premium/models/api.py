"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from gowise_premium.models.domain import AttemptOutcome, ReconciliationState

# ============================================================================
# Payment Link Models
# ============================================================================


class PaymentLinkItem(BaseModel):
    """Line item shown on the hosted checkout page."""

    name: str = Field(..., min_length=1)


class PaymentLinkRequest(BaseModel):
    """POST /api/payos/payment-link request body."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., min_length=1, alias="userId")
    description: str = Field(..., min_length=1)
    cancel_url: str = Field(..., alias="cancelUrl")
    return_url: str = Field(..., alias="returnUrl")
    items: list[PaymentLinkItem]
    duration_months: int = Field(..., gt=0, alias="durationMonths")
    amount: int = Field(..., gt=0)


class PaymentLinkResponse(BaseModel):
    """
    Checkout link returned by the backend.

    The backend has shipped several shapes over time; the URL may sit at the
    top level or under ``data`` / ``payload`` in camel or snake case.
    """

    model_config = ConfigDict(extra="allow")

    checkout_url: str | None = Field(None, alias="checkoutUrl")
    checkout_url_snake: str | None = Field(None, alias="checkout_url")
    redirect_url: str | None = Field(None, alias="redirectUrl")
    redirect_url_snake: str | None = Field(None, alias="redirect_url")
    order_code: int | str | None = Field(None, alias="orderCode")
    data: dict[str, Any] | None = None
    payload: dict[str, Any] | None = None

    def resolve_checkout_url(self) -> str | None:
        """Return the first checkout URL found, top level first."""
        for candidate in (
            self.checkout_url,
            self.checkout_url_snake,
            self.redirect_url,
            self.redirect_url_snake,
        ):
            if isinstance(candidate, str) and candidate:
                return candidate

        for nested in (self.data, self.payload):
            if not isinstance(nested, dict):
                continue
            for key in ("checkoutUrl", "checkout_url"):
                value = nested.get(key)
                if isinstance(value, str) and value:
                    return value
        return None

    def resolve_order_code(self) -> str | None:
        """Return the provider order code, if the backend echoed one."""
        if self.order_code is not None:
            return str(self.order_code)
        for nested in (self.data, self.payload):
            if isinstance(nested, dict) and nested.get("orderCode") is not None:
                return str(nested["orderCode"])
        return None


# ============================================================================
# Account Models
# ============================================================================


class PremiumUpdateRequest(BaseModel):
    """PUT /account/{user_id}/premium request body."""

    model_config = ConfigDict(populate_by_name=True)

    is_premium: bool = Field(True, alias="isPremium")


class AccountRecord(BaseModel):
    """Account as read from GET /account/{user_id}. Unknown fields are kept."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    is_premium: bool = Field(False, alias="isPremium")


# ============================================================================
# Receiver Models
# ============================================================================


class ReturnAck(BaseModel):
    """Response of the return notification receiver."""

    classification: str
    state: ReconciliationState


class AttemptView(BaseModel):
    """Read-only view of an activation attempt."""

    user_id: str | None
    session_id: str | None
    outcome: AttemptOutcome
    error_detail: str | None = None


class EngineSnapshot(BaseModel):
    """GET /premium/status response."""

    state: ReconciliationState
    reconciling: bool
    session_id: str | None = None
    checkout_url: str | None = None
    attempt: AttemptView | None = None
    status_message: str | None = None
