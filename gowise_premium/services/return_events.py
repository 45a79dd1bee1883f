"""
Return Event Listener - classifies return notifications from hosted checkout.

The host app calls ``on_focus`` every time the premium screen regains focus,
so the same parameters can be delivered many times. Two independent layers
keep a notification from being applied twice: parameters are cleared from
navigation state here, and the engine's in-progress guard drops duplicates
that race the clearing.
"""

from collections.abc import Mapping, Sequence
from typing import Protocol

from structlog import get_logger

from gowise_premium.models.domain import (
    ReconciliationState,
    ReturnClassification,
    ReturnEvent,
    utc_now,
)
from gowise_premium.observability.metrics import metrics
from gowise_premium.services.reconciliation import ReconciliationEngine

logger = get_logger(__name__)

ReturnParams = Mapping[str, str | Sequence[str] | None]

STATUS_PAID = "PAID"
STATUS_CANCELLED = "CANCELLED"
SUCCESS_CODE = "00"


class NavigationState(Protocol):
    """Durable navigation state holding the screen's entry parameters."""

    async def clear_return_params(self) -> None:
        """Remove payment-related parameters from the current route."""
        ...


class NoopNavigationState:
    """Navigation state for receivers that have nothing to clear."""

    async def clear_return_params(self) -> None:
        return None


def extract_single_param(value: str | Sequence[str] | None) -> str | None:
    """Route params may be repeated; the first value wins."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    for item in value:
        return item or None
    return None


def parse_return_params(params: ReturnParams) -> ReturnEvent:
    """Build a ReturnEvent from raw route parameters."""
    status = extract_single_param(params.get("status"))
    cancel = extract_single_param(params.get("cancel"))
    order_ref = extract_single_param(params.get("orderCode")) or extract_single_param(
        params.get("order_code")
    )
    return ReturnEvent(
        raw_status_code=status.strip().upper() if status else None,
        raw_order_reference=order_ref,
        cancel_flag=bool(cancel) and cancel.strip().lower() == "true",
        received_at=utc_now(),
        raw_code=extract_single_param(params.get("code")),
    )


def classify_return_event(event: ReturnEvent) -> ReturnClassification:
    """
    Classify a return notification.

    Precedence:
    1. status PAID, or code "00" without the cancel flag -> SUCCESS
    2. status CANCELLED, or the cancel flag               -> CANCELLED
    3. anything else                                      -> UNKNOWN (no-op)
    """
    status = (event.raw_status_code or "").upper()
    if status == STATUS_PAID or (event.raw_code == SUCCESS_CODE and not event.cancel_flag):
        return ReturnClassification.SUCCESS
    if status == STATUS_CANCELLED or event.cancel_flag:
        return ReturnClassification.CANCELLED
    return ReturnClassification.UNKNOWN


class ReturnEventListener:
    """Feeds return notifications into the reconciliation engine."""

    def __init__(
        self,
        engine: ReconciliationEngine,
        navigation: NavigationState | None = None,
    ) -> None:
        self.engine = engine
        self.navigation: NavigationState = navigation or NoopNavigationState()

    async def on_focus(self, params: ReturnParams) -> tuple[ReturnClassification, ReconciliationState]:
        """
        Handle a focus transition carrying (possibly stale) return parameters.

        Returns:
            The classification and the engine state after handling
        """
        event = parse_return_params(params)
        classification = classify_return_event(event)

        logger.info(
            "return_event_classified",
            classification=classification.value,
            status=event.raw_status_code,
            code=event.raw_code,
            cancel=event.cancel_flag,
            order_reference=event.raw_order_reference,
        )
        metrics.record_return_event(classification.value)

        if classification == ReturnClassification.UNKNOWN:
            return classification, self.engine.state

        await self.navigation.clear_return_params()
        state = await self.engine.handle_return(classification, event)
        return classification, state
