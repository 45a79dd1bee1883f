"""
Return notification routes.

The hosted checkout redirects the browser to ``/premium`` with the payment
outcome attached as query parameters. Browsers re-request the page on
refresh and back-navigation, so every call goes through the listener's
classification and the engine's duplicate guard.
"""

from fastapi import APIRouter, Depends, Request

from gowise_premium.models.api import EngineSnapshot, ReturnAck
from gowise_premium.services.reconciliation import ReconciliationEngine
from gowise_premium.services.return_events import ReturnEventListener

router = APIRouter(tags=["premium"])

RETURN_PARAM_NAMES = ("status", "orderCode", "order_code", "cancel", "code")


def get_engine(request: Request) -> ReconciliationEngine:
    engine: ReconciliationEngine = request.app.state.engine
    return engine


def get_listener(request: Request) -> ReturnEventListener:
    listener: ReturnEventListener = request.app.state.listener
    return listener


@router.get("/premium", response_model=ReturnAck)
async def receive_return(
    request: Request,
    listener: ReturnEventListener = Depends(get_listener),
) -> ReturnAck:
    """Receive a return notification from hosted checkout."""
    params = {
        name: request.query_params.getlist(name)
        for name in RETURN_PARAM_NAMES
        if name in request.query_params
    }
    classification, state = await listener.on_focus(params)
    return ReturnAck(classification=classification.value, state=state)


@router.get("/premium/status", response_model=EngineSnapshot)
async def premium_status(
    engine: ReconciliationEngine = Depends(get_engine),
) -> EngineSnapshot:
    """Current reconciliation state for this account session."""
    return engine.snapshot()
