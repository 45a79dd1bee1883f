"""
PayOS Payment Provider Implementation.

Checkout links are created by the Gowise backend, which holds the PayOS
merchant keys; this client only talks to the backend.
"""

import asyncio
import webbrowser
from uuid import uuid4

import httpx
from pydantic import ValidationError
from structlog import get_logger

from gowise_premium.config import Settings, settings
from gowise_premium.exceptions import PaymentProviderError, UnauthenticatedError
from gowise_premium.models.api import PaymentLinkItem, PaymentLinkRequest, PaymentLinkResponse
from gowise_premium.models.domain import BrowserDismissal, PaymentSession, PlanTier, utc_now
from gowise_premium.observability.metrics import metrics
from gowise_premium.services.payment_provider import CheckoutBrowser

logger = get_logger(__name__)


def truncate_description(value: str | None, max_length: int) -> str:
    """Strip and cut a description to the provider's field length. Never rejects."""
    if not value:
        return ""
    return value.strip()[:max_length]


class SystemBrowser:
    """Open checkout URLs with the platform's default browser."""

    async def open(self, url: str) -> BrowserDismissal:
        opened = await asyncio.to_thread(webbrowser.open, url)
        return BrowserDismissal(kind="opened" if opened else "unavailable")


class PayOSClient:
    """
    PayOS payment provider.

    Implements the PaymentProvider protocol against the backend's
    /api/payos/payment-link endpoints.
    """

    def __init__(
        self,
        config: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        browser: CheckoutBrowser | None = None,
    ) -> None:
        self.config = config or settings
        self._http_client = http_client
        self.browser: CheckoutBrowser = browser or SystemBrowser()

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.http_timeout_seconds)
        return self._http_client

    def build_request(self, plan: PlanTier, user_id: str) -> PaymentLinkRequest:
        """Build the payment link body for a plan."""
        description = (
            truncate_description(
                self.config.payment_description, self.config.payment_description_max_length
            )
            or self.config.payment_plan_name
        )
        return PaymentLinkRequest(
            user_id=user_id,
            description=description,
            cancel_url=self.config.payment_cancel_url,
            return_url=self.config.payment_return_url,
            items=[PaymentLinkItem(name=f"{plan.label} - {self.config.payment_plan_name}")],
            duration_months=plan.duration_months,
            amount=plan.amount_minor,
        )

    async def initiate(self, plan: PlanTier, user_id: str, credential: str | None) -> PaymentSession:
        """
        Create a hosted checkout session.

        Raises:
            UnauthenticatedError: If credential is empty
            PaymentProviderError: On network failure, non-2xx, or no checkout URL
        """
        if not credential:
            metrics.record_payment_link(success=False, error_type="unauthenticated")
            raise UnauthenticatedError("Sign in to upgrade to Premium")

        body = self.build_request(plan, user_id)
        endpoint = f"{self.config.backend_base_url}{plan.endpoint or self.config.payment_link_path}"

        logger.info(
            "creating_payment_link",
            user_id=user_id,
            duration_months=plan.duration_months,
            amount_minor=plan.amount_minor,
            currency=plan.currency,
        )

        try:
            response = await self.http_client.post(
                endpoint,
                json=body.model_dump(by_alias=True),
                headers={
                    "Authorization": f"Bearer {credential}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            logger.error("payment_link_request_failed", error=str(exc), error_type=type(exc).__name__)
            metrics.record_payment_link(success=False, error_type="network")
            raise PaymentProviderError(f"Could not reach payment service: {exc}") from exc

        payload: object = None
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                logger.warning("payment_link_response_not_json", status=response.status_code)

        if response.is_error:
            message = f"Could not create payment (HTTP {response.status_code})"
            if isinstance(payload, dict):
                message = payload.get("error") or payload.get("message") or message
            logger.error("payment_link_rejected", status=response.status_code, error=message)
            metrics.record_payment_link(success=False, error_type="rejected")
            raise PaymentProviderError(str(message))

        if not isinstance(payload, dict):
            metrics.record_payment_link(success=False, error_type="malformed")
            raise PaymentProviderError("Payment service returned a malformed response")

        # Some backend versions wrap the whole link object in "data"
        inner = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        try:
            link = PaymentLinkResponse.model_validate(inner)
        except ValidationError as exc:
            metrics.record_payment_link(success=False, error_type="malformed")
            raise PaymentProviderError(f"Malformed payment link response: {exc}") from exc

        checkout_url = link.resolve_checkout_url()
        if not checkout_url:
            logger.error("payment_link_missing_checkout_url", keys=sorted(inner.keys()))
            metrics.record_payment_link(success=False, error_type="malformed")
            raise PaymentProviderError("No checkout URL in payment service response")

        session = PaymentSession(
            session_id=link.resolve_order_code() or uuid4().hex,
            plan_tier=plan,
            amount_minor=plan.amount_minor,
            currency=plan.currency,
            created_at=utc_now(),
            checkout_url=checkout_url,
            return_url=body.return_url,
            cancel_url=body.cancel_url,
        )

        logger.info("payment_link_created", user_id=user_id, session_id=session.session_id)
        metrics.record_payment_link(success=True)
        return session

    async def open_checkout(self, session: PaymentSession) -> BrowserDismissal:
        """Hand the checkout URL to the external browser."""
        logger.info("opening_checkout", session_id=session.session_id)
        dismissal = await self.browser.open(session.checkout_url)
        logger.info("checkout_dismissed", session_id=session.session_id, kind=dismissal.kind)
        return dismissal

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
