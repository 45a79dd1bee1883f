"""
Payment Provider Protocol - Provider-agnostic interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from typing import Protocol

from gowise_premium.models.domain import BrowserDismissal, PaymentSession, PlanTier


class PaymentProvider(Protocol):
    """
    Payment provider protocol.

    The provider creates hosted checkout sessions. Payment outcome is never
    reported through this interface; it arrives as a return notification.
    """

    async def initiate(self, plan: PlanTier, user_id: str, credential: str | None) -> PaymentSession:
        """
        Create a hosted checkout session for a plan.

        Args:
            plan: Plan tier being purchased
            user_id: Purchasing user's id
            credential: User's access token

        Returns:
            Immutable payment session carrying the checkout URL

        Raises:
            UnauthenticatedError: If credential is empty (caller must send the user to login)
            PaymentProviderError: If session creation fails
        """
        ...

    async def open_checkout(self, session: PaymentSession) -> BrowserDismissal:
        """
        Open the checkout URL in the external browser.

        Returns when the browser surface is dismissed. The dismissal carries
        no payment outcome.
        """
        ...


class CheckoutBrowser(Protocol):
    """Platform mechanism for showing a URL outside the app."""

    async def open(self, url: str) -> BrowserDismissal:
        """Show the URL and return once the surface is dismissed."""
        ...
