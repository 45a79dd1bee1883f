"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fakes for testing:
- A fake Gowise backend behind httpx.MockTransport (payment links + accounts)
- Session stores with a signed-in or signed-out user
- A recording browser, notifier and navigation state
- A fully wired reconciliation engine
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any

import httpx
import jwt
import pytest

# Set environment variables BEFORE importing gowise_premium modules
os.environ.setdefault("GOWISE_BACKEND_DOMAIN", "https://api.gowise.test")
os.environ.setdefault("GOWISE_LOG_FORMAT", "console")

from gowise_premium.config import Settings
from gowise_premium.models.domain import (
    PREMIUM_PLANS,
    BrowserDismissal,
    Notification,
    NotificationKind,
    PlanTier,
)
from gowise_premium.services.account_service import AccountServiceClient
from gowise_premium.services.activation import ActivationSequence
from gowise_premium.services.payos_provider import PayOSClient
from gowise_premium.services.profile_cache import InMemoryProfileCache
from gowise_premium.services.purchase_journal import InMemoryPurchaseJournal
from gowise_premium.services.reconciliation import ReconciliationEngine
from gowise_premium.services.return_events import ReturnEventListener
from gowise_premium.services.session_store import InMemorySessionStore

TEST_USER_ID = "42"
BACKEND = "https://api.gowise.test"


def make_token(user_id: str = TEST_USER_ID, claim: str = "userId") -> str:
    """Create an access token carrying the user id."""
    return jwt.encode({claim: user_id}, "test-secret-key-for-jwt-signing-min-32-chars", algorithm="HS256")


# ============================================================================
# Fake Backend
# ============================================================================


@dataclass
class FakeBackend:
    """
    In-memory Gowise backend.

    Knobs:
        premium_write_status: HTTP status for PUT premium
        premium_write_body: JSON body for PUT premium
        persist_premium: whether PUT actually flips the flag (False = lost write)
        link_status / link_body: response to POST payment-link
    """

    is_premium: bool = False
    premium_write_status: int = 200
    premium_write_body: dict[str, Any] = field(default_factory=lambda: {"success": True})
    persist_premium: bool = True
    account_status: int = 200
    link_status: int = 200
    link_body: Any = field(
        default_factory=lambda: {
            "data": {"checkoutUrl": "https://pay.payos.vn/web/abc123", "orderCode": 1730000000}
        }
    )
    requests: list[httpx.Request] = field(default_factory=list)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path.startswith("/api/payos/payment-link"):
            if isinstance(self.link_body, str):
                return httpx.Response(self.link_status, text=self.link_body)
            return httpx.Response(self.link_status, json=self.link_body)

        if request.method == "PUT" and path == f"/account/{TEST_USER_ID}/premium":
            body = json.loads(request.content)
            if self.premium_write_status < 400 and self.persist_premium:
                self.is_premium = bool(body.get("isPremium"))
            return httpx.Response(self.premium_write_status, json=self.premium_write_body)

        if request.method == "GET" and path == f"/account/{TEST_USER_ID}":
            if self.account_status >= 400:
                return httpx.Response(self.account_status, json={"message": "lookup failed"})
            return httpx.Response(
                200,
                json={"data": {"id": TEST_USER_ID, "name": "Lan", "isPremium": self.is_premium}},
            )

        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def backend() -> FakeBackend:
    """Fake backend with a compliant account service."""
    return FakeBackend()


@pytest.fixture
def http_client(backend: FakeBackend) -> httpx.AsyncClient:
    """HTTP client routed to the fake backend."""
    return httpx.AsyncClient(transport=httpx.MockTransport(backend.handler))


@pytest.fixture
def test_settings() -> Settings:
    """Settings pointing at the fake backend."""
    return Settings(backend_domain=BACKEND, app_scheme="gowise")


# ============================================================================
# Host App Fakes
# ============================================================================


class RecordingBrowser:
    """Browser that records opened URLs and is dismissed immediately."""

    def __init__(self) -> None:
        self.opened: list[str] = []

    async def open(self, url: str) -> BrowserDismissal:
        self.opened.append(url)
        return BrowserDismissal(kind="dismiss")


class RecordingNotifier:
    """Notifier that records every notification."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    async def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def of_kind(self, kind: NotificationKind) -> list[Notification]:
        return [n for n in self.notifications if n.kind == kind]


class RecordingNavigation:
    """Navigation state that counts parameter clears."""

    def __init__(self) -> None:
        self.clears = 0

    async def clear_return_params(self) -> None:
        self.clears += 1


@pytest.fixture
def browser() -> RecordingBrowser:
    return RecordingBrowser()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def navigation() -> RecordingNavigation:
    return RecordingNavigation()


@pytest.fixture
def access_token() -> str:
    """Access token for the test user."""
    return make_token()


@pytest.fixture
def signed_in_store() -> InMemorySessionStore:
    """Session store with a signed-in user."""
    return InMemorySessionStore(credential=make_token(), user_id=TEST_USER_ID)


@pytest.fixture
def signed_out_store() -> InMemorySessionStore:
    """Session store with nobody signed in."""
    return InMemorySessionStore()


@pytest.fixture
def monthly_plan() -> PlanTier:
    return PREMIUM_PLANS[0]


# ============================================================================
# Wired Components
# ============================================================================


@pytest.fixture
def provider(
    test_settings: Settings, http_client: httpx.AsyncClient, browser: RecordingBrowser
) -> PayOSClient:
    return PayOSClient(test_settings, http_client=http_client, browser=browser)


@pytest.fixture
def accounts(test_settings: Settings, http_client: httpx.AsyncClient) -> AccountServiceClient:
    return AccountServiceClient(test_settings, http_client=http_client)


@pytest.fixture
def profile_cache() -> InMemoryProfileCache:
    return InMemoryProfileCache()


@pytest.fixture
def journal() -> InMemoryPurchaseJournal:
    return InMemoryPurchaseJournal()


@pytest.fixture
def make_engine(provider, accounts, profile_cache, journal, notifier):
    """Factory for an engine bound to a given session store."""

    def _create(sessions: InMemorySessionStore) -> ReconciliationEngine:
        return ReconciliationEngine(
            provider=provider,
            activation=ActivationSequence(accounts, profile_cache),
            sessions=sessions,
            journal=journal,
            notifier=notifier,
        )

    return _create


@pytest.fixture
def engine(make_engine, signed_in_store: InMemorySessionStore) -> ReconciliationEngine:
    """Engine for a signed-in user."""
    return make_engine(signed_in_store)


@pytest.fixture
def listener(engine: ReconciliationEngine, navigation: RecordingNavigation) -> ReturnEventListener:
    return ReturnEventListener(engine, navigation)
