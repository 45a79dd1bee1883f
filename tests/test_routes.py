"""
Tests for the return notification receiver.

The app is driven through FastAPI's TestClient with the full lifespan, so the
journal schema is created and restore runs on startup.
"""

import pytest
import uvicorn
from fastapi import FastAPI
from fastapi.testclient import TestClient

from gowise_premium.api.routes import get_engine
from gowise_premium.config import Settings, settings
from gowise_premium.main import PremiumClient, create_app, main

BACKEND = "https://api.gowise.test"


@pytest.fixture
def premium_client(tmp_path, signed_in_store, notifier, navigation, http_client, browser):
    """PremiumClient on temp storage, talking to the fake backend."""
    config = Settings(
        backend_domain=BACKEND,
        journal_database_url=f"sqlite+aiosqlite:///{tmp_path / 'journal.db'}",
        profile_cache_path=str(tmp_path / "profile-cache.json"),
    )
    client = PremiumClient(signed_in_store, notifier=notifier, navigation=navigation, config=config)
    client.provider._http_client = http_client
    client.provider.browser = browser
    client.accounts._http_client = http_client
    return client


@pytest.fixture
def api(premium_client):
    with TestClient(create_app(premium_client)) as test_client:
        yield test_client


class TestHealth:
    """Tests for service endpoints."""

    def test_health(self, api):
        response = api.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_metrics(self, api):
        api.get("/premium", params={"status": "PENDING"})

        response = api.get("/metrics")

        assert response.status_code == 200
        assert "gowise_premium_return_events_total" in response.text


class TestReceiveReturn:
    """Tests for GET /premium."""

    def test_paid_activates(self, api, backend, navigation, tmp_path):
        response = api.get("/premium", params={"status": "PAID", "orderCode": "123", "code": "00"})

        assert response.status_code == 200
        assert response.json() == {"classification": "success", "state": "activated"}
        assert backend.is_premium is True
        assert navigation.clears == 1
        assert (tmp_path / "profile-cache.json").exists()

    def test_reload_does_not_reactivate(self, api, backend):
        """A browser refresh re-delivers the same return without a second write."""
        params = {"status": "PAID", "orderCode": "123"}

        api.get("/premium", params=params)
        response = api.get("/premium", params=params)

        assert response.json()["state"] == "activated"
        assert len(backend.calls("PUT", "/account/42/premium")) == 1

    def test_cancel(self, api, backend):
        response = api.get("/premium", params={"status": "CANCELLED", "cancel": "true"})

        assert response.json() == {"classification": "cancelled", "state": "cancelled_by_user"}
        assert backend.requests == []

    def test_unknown_is_noop(self, api, navigation):
        response = api.get("/premium")

        assert response.json() == {"classification": "unknown", "state": "idle"}
        assert navigation.clears == 0

    def test_repeated_param_first_wins(self, api):
        response = api.get("/premium?status=CANCELLED&status=PAID")

        assert response.json()["classification"] == "cancelled"

    def test_failed_verification(self, api, backend, notifier):
        backend.persist_premium = False

        response = api.get("/premium", params={"status": "PAID"})

        assert response.json()["state"] == "activation_failed"
        assert "support" in notifier.notifications[-1].message


class TestPremiumStatus:
    """Tests for GET /premium/status."""

    def test_idle_snapshot(self, api):
        body = api.get("/premium/status").json()

        assert body["state"] == "idle"
        assert body["reconciling"] is False
        assert body["attempt"] is None

    def test_snapshot_after_activation(self, api):
        api.get("/premium", params={"status": "PAID", "orderCode": "123"})

        body = api.get("/premium/status").json()

        assert body["state"] == "activated"
        assert body["attempt"]["outcome"] == "succeeded"
        assert body["attempt"]["session_id"] == "123"

    def test_engine_is_injected(self, premium_client, make_engine, signed_out_store):
        """The route resolves its engine through the dependency."""
        other = make_engine(signed_out_store)
        other.status_message = "from override"
        app = create_app(premium_client)
        app.dependency_overrides[get_engine] = lambda: other

        with TestClient(app) as test_client:
            body = test_client.get("/premium/status").json()

        assert body["status_message"] == "from override"


class TestMain:
    """Tests for the console entry point."""

    @pytest.mark.asyncio
    async def test_main_serves_receiver_for_token_account(self, monkeypatch, access_token):
        calls = []
        monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
        monkeypatch.setattr(settings, "access_token", access_token)

        main()

        ((app, kwargs),) = calls
        assert isinstance(app, FastAPI)
        assert kwargs["host"] == settings.receiver_host
        assert kwargs["port"] == settings.receiver_port
        assert await app.state.engine.sessions.get_user_id() == "42"
