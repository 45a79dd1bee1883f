"""
Main Application - return notification receiver and client wiring.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest

from gowise_premium.api.routes import router
from gowise_premium.config import Settings, settings
from gowise_premium.db.session import JournalDatabase
from gowise_premium.observability import get_logger, metrics, setup_logging
from gowise_premium.services.account_service import AccountServiceClient
from gowise_premium.services.activation import ActivationSequence
from gowise_premium.services.payos_provider import PayOSClient
from gowise_premium.services.profile_cache import JsonFileProfileCache
from gowise_premium.services.purchase_journal import SqlPurchaseJournal
from gowise_premium.services.reconciliation import Notifier, ReconciliationEngine
from gowise_premium.services.return_events import NavigationState, ReturnEventListener
from gowise_premium.services.session_store import (
    InMemorySessionStore,
    SessionStore,
    TokenSessionStore,
)

logger = get_logger(__name__)


class PremiumClient:
    """All collaborators of one account session, wired from settings."""

    def __init__(
        self,
        sessions: SessionStore,
        notifier: Notifier | None = None,
        navigation: NavigationState | None = None,
        config: Settings | None = None,
    ) -> None:
        self.config = config or settings
        self.database = JournalDatabase(self.config.journal_database_url)
        self.provider = PayOSClient(self.config)
        self.accounts = AccountServiceClient(self.config)
        self.cache = JsonFileProfileCache(
            self.config.profile_cache_path, self.config.profile_cache_key
        )
        self.engine = ReconciliationEngine(
            provider=self.provider,
            activation=ActivationSequence(self.accounts, self.cache),
            sessions=sessions,
            journal=SqlPurchaseJournal(self.database),
            notifier=notifier,
        )
        self.listener = ReturnEventListener(self.engine, navigation)

    async def start(self) -> None:
        """Create the journal schema and reload any unfinished purchase."""
        await self.database.create_schema()
        state = await self.engine.restore()
        logger.info("premium_client_started", state=state.value)

    async def close(self) -> None:
        await self.provider.close()
        await self.accounts.close()
        await self.database.close()


def create_app(client: PremiumClient) -> FastAPI:
    """Build the receiver app around a wired client."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging()
        logger.info(
            "receiver_starting",
            service=settings.service_name,
            version=settings.service_version,
            metrics_enabled=settings.metrics_enabled,
        )
        await client.start()

        yield

        logger.info("receiver_shutting_down")
        await client.close()

    app = FastAPI(
        title="Gowise Premium Receiver",
        version=settings.service_version,
        lifespan=lifespan,
    )
    app.state.engine = client.engine
    app.state.listener = client.listener

    @app.middleware("http")
    async def logging_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Log all HTTP requests."""
        response = await call_next(request)
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )
        return response

    app.include_router(router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness endpoint."""
        return {"service": settings.service_name, "status": "running"}

    @app.get("/metrics")
    async def metrics_endpoint() -> Response:
        """
        Prometheus metrics endpoint.

        Returns metrics in Prometheus text format.
        """
        return PlainTextResponse(generate_latest(metrics.registry))

    return app


def serve(client: PremiumClient) -> None:
    """Run the receiver on the configured host/port."""
    import uvicorn

    uvicorn.run(
        create_app(client),
        host=settings.receiver_host,
        port=settings.receiver_port,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    """Console entry point: receiver for the account in GOWISE_ACCESS_TOKEN."""
    sessions = TokenSessionStore(InMemorySessionStore(credential=settings.access_token or None))
    serve(PremiumClient(sessions))


if __name__ == "__main__":
    main()
