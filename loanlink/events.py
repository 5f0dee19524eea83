import logging

from fastapi import FastAPI

from loanlink.core.settings import settings
from loanlink.db.session import create_engine, create_session_factory
from loanlink.services.application_store import ApplicationStore
from loanlink.services.payment_gateway import StripeCheckoutGateway

logger = logging.getLogger(__name__)


async def init_state(app: FastAPI) -> None:
    """Build the process-wide handles once; handlers receive them via dependencies."""
    engine = create_engine()
    app.state.engine = engine
    app.state.store = ApplicationStore(
        create_session_factory(engine),
        retry_backoff_seconds=settings.store_retry_backoff_seconds,
    )
    app.state.payment_gateway = StripeCheckoutGateway.from_settings()
    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET is not set; payment notifications will be rejected")


async def teardown_state(app: FastAPI) -> None:
    gateway = getattr(app.state, "payment_gateway", None)
    if gateway is not None:
        await gateway.aclose()
    engine = getattr(app.state, "engine", None)
    if engine is not None:
        await engine.dispose()


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Application startup")
        await init_state(app)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Application shutdown")
        await teardown_state(app)
