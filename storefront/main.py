from contextlib import asynccontextmanager
from fastapi import FastAPI
from storefront.api import cur_version
from storefront.api.routers import public_routers
from storefront.checkout.runtime import CheckoutRuntime
from storefront.clients.collaborator import StorefrontApiClient
from storefront.common.custom_exceptions import register_all_exceptions
from storefront.common.logging_setup import get_logger, setup_logging, teardown_logging
from storefront.config.app_config import app_config
from storefront.db.connection import async_engine
from storefront.middlewares.request_id_middleware import RequestIdMiddleware
from storefront.session.store import build_session_store
from metrics.custom_instrumentator import instrumentator


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    setup_logging()
    logger = get_logger("storefront.app")

    # tests pre-seed these on app.state before entering the lifespan
    if getattr(app.state, "storefront_client", None) is None:
        app.state.storefront_client = StorefrontApiClient()
    if getattr(app.state, "session_store", None) is None:
        app.state.session_store = build_session_store()
    app.state.checkout_runtime = CheckoutRuntime(app.state.storefront_client)
    logger.info("app.started", extra={"session_store": type(app.state.session_store).__name__})

    try:
        yield
    finally:
        # wallet watchers and pincode checks first, they use the client and the store
        await app.state.checkout_runtime.shutdown()
        await app.state.session_store.close()
        await app.state.storefront_client.aclose()
        await async_engine.dispose()
        logger.info("app.stopped")
        teardown_logging()


def create_app():
    app = FastAPI(
        title="Storefront Checkout",
        version=cur_version,
        lifespan=app_lifespan)

    app.include_router(public_routers)

    app.add_middleware(RequestIdMiddleware)
    register_all_exceptions(app)
    if app_config.ENABLE_METRICS:
        instrumentator.instrument(app).expose(app, endpoint="/metrics")

    return app


app = create_app()
