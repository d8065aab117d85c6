from contextlib import asynccontextmanager
from fastapi import FastAPI
from metrics.custom_instrumentator import instrumentator
from printstore.api import cur_version
from printstore.api.routers import admin_routers, public_routers
from printstore.audit.outbox import AuditOutbox
from printstore.common.custom_exceptions import register_all_exceptions
from printstore.common.logging_setup import get_logger, setup_logging, teardown_logging
from printstore.config.admin_config import admin_config
from printstore.config.settings import config_settings
from printstore.db.connection import async_engine, async_session
from printstore.middlewares.request_id_middleware import RequestIdMiddleware
from printstore.payments.gateway import RazorpayGateway

logger = get_logger("printstore.app")


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    setup_logging()

    # tests may pre-seed a gateway bound to a mock transport
    if getattr(app.state, "payment_gateway", None) is None:
        app.state.payment_gateway = RazorpayGateway()

    audit_outbox = AuditOutbox(async_session, max_queue_size=config_settings.AUDIT_QUEUE_SIZE,
                               workers_count=config_settings.AUDIT_WORKERS)
    audit_outbox.start()
    app.state.audit_outbox = audit_outbox
    logger.info("app.started", extra={"env": admin_config.ENV})

    try:
        yield
    finally:
        # new requests are no longer accepted at this point
        await audit_outbox.shutdown(drain_first=True)
        await app.state.payment_gateway.aclose()
        app.state.payment_gateway = None
        # safe to dispose DB engine after workers exit
        await async_engine.dispose()
        teardown_logging()


def create_app():
    app = FastAPI(
        title="Printstore",
        version=cur_version,
        lifespan=app_lifespan)

    app.include_router(public_routers)

    if admin_config.ENABLE_ADMIN:
        app.include_router(admin_routers)      # mounts /api/v1/admin

    app.add_middleware(RequestIdMiddleware)
    register_all_exceptions(app)

    if admin_config.METRICS_ENABLED:
        instrumentator.instrument(app).expose(app, endpoint="/metrics")

    return app


app = create_app()
