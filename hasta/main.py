import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hasta.config import Settings, configure_logging
from hasta.context import AppContext
from hasta.database import init_database
from hasta.errors import register_exception_handlers
from hasta.routes import (
    addresses,
    admin_orders,
    auth,
    b2b,
    cart,
    health,
    orders,
    products,
    returns,
)
from hasta.services.identity import ensure_admin_exists
from hasta.services.notifications import OrderNotifier

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API. `uvicorn hasta.main:create_app --factory` reads
    settings from the environment.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    ctx = AppContext(settings)

    app = FastAPI(title="Purbanchal Hasta Udyog API", version="1.0.0")
    app.state.context = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # ── Health & Auth ──────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(auth.router)

    # ── Storefront ────────────────────────────────────────────────────
    app.include_router(products.router, prefix="/api")
    app.include_router(cart.router, prefix="/api")
    app.include_router(addresses.router, prefix="/api")
    app.include_router(orders.router, prefix="/api")
    app.include_router(returns.router, prefix="/api")
    app.include_router(b2b.router, prefix="/api")

    # ── Admin ─────────────────────────────────────────────────────────
    app.include_router(admin_orders.router, prefix="/api")

    @app.on_event("startup")
    def startup():
        init_database(ctx.engine)
        db = ctx.session_factory()
        try:
            ensure_admin_exists(db, settings)
        finally:
            db.close()

        ctx.notifier = OrderNotifier(ctx.store, ctx.writer, settings)
        logger.info("Startup complete | database=%s", ctx.engine.url.render_as_string(hide_password=True))

    @app.on_event("shutdown")
    def shutdown():
        ctx.close()

    return app
