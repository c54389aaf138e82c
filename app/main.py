"""Fulfillment API — FastAPI application factory."""


import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.db.base import get_session_factory
from app.integrations import build_collaborators
from app.middleware.audit import AuditMiddleware
from app.schemas.common import HealthResponse
from app.services.outbox import OutboxWorker

# v1 routers
from app.routers.v1.checkout import router as checkout_v1_router
from app.routers.v1.compliance import router as compliance_v1_router
from app.routers.v1.orders import router as orders_v1_router
from app.routers.v1.snapshots import router as snapshots_v1_router

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Set up structured logging for the application."""
    level = logging.DEBUG if settings.app_env == "development" else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    collaborators = build_collaborators(settings)
    await collaborators.start()
    worker = OutboxWorker(get_session_factory(), collaborators, settings)
    app.state.collaborators = collaborators
    app.state.outbox_worker = worker
    app.state.session_factory = get_session_factory()
    if settings.outbox_worker_enabled:
        await worker.start()
    try:
        yield
    finally:
        await worker.stop()
        await collaborators.aclose()
        logger.info("Collaborator clients closed")


def create_app() -> FastAPI:
    _configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url="/docs" if settings.app_env == "development" else None,
        redoc_url="/redoc" if settings.app_env == "development" else None,
        lifespan=lifespan,
    )

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # --- Audit middleware ---
    app.add_middleware(AuditMiddleware, enabled=settings.audit_requests)

    # --- Global exception handlers ---
    register_exception_handlers(app)

    # --- v1 API routes (/api/v1/*) ---
    app.include_router(checkout_v1_router, prefix="/api/v1")
    app.include_router(orders_v1_router, prefix="/api/v1")
    app.include_router(snapshots_v1_router, prefix="/api/v1")
    app.include_router(compliance_v1_router, prefix="/api/v1")

    # --- Health check ---
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health(request: Request):
        return HealthResponse(
            app=settings.app_name,
            env=settings.app_env,
            order_number_test_mode=settings.order_number_test_mode,
            outbox_running=request.app.state.outbox_worker.running,
        )

    return app


app = create_app()
