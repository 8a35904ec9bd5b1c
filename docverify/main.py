"""Document verification API: FastAPI application factory."""


import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from docverify.core.config import settings
from docverify.core.exceptions import register_exception_handlers
from docverify.core.observability import VerificationMetrics
from docverify.db.base import async_session_factory, init_models
from docverify.schemas.common import HealthResponse
from docverify.services.document_store import SqlDocumentStore
from docverify.services.notifications import Notifier
from docverify.services.orchestrator import VerificationOrchestrator

# v1 routers
from docverify.routers.v1.documents import router as documents_v1_router


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
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("pdfminer").setLevel(logging.WARNING)


def build_orchestrator(store: SqlDocumentStore) -> VerificationOrchestrator:
    return VerificationOrchestrator(
        store,
        notifier=Notifier(),
        metrics=VerificationMetrics(),
        concurrency=settings.worker_count,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        await init_models()

    store = SqlDocumentStore(async_session_factory)
    orchestrator = build_orchestrator(store)
    app.state.document_store = store
    app.state.orchestrator = orchestrator

    await orchestrator.start()
    if settings.verify_on_startup:
        await orchestrator.initialize()
    try:
        yield
    finally:
        await orchestrator.stop()


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
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # --- Global exception handlers ---
    register_exception_handlers(app)

    # --- v1 API routes (/api/v1/*) ---
    app.include_router(documents_v1_router, prefix="/api/v1")

    # --- Health check ---
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health():
        orchestrator = getattr(app.state, "orchestrator", None)
        verification = None
        if orchestrator is not None:
            verification = orchestrator.status()
            snapshot = getattr(orchestrator.metrics, "snapshot", None)
            if snapshot is not None:
                verification["metrics"] = snapshot()
        return HealthResponse(app=settings.app_name, env=settings.app_env, verification=verification)

    return app


app = create_app()
