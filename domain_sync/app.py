"""
domain-sync - FastAPI Application
HTTP triggers for reconciliation, batch processing and notification delivery.

Run with:
    uvicorn domain_sync.app:app --host 0.0.0.0 --port 8001
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from domain_sync import config
from domain_sync.alerts.dispatcher import NotificationDispatcher
from domain_sync.core.errors import DomainSyncError
from domain_sync.core.logging import configure_logging
from domain_sync.database import init_db
from domain_sync.metrics import metrics_snapshot
from domain_sync.orchestrator import ReconcileContext
from domain_sync.routers.updates import router as updates_router

configure_logging()
logger = logging.getLogger(__name__)

# Server-side failures never echo their internal detail back to the caller.
_PUBLIC_DETAIL = {
    500: "Internal server error",
    502: "Domain info provider unavailable",
}


def create_app(
    ctx: Optional[ReconcileContext] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    init_database: bool = True,
) -> FastAPI:
    """Build the app.  Tests inject their own context and dispatcher."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.RUN_MODE != "api":
            logger.warning(
                "domain_sync.app started with RUN_MODE=%s. API mode is expected for this process.",
                config.RUN_MODE,
            )
        if init_database:
            logger.info("Initialising database...")
            init_db()
            logger.info("Database ready.")

        app.state.reconcile_ctx = ctx or ReconcileContext()
        app.state.dispatcher = dispatcher or NotificationDispatcher()
        try:
            yield
        finally:
            await app.state.reconcile_ctx.fetcher.close()

    app = FastAPI(
        title="domain-sync",
        version="1.0.0",
        description="Domain change detection and notification triggers",
        lifespan=lifespan,
    )

    @app.exception_handler(DomainSyncError)
    async def domain_sync_error_handler(request: Request, exc: DomainSyncError):
        status = exc.http_status
        if status >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        else:
            logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        detail = _PUBLIC_DETAIL.get(status, str(exc))
        return JSONResponse(status_code=status, content={"detail": detail})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": _PUBLIC_DETAIL[500]})

    app.include_router(updates_router)

    @app.get("/api/health")
    async def health():
        """Simple health/status endpoint."""
        return {"status": "ok", "version": "1.0.0", "metrics": metrics_snapshot()}

    return app


app = create_app()


# ---------------------------------------------------------------------------
# Development entry-point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("domain_sync.app:app", host="0.0.0.0", port=config.PORT)
