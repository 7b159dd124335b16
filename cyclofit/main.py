import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlmodel import Session
from starlette.middleware.gzip import GZipMiddleware

# Load environment variables as early as possible
load_dotenv()

from .config import settings
from .database import create_db_and_tables, engine
from .dependencies import Services, build_services
from .exceptions import CyclofitError, cyclofit_exception_handler, http_exception_handler
from .middleware import (
    ErrorHandlingMiddleware,
    LoggingMiddleware,
    RateLimitMiddleware,
    RequestSizeLimitMiddleware,
    SecurityMiddleware,
)
from .routers import analysis_router, storage_router
from .utils import utcnow
from .application.services.watchdog import recover_pending

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 30


def create_app(services: Optional[Services] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME}...")
        app.state.db_init_ok = True
        app.state.db_init_error = None
        if settings.LEDGER_BACKEND.lower() == "sql":
            try:
                create_db_and_tables()
                logger.info("Database initialized successfully")
            except Exception as e:
                # Do not crash the app; report via health endpoint
                app.state.db_init_ok = False
                app.state.db_init_error = str(e)
                logger.exception("Database initialization failed")

        app.state.services = services or build_services(settings)
        svc: Services = app.state.services

        if settings.RECOVER_PENDING_ON_STARTUP and app.state.db_init_ok:
            try:
                await recover_pending(svc.ledger, svc.storage, svc.dispatcher)
            except CyclofitError as e:
                logger.error(f"Pending recovery failed: {e.message}")

        watchdog_task = None
        if settings.WATCHDOG_ENABLED:
            watchdog_task = asyncio.create_task(svc.watchdog.run(), name="processing-watchdog")

        yield

        logger.info(f"Shutting down {settings.APP_NAME}...")
        if watchdog_task is not None:
            watchdog_task.cancel()
            try:
                await watchdog_task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Watchdog task ended with an error")
        await svc.dispatcher.drain(timeout=SHUTDOWN_DRAIN_SECONDS)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url=("/docs" if settings.DOCS_ENABLED else None),
        redoc_url=("/redoc" if settings.DOCS_ENABLED else None),
        openapi_url=("/openapi.json" if settings.DOCS_ENABLED else None)
    )

    app.add_exception_handler(CyclofitError, cyclofit_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=settings.GZIP_MIN_SIZE)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.allowed_methods_list,
        allow_headers=settings.allowed_headers_list,
    )

    app.include_router(analysis_router.router)
    app.include_router(storage_router.router)

    @app.get("/health")
    def health_check():
        db_ok = getattr(app.state, "db_init_ok", True)
        db_error = getattr(app.state, "db_init_error", None)
        if db_ok and settings.LEDGER_BACKEND.lower() == "sql":
            try:
                with Session(engine) as session:
                    session.execute(text("SELECT 1"))
            except Exception as e:
                db_ok, db_error = False, str(e)
        svc = getattr(app.state, "services", None)
        return {
            "status": "healthy" if db_ok else "degraded",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "timestamp": utcnow().isoformat(),
            "database": {"ok": db_ok, "error": db_error},
            "storage": {"backend": settings.STORAGE_BACKEND},
            "processing": {"in_flight": svc.dispatcher.in_flight if svc else 0},
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "cyclofit.main:app",
        host=settings.HOST,
        port=settings.PORT,
        workers=settings.WORKERS,
        log_level=settings.LOG_LEVEL.lower()
    )
