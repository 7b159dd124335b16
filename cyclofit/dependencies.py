import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

from .auth import get_current_user
from .config import Settings, settings
from .application.ports.analysis_ledger import AnalysisLedger
from .application.ports.audit_logger import AuditLogger
from .application.ports.rate_limiter import RateLimiter
from .application.ports.storage_gateway import StorageGateway
from .application.ports.video_processor import VideoProcessor
from .application.services.dispatcher import ProcessingDispatcher
from .application.services.ingestion_service import IngestionCoordinator
from .application.services.watchdog import ProcessingWatchdog

logger = logging.getLogger(__name__)


@dataclass
class Services:
    ledger: AnalysisLedger
    storage: StorageGateway
    dispatcher: ProcessingDispatcher
    coordinator: IngestionCoordinator
    watchdog: ProcessingWatchdog
    rate_limiter: RateLimiter
    audit: AuditLogger


def build_storage(cfg: Settings) -> StorageGateway:
    backend = cfg.STORAGE_BACKEND.lower()
    if backend == "s3":
        from .infrastructure.storage.s3_storage import S3StorageGateway
        return S3StorageGateway(bucket=cfg.AWS_BUCKET_NAME)
    if backend == "local":
        from .infrastructure.storage.local_storage import LocalStorageGateway
        return LocalStorageGateway(upload_dir=cfg.UPLOAD_DIR, base_url=cfg.BASE_URL)
    raise ValueError(f"Unknown STORAGE_BACKEND: {cfg.STORAGE_BACKEND}")


def build_ledger(cfg: Settings) -> AnalysisLedger:
    backend = cfg.LEDGER_BACKEND.lower()
    if backend == "sql":
        from .database import engine
        from .infrastructure.persistence.sqlalchemy.repositories.analysis_ledger_sql import SqlAnalysisLedger
        return SqlAnalysisLedger(engine)
    if backend == "memory":
        from .infrastructure.persistence.memory.analysis_ledger_memory import InMemoryAnalysisLedger
        return InMemoryAnalysisLedger()
    raise ValueError(f"Unknown LEDGER_BACKEND: {cfg.LEDGER_BACKEND}")


def build_rate_limiter(cfg: Settings) -> RateLimiter:
    if cfg.REDIS_URL:
        from .infrastructure.rate_limit.redis_rate_limiter import RedisRateLimiter
        return RedisRateLimiter(url=cfg.REDIS_URL)
    from .infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter
    return InMemoryRateLimiter()


def build_services(
    cfg: Settings = settings,
    ledger: AnalysisLedger = None,
    storage: StorageGateway = None,
    processor: VideoProcessor = None,
    rate_limiter: RateLimiter = None,
    audit: AuditLogger = None,
) -> Services:
    """Wire the pipeline. Any collaborator passed in replaces the configured one."""
    from .infrastructure.audit.std_logger import StdAuditLogger

    if processor is None:
        from .infrastructure.processing.http_processor import HttpVideoProcessor
        processor = HttpVideoProcessor(url=cfg.PROCESSING_SERVICE_URL, timeout_seconds=cfg.PROCESSING_TIMEOUT_SECONDS)

    audit = audit if audit is not None else StdAuditLogger()
    ledger = ledger if ledger is not None else build_ledger(cfg)
    storage = storage if storage is not None else build_storage(cfg)
    dispatcher = ProcessingDispatcher(
        ledger=ledger,
        processor=processor,
        audit=audit,
        concurrency=cfg.PROCESSING_CONCURRENCY,
        timeout_seconds=cfg.PROCESSING_TIMEOUT_SECONDS,
    )
    coordinator = IngestionCoordinator(
        ledger=ledger,
        storage=storage,
        dispatcher=dispatcher,
        audit=audit,
        max_video_size=cfg.MAX_VIDEO_SIZE,
        url_expires_in=cfg.SIGNED_URL_EXPIRES_SECONDS,
        delete_orphaned_uploads=cfg.DELETE_ORPHANED_UPLOADS,
    )
    watchdog = ProcessingWatchdog(
        ledger=ledger,
        audit=audit,
        timeout_seconds=cfg.PROCESSING_TIMEOUT_SECONDS,
        interval_seconds=cfg.WATCHDOG_INTERVAL_SECONDS,
    )
    return Services(
        ledger=ledger,
        storage=storage,
        dispatcher=dispatcher,
        coordinator=coordinator,
        watchdog=watchdog,
        rate_limiter=rate_limiter if rate_limiter is not None else build_rate_limiter(cfg),
        audit=audit,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_coordinator(services: Services = Depends(get_services)) -> IngestionCoordinator:
    return services.coordinator


def get_ledger(services: Services = Depends(get_services)) -> AnalysisLedger:
    return services.ledger


def get_storage(services: Services = Depends(get_services)) -> StorageGateway:
    return services.storage


def submission_rate_limit(
    current_user: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> str:
    """Authenticated caller, limited to SUBMISSIONS_PER_HOUR uploads."""
    if not services.rate_limiter.allow(f"submit:{current_user}", settings.SUBMISSIONS_PER_HOUR, 3600):
        logger.warning(f"Submission rate limit exceeded for user {current_user}")
        raise HTTPException(status_code=429, detail="Too many submissions. Please try again later.")
    return current_user
