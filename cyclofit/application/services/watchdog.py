import asyncio
import logging
from datetime import timedelta
from typing import List

from starlette.concurrency import run_in_threadpool

from ...exceptions import CyclofitError, InvalidTransitionError
from ...utils import utcnow
from ..ports.analysis_ledger import AnalysisLedger, AnalysisStatus
from ..ports.audit_logger import AuditLogger
from ..ports.storage_gateway import StorageGateway
from .dispatcher import ProcessingDispatcher

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "processing timed out"


class ProcessingWatchdog:
    """Fails analyses stuck in processing, e.g. after the worker process died."""

    def __init__(self, ledger: AnalysisLedger, audit: AuditLogger, timeout_seconds: int, interval_seconds: int = 60) -> None:
        self.ledger = ledger
        self.audit = audit
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds

    def expire_stale(self) -> List[str]:
        cutoff = utcnow() - timedelta(seconds=self.timeout_seconds)
        expired = []
        for record in self.ledger.list_stale(AnalysisStatus.PROCESSING, cutoff):
            try:
                self.ledger.transition(record.id, AnalysisStatus.FAILED, error=TIMEOUT_ERROR)
            except InvalidTransitionError:
                # Finished between the query and the update
                continue
            expired.append(record.id)
            self.audit.log("processing_expired", analysis_id=record.id, owner_id=record.owner_id, success=False, details={"last_update": record.updated_at})
        if expired:
            logger.warning(f"Expired {len(expired)} stale analyses")
        return expired

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await run_in_threadpool(self.expire_stale)
            except CyclofitError as e:
                logger.error(f"Watchdog sweep failed: {e.message}")
            except Exception:
                logger.exception("Watchdog sweep crashed")


async def recover_pending(ledger: AnalysisLedger, storage: StorageGateway, dispatcher: ProcessingDispatcher) -> List[str]:
    """Re-dispatch analyses accepted but never started before the last shutdown."""
    recovered = []
    for record in await run_in_threadpool(ledger.list_by_status, AnalysisStatus.PENDING):
        try:
            video_bytes = await run_in_threadpool(storage.get, record.video_key)
        except CyclofitError as e:
            logger.error(f"Cannot recover analysis {record.id}, video {record.video_key} unreadable: {e.message}")
            continue
        dispatcher.dispatch(video_bytes, record.id)
        recovered.append(record.id)
    if recovered:
        logger.info(f"Re-dispatched {len(recovered)} pending analyses")
    return recovered
