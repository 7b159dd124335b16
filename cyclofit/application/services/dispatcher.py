import asyncio
import logging
from typing import Optional, Set

from starlette.concurrency import run_in_threadpool

from ...exceptions import CyclofitError
from ..ports.analysis_ledger import AnalysisLedger, AnalysisStatus
from ..ports.audit_logger import AuditLogger
from ..ports.video_processor import VideoProcessor

logger = logging.getLogger(__name__)


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "TimeoutError: processing did not finish in time"
    message = str(exc) or "no detail"
    return f"{type(exc).__name__}: {message}"


class ProcessingDispatcher:
    """Runs the compute step for one analysis on its own asyncio task.

    `dispatch` returns as soon as the task is scheduled. The outcome is only
    visible through the ledger. Dispatches share nothing except the
    concurrency semaphore and the registry of in-flight tasks.
    """

    def __init__(
        self,
        ledger: AnalysisLedger,
        processor: VideoProcessor,
        audit: AuditLogger,
        concurrency: int = 2,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self.ledger = ledger
        self.processor = processor
        self.audit = audit
        self.timeout_seconds = timeout_seconds
        self._concurrency = max(1, concurrency)
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def dispatch(self, video_bytes: bytes, analysis_id: str) -> asyncio.Task:
        # The semaphore binds to the running loop, so create it lazily
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._concurrency)
        task = asyncio.get_running_loop().create_task(
            self._run(video_bytes, analysis_id), name=f"analysis-{analysis_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Dispatcher task {task.get_name()} crashed", exc_info=task.exception())

    async def _run(self, video_bytes: bytes, analysis_id: str) -> None:
        async with self._semaphore:
            try:
                await run_in_threadpool(self.ledger.transition, analysis_id, AnalysisStatus.PROCESSING)
            except CyclofitError as e:
                logger.error(f"Could not start analysis {analysis_id}: {e.message}")
                self.audit.log("processing_start_failed", analysis_id=analysis_id, success=False, details={"error": e.message})
                return

            try:
                if self.timeout_seconds:
                    result = await asyncio.wait_for(
                        self.processor.process(video_bytes, analysis_id), timeout=self.timeout_seconds
                    )
                else:
                    result = await self.processor.process(video_bytes, analysis_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Processing failed for analysis {analysis_id}: {describe_error(e)}")
                await self._finish(analysis_id, AnalysisStatus.FAILED, error=describe_error(e))
                return

            await self._finish(analysis_id, AnalysisStatus.COMPLETED, result=result)

    async def _finish(self, analysis_id: str, status: AnalysisStatus, result=None, error=None) -> None:
        try:
            await run_in_threadpool(self.ledger.transition, analysis_id, status, result, error)
        except CyclofitError as e:
            # Nobody to report to; the record stays in processing until the watchdog expires it
            logger.error(f"Could not record {status.value} for analysis {analysis_id}: {e.message}")
            self.audit.log("transition_failed", analysis_id=analysis_id, success=False, details={"status": status.value, "error": e.message})
            return
        self.audit.log(f"processing_{status.value}", analysis_id=analysis_id, success=status == AnalysisStatus.COMPLETED, details={"error": error} if error else None)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight analyses, cancelling whatever is left after `timeout`."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        logger.info(f"Waiting for {len(pending)} in-flight analyses")
        done, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
