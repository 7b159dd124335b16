from dataclasses import dataclass
import logging

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from ..ports.analysis_ledger import AnalysisLedger, IntakeMetadata, NewAnalysis
from ..ports.audit_logger import AuditLogger
from ..ports.storage_gateway import StorageGateway
from .dispatcher import ProcessingDispatcher
from ...exceptions import (
    CyclofitError,
    DispatchFault,
    LedgerFault,
    PayloadTooLargeError,
    StorageFault,
    UnsupportedMediaError,
    ValidationError,
)
from ...media_utils import derive_video_key, is_accepted_video

logger = logging.getLogger(__name__)


@dataclass
class SubmissionReceipt:
    analysis_id: str
    video_url: str
    video_key: str


@dataclass
class IngestionCoordinator:
    ledger: AnalysisLedger
    storage: StorageGateway
    dispatcher: ProcessingDispatcher
    audit: AuditLogger
    max_video_size: int = 100 * 1024 * 1024
    url_expires_in: int = 3600
    delete_orphaned_uploads: bool = False

    async def submit(self, upload: UploadFile, metadata: IntakeMetadata, owner_id: str) -> SubmissionReceipt:
        """Store the video, open a pending analysis and start processing it.

        Order matters: the object is written before the record exists, so no
        record ever names a missing key. Processing is scheduled and never
        awaited here.
        """
        if upload is None or not upload.filename:
            raise ValidationError("No video file provided")

        content = await upload.read()
        if not content:
            raise ValidationError("Uploaded video is empty")
        if not upload.content_type:
            raise ValidationError("Video content type is required")
        if not is_accepted_video(upload.content_type, upload.filename):
            raise UnsupportedMediaError(f"File type {upload.content_type} not allowed. Only video files are accepted.")
        if len(content) > self.max_video_size:
            raise PayloadTooLargeError(f"Video too large (max {self.max_video_size // (1024 * 1024)}MB)")

        key = derive_video_key(upload.filename)
        await self._store(key, content, upload.content_type)

        try:
            video_url = await run_in_threadpool(self.storage.sign_url, key, self.url_expires_in)
        except StorageFault:
            self._report_orphan(key, owner_id, stage="sign_url")
            raise

        try:
            record = await run_in_threadpool(
                self.ledger.create,
                NewAnalysis(
                    owner_id=owner_id,
                    video_key=key,
                    video_content_type=upload.content_type,
                    video_filename=upload.filename,
                    video_size=len(content),
                    metadata=metadata,
                ),
            )
        except LedgerFault:
            self._report_orphan(key, owner_id, stage="ledger_create")
            if self.delete_orphaned_uploads:
                await self._delete_orphan(key)
            raise

        try:
            self.dispatcher.dispatch(content, record.id)
        except RuntimeError as e:
            # The record stays pending; startup recovery re-dispatches it
            logger.error(f"Could not schedule processing for analysis {record.id}: {e}")
            raise DispatchFault(f"Could not schedule processing: {e}") from e

        self.audit.log(
            "analysis_submitted",
            analysis_id=record.id,
            owner_id=owner_id,
            video_key=key,
            details={"size": len(content), "content_type": upload.content_type},
        )
        return SubmissionReceipt(analysis_id=record.id, video_url=video_url, video_key=key)

    async def _store(self, key: str, content: bytes, content_type: str) -> None:
        try:
            await run_in_threadpool(self.storage.put, key, content, content_type)
        except StorageFault as e:
            logger.error(f"Upload of {key} failed, no analysis created: {e.message}")
            raise

    def _report_orphan(self, key: str, owner_id: str, stage: str) -> None:
        logger.error(f"Stored object {key} has no analysis record (failed at {stage})")
        self.audit.log("storage_orphaned", owner_id=owner_id, video_key=key, success=False, details={"stage": stage})

    async def _delete_orphan(self, key: str) -> None:
        try:
            await run_in_threadpool(self.storage.delete, key)
        except CyclofitError as e:
            logger.error(f"Could not delete orphaned object {key}: {e.message}")
            return
        self.audit.log("storage_orphan_deleted", video_key=key)
