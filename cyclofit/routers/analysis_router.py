from typing import Optional
import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile
from starlette.concurrency import run_in_threadpool

from ..auth import get_current_user
from ..config import settings
from ..dependencies import get_coordinator, get_ledger, get_storage, submission_rate_limit
from ..exceptions import NotFoundError
from ..schemas.analysis import (
    AnalysisCreatedResponse,
    AnalysisListResponse,
    AnalysisResponse,
    AnalysisView,
    VideoUrlResponse,
)
from ..application.ports.analysis_ledger import AnalysisLedger, AnalysisRecord, IntakeMetadata
from ..application.ports.storage_gateway import StorageGateway
from ..application.services.ingestion_service import IngestionCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analysis", tags=["Analysis"])


async def _owned_record(ledger: AnalysisLedger, analysis_id: str, owner_id: str) -> AnalysisRecord:
    record = await run_in_threadpool(ledger.get, analysis_id)
    # Other users' analyses are reported as missing
    if record is None or record.owner_id != owner_id:
        raise NotFoundError("Analysis not found")
    return record


@router.post("", status_code=201, response_model=AnalysisCreatedResponse)
@router.post("/", status_code=201, response_model=AnalysisCreatedResponse, include_in_schema=False)
async def create_analysis(
    video: Optional[UploadFile] = File(None),
    height: Optional[str] = Form(None),
    weight: Optional[str] = Form(None),
    sport_type: Optional[str] = Form(None, alias="sportType"),
    rider_experience: Optional[str] = Form(None, alias="riderExperience"),
    common_discomforts: Optional[str] = Form(None, alias="commonDiscomforts"),
    preferred_positions: Optional[str] = Form(None, alias="preferredPositions"),
    key_goals: Optional[str] = Form(None, alias="keyGoals"),
    current_user: str = Depends(submission_rate_limit),
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """Accept a riding video and start its analysis. Processing runs after the response."""
    metadata = IntakeMetadata(
        height=height,
        weight=weight,
        sport_type=sport_type,
        rider_experience=rider_experience,
        common_discomforts=common_discomforts,
        preferred_positions=preferred_positions,
        key_goals=key_goals,
    )
    receipt = await coordinator.submit(video, metadata, current_user)
    logger.info(f"Analysis {receipt.analysis_id} created for user {current_user}")
    return AnalysisCreatedResponse(analysis_id=receipt.analysis_id, video_url=receipt.video_url)


@router.get("", response_model=AnalysisListResponse)
async def list_analyses(
    current_user: str = Depends(get_current_user),
    ledger: AnalysisLedger = Depends(get_ledger),
):
    records = await run_in_threadpool(ledger.list_for_owner, current_user)
    return AnalysisListResponse(analyses=[AnalysisView.from_record(r) for r in records])


@router.get("/{analysis_id}", response_model=AnalysisResponse)
async def get_analysis(
    analysis_id: str,
    current_user: str = Depends(get_current_user),
    ledger: AnalysisLedger = Depends(get_ledger),
):
    record = await _owned_record(ledger, analysis_id, current_user)
    return AnalysisResponse(analysis=AnalysisView.from_record(record))


@router.get("/{analysis_id}/original-video", response_model=VideoUrlResponse)
async def get_original_video(
    analysis_id: str,
    current_user: str = Depends(get_current_user),
    ledger: AnalysisLedger = Depends(get_ledger),
    storage: StorageGateway = Depends(get_storage),
):
    record = await _owned_record(ledger, analysis_id, current_user)
    url = await run_in_threadpool(storage.sign_url, record.video_key, settings.SIGNED_URL_EXPIRES_SECONDS)
    return VideoUrlResponse(url=url)
