# cyclofit/schemas/analysis.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..application.ports.analysis_ledger import AnalysisRecord, AnalysisStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnalysisCreatedResponse(CamelModel):
    message: str = "Analysis started"
    analysis_id: str = Field(..., description="Identifier to poll for processing status")
    video_url: str = Field(..., description="Time-limited URL of the uploaded video")


class AnalysisView(CamelModel):
    id: str
    status: AnalysisStatus
    video_key: str
    video_content_type: str
    video_filename: Optional[str] = None
    video_size: int
    height: Optional[str] = None
    weight: Optional[str] = None
    sport_type: Optional[str] = None
    rider_experience: Optional[str] = None
    common_discomforts: Optional[str] = None
    preferred_positions: Optional[str] = None
    key_goals: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: AnalysisRecord) -> "AnalysisView":
        m = record.metadata
        return cls(
            id=record.id,
            status=record.status,
            video_key=record.video_key,
            video_content_type=record.video_content_type,
            video_filename=record.video_filename,
            video_size=record.video_size,
            height=m.height,
            weight=m.weight,
            sport_type=m.sport_type,
            rider_experience=m.rider_experience,
            common_discomforts=m.common_discomforts,
            preferred_positions=m.preferred_positions,
            key_goals=m.key_goals,
            result=record.result,
            error=record.error,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class AnalysisResponse(CamelModel):
    analysis: AnalysisView


class AnalysisListResponse(CamelModel):
    analyses: List[AnalysisView]


class VideoUrlResponse(CamelModel):
    url: str
