# cyclofit/db/models/analysis.py
from typing import Optional, Dict, Any
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, JSON
from datetime import datetime

from ...utils import utcnow


class Analysis(SQLModel, table=True):
    __tablename__ = "analyses"
    id: str = Field(primary_key=True, max_length=36)
    owner_id: str = Field(index=True, max_length=64)
    status: str = Field(default="pending", index=True, max_length=16)

    video_key: str = Field(unique=True, max_length=512)
    video_content_type: str = Field(max_length=128)
    video_filename: Optional[str] = None
    video_size: int = 0

    # Intake questionnaire, stored as submitted
    height: Optional[str] = None
    weight: Optional[str] = None
    sport_type: Optional[str] = None
    rider_experience: Optional[str] = None
    common_discomforts: Optional[str] = None
    preferred_positions: Optional[str] = None
    key_goals: Optional[str] = None

    result: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    error: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False, index=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
