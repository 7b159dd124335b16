from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ...exceptions import InvalidTransitionError


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({AnalysisStatus.COMPLETED, AnalysisStatus.FAILED})

ALLOWED_TRANSITIONS = {
    AnalysisStatus.PENDING: frozenset({AnalysisStatus.PROCESSING}),
    AnalysisStatus.PROCESSING: frozenset({AnalysisStatus.COMPLETED, AnalysisStatus.FAILED}),
    AnalysisStatus.COMPLETED: frozenset(),
    AnalysisStatus.FAILED: frozenset(),
}


def check_transition(analysis_id: str, current: AnalysisStatus, new: AnalysisStatus) -> None:
    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(analysis_id, current.value, new.value)


@dataclass
class IntakeMetadata:
    height: Optional[str] = None
    weight: Optional[str] = None
    sport_type: Optional[str] = None
    rider_experience: Optional[str] = None
    common_discomforts: Optional[str] = None
    preferred_positions: Optional[str] = None
    key_goals: Optional[str] = None


@dataclass
class AnalysisRecord:
    id: str
    owner_id: str
    status: AnalysisStatus
    video_key: str
    video_content_type: str
    video_filename: Optional[str]
    video_size: int
    metadata: IntakeMetadata
    created_at: datetime
    updated_at: datetime
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class NewAnalysis:
    owner_id: str
    video_key: str
    video_content_type: str
    video_filename: Optional[str]
    video_size: int
    metadata: IntakeMetadata = field(default_factory=IntakeMetadata)


class AnalysisLedger:
    """One record per accepted upload. `transition` is the only way status changes."""

    def create(self, new: NewAnalysis) -> AnalysisRecord:
        ...

    def get(self, analysis_id: str) -> Optional[AnalysisRecord]:
        ...

    def transition(
        self,
        analysis_id: str,
        new_status: AnalysisStatus,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> AnalysisRecord:
        ...

    def list_for_owner(self, owner_id: str) -> List[AnalysisRecord]:
        ...

    def list_by_status(self, status: AnalysisStatus) -> List[AnalysisRecord]:
        ...

    def list_stale(self, status: AnalysisStatus, older_than: datetime) -> List[AnalysisRecord]:
        ...


def next_timestamp(previous: Optional[datetime], now: datetime) -> datetime:
    """`now`, bumped past `previous` so a record's updated_at strictly increases."""
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def transition_payload(
    new_status: AnalysisStatus,
    result: Optional[Dict[str, Any]],
    error: Optional[str],
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """result is kept only for completed, error only for failed."""
    if new_status == AnalysisStatus.COMPLETED:
        return (result if result is not None else {}), None
    if new_status == AnalysisStatus.FAILED:
        return None, (error or "unknown error")
    return None, None
