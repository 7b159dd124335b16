import copy
import threading
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from ....exceptions import NotFoundError
from ....utils import as_utc, utcnow
from ....application.ports.analysis_ledger import (
    AnalysisLedger,
    AnalysisRecord,
    AnalysisStatus,
    NewAnalysis,
    check_transition,
    next_timestamp,
    transition_payload,
)


class InMemoryAnalysisLedger(AnalysisLedger):
    """Process-local ledger for development and tests. Returns copies, never live records."""

    def __init__(self) -> None:
        self._records: Dict[str, AnalysisRecord] = {}
        self._lock = threading.Lock()

    def create(self, new: NewAnalysis) -> AnalysisRecord:
        now = utcnow()
        record = AnalysisRecord(
            id=str(uuid.uuid4()),
            owner_id=new.owner_id,
            status=AnalysisStatus.PENDING,
            video_key=new.video_key,
            video_content_type=new.video_content_type,
            video_filename=new.video_filename,
            video_size=new.video_size,
            metadata=copy.deepcopy(new.metadata),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._records[record.id] = record
            return copy.deepcopy(record)

    def get(self, analysis_id: str) -> Optional[AnalysisRecord]:
        with self._lock:
            record = self._records.get(analysis_id)
            return copy.deepcopy(record) if record else None

    def transition(
        self,
        analysis_id: str,
        new_status: AnalysisStatus,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> AnalysisRecord:
        new_status = AnalysisStatus(new_status)
        result, error = transition_payload(new_status, result, error)
        with self._lock:
            record = self._records.get(analysis_id)
            if record is None:
                raise NotFoundError(f"Analysis {analysis_id} not found")
            check_transition(analysis_id, record.status, new_status)
            updated = replace(
                record,
                status=new_status,
                result=copy.deepcopy(result),
                error=error,
                updated_at=next_timestamp(record.updated_at, utcnow()),
            )
            self._records[analysis_id] = updated
            return copy.deepcopy(updated)

    def list_for_owner(self, owner_id: str) -> List[AnalysisRecord]:
        with self._lock:
            rows = [r for r in self._records.values() if r.owner_id == owner_id]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return copy.deepcopy(rows)

    def list_by_status(self, status: AnalysisStatus) -> List[AnalysisRecord]:
        status = AnalysisStatus(status)
        with self._lock:
            rows = [r for r in self._records.values() if r.status == status]
        rows.sort(key=lambda r: r.created_at)
        return copy.deepcopy(rows)

    def list_stale(self, status: AnalysisStatus, older_than: datetime) -> List[AnalysisRecord]:
        status = AnalysisStatus(status)
        with self._lock:
            rows = [r for r in self._records.values() if r.status == status and r.updated_at < as_utc(older_than)]
        return copy.deepcopy(rows)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
