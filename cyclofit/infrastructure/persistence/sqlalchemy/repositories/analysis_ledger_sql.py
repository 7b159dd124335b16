import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .....db.models import Analysis
from .....exceptions import InvalidTransitionError, LedgerFault, NotFoundError
from .....utils import as_utc, utcnow
from .....application.ports.analysis_ledger import (
    AnalysisLedger,
    AnalysisRecord,
    AnalysisStatus,
    IntakeMetadata,
    NewAnalysis,
    check_transition,
    next_timestamp,
    transition_payload,
)

logger = logging.getLogger(__name__)


class SqlAnalysisLedger(AnalysisLedger):
    """Ledger backed by the `analyses` table.

    Each call opens its own session so the ledger can be used from dispatcher
    tasks that outlive the request that created the record.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def _to_record(self, a: Analysis) -> AnalysisRecord:
        return AnalysisRecord(
            id=a.id,
            owner_id=a.owner_id,
            status=AnalysisStatus(a.status),
            video_key=a.video_key,
            video_content_type=a.video_content_type,
            video_filename=a.video_filename,
            video_size=a.video_size,
            metadata=IntakeMetadata(
                height=a.height,
                weight=a.weight,
                sport_type=a.sport_type,
                rider_experience=a.rider_experience,
                common_discomforts=a.common_discomforts,
                preferred_positions=a.preferred_positions,
                key_goals=a.key_goals,
            ),
            created_at=as_utc(a.created_at),
            updated_at=as_utc(a.updated_at),
            result=a.result,
            error=a.error,
        )

    def create(self, new: NewAnalysis) -> AnalysisRecord:
        now = utcnow()
        row = Analysis(
            id=str(uuid.uuid4()),
            owner_id=new.owner_id,
            status=AnalysisStatus.PENDING.value,
            video_key=new.video_key,
            video_content_type=new.video_content_type,
            video_filename=new.video_filename,
            video_size=new.video_size,
            height=new.metadata.height,
            weight=new.metadata.weight,
            sport_type=new.metadata.sport_type,
            rider_experience=new.metadata.rider_experience,
            common_discomforts=new.metadata.common_discomforts,
            preferred_positions=new.metadata.preferred_positions,
            key_goals=new.metadata.key_goals,
            created_at=now,
            updated_at=now,
        )
        try:
            with Session(self.engine) as session:
                session.add(row)
                session.commit()
                session.refresh(row)
                return self._to_record(row)
        except SQLAlchemyError as e:
            raise LedgerFault(f"Could not create analysis record: {e}") from e

    def get(self, analysis_id: str) -> Optional[AnalysisRecord]:
        try:
            with Session(self.engine) as session:
                row = session.get(Analysis, analysis_id)
                return self._to_record(row) if row else None
        except SQLAlchemyError as e:
            raise LedgerFault(f"Could not read analysis {analysis_id}: {e}") from e

    def transition(
        self,
        analysis_id: str,
        new_status: AnalysisStatus,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> AnalysisRecord:
        new_status = AnalysisStatus(new_status)
        result, error = transition_payload(new_status, result, error)
        try:
            with Session(self.engine) as session:
                row = session.get(Analysis, analysis_id)
                if row is None:
                    raise NotFoundError(f"Analysis {analysis_id} not found")
                current = AnalysisStatus(row.status)
                check_transition(analysis_id, current, new_status)

                # Compare-and-swap on the status we just validated against
                outcome = session.execute(
                    update(Analysis)
                    .where(Analysis.id == analysis_id)
                    .where(Analysis.status == current.value)
                    .values(
                        status=new_status.value,
                        result=result,
                        error=error,
                        updated_at=next_timestamp(as_utc(row.updated_at), utcnow()),
                    )
                    .execution_options(synchronize_session=False)
                )
                if outcome.rowcount != 1:
                    session.rollback()
                    session.expire_all()
                    latest = session.get(Analysis, analysis_id)
                    raise InvalidTransitionError(
                        analysis_id, latest.status if latest else current.value, new_status.value
                    )
                session.commit()
                session.expire_all()
                return self._to_record(session.get(Analysis, analysis_id))
        except SQLAlchemyError as e:
            raise LedgerFault(f"Could not transition analysis {analysis_id}: {e}") from e

    def _select(self, statement, what: str) -> List[AnalysisRecord]:
        try:
            with Session(self.engine) as session:
                return [self._to_record(r) for r in session.exec(statement).all()]
        except SQLAlchemyError as e:
            raise LedgerFault(f"Could not list {what}: {e}") from e

    def list_for_owner(self, owner_id: str) -> List[AnalysisRecord]:
        return self._select(
            select(Analysis)
            .where(Analysis.owner_id == owner_id)
            .order_by(Analysis.created_at.desc()),
            f"analyses of {owner_id}",
        )

    def list_by_status(self, status: AnalysisStatus) -> List[AnalysisRecord]:
        status = AnalysisStatus(status)
        return self._select(
            select(Analysis)
            .where(Analysis.status == status.value)
            .order_by(Analysis.created_at),
            f"{status.value} analyses",
        )

    def list_stale(self, status: AnalysisStatus, older_than: datetime) -> List[AnalysisRecord]:
        status = AnalysisStatus(status)
        return self._select(
            select(Analysis)
            .where(Analysis.status == status.value)
            .where(Analysis.updated_at < as_utc(older_than)),
            f"stale {status.value} analyses",
        )
