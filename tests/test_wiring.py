import json
import logging

import pytest

from cyclofit.config import settings
from cyclofit.dependencies import build_ledger, build_services, build_storage
from cyclofit.infrastructure.audit.std_logger import StdAuditLogger
from cyclofit.infrastructure.persistence.memory.analysis_ledger_memory import InMemoryAnalysisLedger
from cyclofit.infrastructure.storage.local_storage import LocalStorageGateway

from fakes import FakeProcessor


def test_audit_logger_writes_json_line(caplog):
    audit = StdAuditLogger()
    with caplog.at_level(logging.INFO, logger="cyclofit.audit"):
        audit.log("storage_orphaned", owner_id="rider-1", video_key="videos/k.mp4", success=False, details={"stage": "ledger_create"})

    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert record.getMessage().startswith("AUDIT: ")
    entry = json.loads(record.getMessage()[len("AUDIT: "):])
    assert entry["action"] == "storage_orphaned"
    assert entry["details"] == {"stage": "ledger_create"}
    assert entry["success"] is False


def test_build_services_shares_one_ledger(tmp_path):
    ledger = InMemoryAnalysisLedger()
    services = build_services(
        settings,
        ledger=ledger,
        storage=LocalStorageGateway(upload_dir=str(tmp_path)),
        processor=FakeProcessor(),
    )

    assert services.ledger is ledger
    assert services.coordinator.ledger is ledger
    assert services.dispatcher.ledger is ledger
    assert services.watchdog.ledger is ledger
    assert services.coordinator.dispatcher is services.dispatcher
    assert isinstance(services.audit, StdAuditLogger)


def test_backends_selected_from_settings(tmp_path):
    cfg = settings.model_copy(update={"LEDGER_BACKEND": "memory", "STORAGE_BACKEND": "local", "UPLOAD_DIR": str(tmp_path)})
    assert isinstance(build_ledger(cfg), InMemoryAnalysisLedger)
    assert isinstance(build_storage(cfg), LocalStorageGateway)


def test_unknown_backend_rejected():
    with pytest.raises(ValueError):
        build_storage(settings.model_copy(update={"STORAGE_BACKEND": "ftp"}))
    with pytest.raises(ValueError):
        build_ledger(settings.model_copy(update={"LEDGER_BACKEND": "mongo"}))


def test_database_module_only_sets_up_the_engine():
    from cyclofit import database

    assert database.engine is not None
    assert callable(database.create_db_and_tables)
    assert not hasattr(database, "get_session")
