import os
import tempfile

import pytest

# Must be set before cyclofit.config is imported
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LEDGER_BACKEND", "memory")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="cyclofit-uploads-"))
os.environ.setdefault("BASE_URL", "http://testserver")
os.environ.setdefault("WATCHDOG_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")

from fastapi.testclient import TestClient

from cyclofit.config import settings
from cyclofit.dependencies import build_services
from cyclofit.infrastructure.persistence.memory.analysis_ledger_memory import InMemoryAnalysisLedger
from cyclofit.infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter
from cyclofit.infrastructure.storage.local_storage import LocalStorageGateway
from cyclofit.main import create_app
from cyclofit.utils import create_jwt_token

from fakes import FakeAudit, FakeProcessor


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_jwt_token({'sub': 'rider-1'})}"}


@pytest.fixture
def other_auth_headers():
    return {"Authorization": f"Bearer {create_jwt_token({'sub': 'rider-2'})}"}


@pytest.fixture
def services(tmp_path):
    return build_services(
        settings,
        ledger=InMemoryAnalysisLedger(),
        storage=LocalStorageGateway(upload_dir=str(tmp_path / "uploads"), base_url="http://testserver"),
        processor=FakeProcessor(),
        rate_limiter=InMemoryRateLimiter(),
        audit=FakeAudit(),
    )


@pytest.fixture
def client(services):
    app = create_app(services)
    with TestClient(app) as c:
        yield c
