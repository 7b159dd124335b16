"""Fakes for the pipeline ports, shared across test modules."""
import asyncio
from typing import Dict, List, Optional

from cyclofit.exceptions import NotFoundError, StorageFault


class FakeAudit:
    def __init__(self):
        self.entries: List[dict] = []

    def log(self, action, analysis_id=None, owner_id=None, video_key=None, success=True, details=None):
        self.entries.append({
            "action": action,
            "analysis_id": analysis_id,
            "owner_id": owner_id,
            "video_key": video_key,
            "success": success,
            "details": details or {},
        })

    def actions(self) -> List[str]:
        return [e["action"] for e in self.entries]


class FakeStorage:
    def __init__(self, fail_put: bool = False, fail_sign: bool = False):
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.deleted: List[str] = []
        self.fail_put = fail_put
        self.fail_sign = fail_sign

    def put(self, key: str, data: bytes, content_type: str) -> None:
        if self.fail_put:
            raise StorageFault("bucket unavailable")
        if key in self.objects:
            raise StorageFault(f"Object already exists: {key}")
        self.objects[key] = data
        self.content_types[key] = content_type

    def sign_url(self, key: str, expires_in: int) -> str:
        if self.fail_sign:
            raise StorageFault("signing unavailable")
        return f"https://storage.test/{key}?expires={expires_in}"

    def get(self, key: str) -> bytes:
        if key not in self.objects:
            raise NotFoundError(f"Object not found: {key}")
        return self.objects[key]

    def delete(self, key: str) -> None:
        self.deleted.append(key)
        self.objects.pop(key, None)


class FakeProcessor:
    def __init__(self, result: Optional[dict] = None, exc: Optional[Exception] = None, delay: float = 0, ledger=None):
        self.result = result if result is not None else {"max_angles": {"hip": 95.0}}
        self.exc = exc
        self.delay = delay
        self.ledger = ledger
        self.calls: List[str] = []
        self.seen = []

    async def process(self, video_bytes: bytes, analysis_id: str) -> dict:
        self.calls.append(analysis_id)
        if self.ledger is not None:
            self.seen.append(self.ledger.get(analysis_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return dict(self.result, size=len(video_bytes))


class RecordingDispatcher:
    """Stands in for ProcessingDispatcher when a test needs records to stay pending."""

    def __init__(self):
        self.calls = []
        self.in_flight = 0

    def dispatch(self, video_bytes: bytes, analysis_id: str):
        self.calls.append((analysis_id, video_bytes))

    async def drain(self, timeout=None):
        return None


class DummyUpload:
    def __init__(self, filename: Optional[str], content: bytes = b"videobytes" * 1024, content_type: Optional[str] = "video/mp4"):
        self.filename = filename
        self.content_type = content_type
        self._content = content

    async def read(self):
        return self._content
