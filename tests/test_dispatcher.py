import asyncio

import pytest

from cyclofit.application.ports.analysis_ledger import AnalysisStatus, IntakeMetadata, NewAnalysis
from cyclofit.application.services.dispatcher import ProcessingDispatcher, describe_error
from cyclofit.infrastructure.persistence.memory.analysis_ledger_memory import InMemoryAnalysisLedger

from fakes import FakeAudit, FakeProcessor


def _pending(ledger, key="videos/1-abc-ride.mp4"):
    return ledger.create(NewAnalysis(
        owner_id="rider-1",
        video_key=key,
        video_content_type="video/mp4",
        video_filename="ride.mp4",
        video_size=4,
        metadata=IntakeMetadata(),
    ))


@pytest.mark.asyncio
async def test_success_moves_through_processing_to_completed():
    ledger = InMemoryAnalysisLedger()
    processor = FakeProcessor(result={"max_angles": {"hip": 95.0}}, ledger=ledger)
    audit = FakeAudit()
    dispatcher = ProcessingDispatcher(ledger, processor, audit)
    rec = _pending(ledger)

    task = dispatcher.dispatch(b"data", rec.id)
    # Nothing has run yet; dispatch only schedules
    assert ledger.get(rec.id).status == AnalysisStatus.PENDING
    await task

    seen = processor.seen[0]
    assert seen.status == AnalysisStatus.PROCESSING
    done = ledger.get(rec.id)
    assert done.status == AnalysisStatus.COMPLETED
    assert done.result == {"max_angles": {"hip": 95.0}, "size": 4}
    assert done.error is None
    assert rec.updated_at < seen.updated_at < done.updated_at
    assert "processing_completed" in audit.actions()
    assert dispatcher.in_flight == 0


@pytest.mark.asyncio
async def test_processor_error_marks_failed():
    ledger = InMemoryAnalysisLedger()
    processor = FakeProcessor(exc=ValueError("no rider detected"))
    audit = FakeAudit()
    dispatcher = ProcessingDispatcher(ledger, processor, audit)
    rec = _pending(ledger)

    await dispatcher.dispatch(b"data", rec.id)

    failed = ledger.get(rec.id)
    assert failed.status == AnalysisStatus.FAILED
    assert failed.error == "ValueError: no rider detected"
    assert failed.result is None
    assert "processing_failed" in audit.actions()


@pytest.mark.asyncio
async def test_timeout_marks_failed():
    ledger = InMemoryAnalysisLedger()
    processor = FakeProcessor(delay=1)
    dispatcher = ProcessingDispatcher(ledger, processor, FakeAudit(), timeout_seconds=0.05)
    rec = _pending(ledger)

    await dispatcher.dispatch(b"data", rec.id)

    failed = ledger.get(rec.id)
    assert failed.status == AnalysisStatus.FAILED
    assert failed.error.startswith("TimeoutError")


@pytest.mark.asyncio
async def test_unknown_record_is_audited_and_not_processed():
    ledger = InMemoryAnalysisLedger()
    processor = FakeProcessor()
    audit = FakeAudit()
    dispatcher = ProcessingDispatcher(ledger, processor, audit)

    await dispatcher.dispatch(b"data", "missing-id")

    assert processor.calls == []
    assert audit.actions() == ["processing_start_failed"]


@pytest.mark.asyncio
async def test_concurrent_dispatches_are_independent():
    ledger = InMemoryAnalysisLedger()

    class SelectiveProcessor:
        async def process(self, video_bytes, analysis_id):
            await asyncio.sleep(0.01)
            if video_bytes == b"bad":
                raise RuntimeError("corrupt video")
            return {"frames": len(video_bytes)}

    dispatcher = ProcessingDispatcher(ledger, SelectiveProcessor(), FakeAudit(), concurrency=4)
    good = [_pending(ledger, key=f"videos/{i}-good.mp4") for i in range(5)]
    bad = _pending(ledger, key="videos/9-bad.mp4")

    tasks = [dispatcher.dispatch(b"good", r.id) for r in good]
    tasks.append(dispatcher.dispatch(b"bad", bad.id))
    assert dispatcher.in_flight == 6
    await asyncio.gather(*tasks)

    for r in good:
        rec = ledger.get(r.id)
        assert rec.status == AnalysisStatus.COMPLETED
        assert rec.result == {"frames": 4}
    assert ledger.get(bad.id).status == AnalysisStatus.FAILED
    assert dispatcher.in_flight == 0


@pytest.mark.asyncio
async def test_concurrency_limit_is_respected():
    ledger = InMemoryAnalysisLedger()
    running = {"now": 0, "peak": 0}

    class CountingProcessor:
        async def process(self, video_bytes, analysis_id):
            running["now"] += 1
            running["peak"] = max(running["peak"], running["now"])
            await asyncio.sleep(0.05)
            running["now"] -= 1
            return {}

    dispatcher = ProcessingDispatcher(ledger, CountingProcessor(), FakeAudit(), concurrency=2)
    records = [_pending(ledger, key=f"videos/{i}-ride.mp4") for i in range(6)]
    await asyncio.gather(*[dispatcher.dispatch(b"v", r.id) for r in records])

    assert running["peak"] == 2
    assert all(ledger.get(r.id).status == AnalysisStatus.COMPLETED for r in records)


@pytest.mark.asyncio
async def test_drain_cancels_stragglers():
    ledger = InMemoryAnalysisLedger()
    dispatcher = ProcessingDispatcher(ledger, FakeProcessor(delay=5), FakeAudit())
    rec = _pending(ledger)
    dispatcher.dispatch(b"v", rec.id)
    await asyncio.sleep(0.05)

    await dispatcher.drain(timeout=0.05)

    assert dispatcher.in_flight == 0
    # Left for the watchdog
    assert ledger.get(rec.id).status == AnalysisStatus.PROCESSING


def test_describe_error():
    assert describe_error(ValueError("bad")) == "ValueError: bad"
    assert describe_error(KeyError()) == "KeyError: no detail"
    assert describe_error(asyncio.TimeoutError()).startswith("TimeoutError")
