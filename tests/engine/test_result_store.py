"""Tests for ResultStore against an in-memory SQLite database."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from anomaly_engine.contracts import DetectionOutcome, DetectionResult
from anomaly_engine.engine.result_store import ResultStore
from anomaly_engine.models import Base


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


class TestResultStore:
    @pytest.mark.asyncio
    async def test_save_and_get(self, session_factory, make_anomaly):
        store = ResultStore(session_factory)
        result = DetectionResult(request_id="detection_1", anomalies=[make_anomaly()])

        row_id = await store.save(result, "org-1", "ledger")
        loaded = await store.get("detection_1")

        assert row_id == 1
        assert loaded.request_id == "detection_1"
        assert loaded.outcome == DetectionOutcome.COMPLETED
        assert loaded.anomalies[0].affected_fields[0].field_name == "amount"

    @pytest.mark.asyncio
    async def test_get_missing(self, session_factory):
        assert await ResultStore(session_factory).get("detection_missing") is None

    @pytest.mark.asyncio
    async def test_list_recent_newest_first(self, session_factory):
        store = ResultStore()
        store.set_db_session_factory(session_factory)
        base = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)
        for i in range(3):
            await store.save(
                DetectionResult(request_id=f"detection_{i}", detection_timestamp=base + timedelta(minutes=i)),
                "org-1",
                "ledger",
            )
        await store.save(DetectionResult(request_id="detection_other"), "org-2", "ledger")

        recent = await store.list_recent("org-1", limit=2)
        assert [r.request_id for r in recent] == ["detection_2", "detection_1"]
