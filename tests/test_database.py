"""Tests for service bootstrap with a file-backed SQLite database."""

import pytest

from anomaly_engine.config import AnomalyEngineConfig
from anomaly_engine.database import close_engine, get_session_factory
from anomaly_engine.engine.detection_service import create_service
from anomaly_engine.engine.result_store import ResultStore


@pytest.fixture
def config(tmp_path):
    return AnomalyEngineConfig(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'results.db'}",
        log_dir=str(tmp_path / "logs"),
        persist_results=True,
    )


class TestCreateService:
    @pytest.mark.asyncio
    async def test_results_survive_shutdown(self, config, tmp_path, make_request, records_factory):
        service = await create_service(config)
        result = await service.detect(make_request(records_factory([100.0] * 19 + [1000.0])))
        await service.shutdown()

        store = ResultStore(get_session_factory(config))
        try:
            loaded = await store.get(result.request_id)
        finally:
            await close_engine()

        assert loaded is not None
        assert len(loaded.anomalies) == 1
        assert (tmp_path / "logs" / "anomaly_engine.log").exists()

    @pytest.mark.asyncio
    async def test_no_store_without_persistence(self, tmp_path):
        service = await create_service(AnomalyEngineConfig(log_dir=str(tmp_path / "logs")))
        assert service._result_store is None
        await service.shutdown()
