"""Result Store — durable record of detection results."""

from typing import Optional

from sqlalchemy import select

from ..contracts import DetectionResult
from ..models.detection_result import DetectionResultRecord
from ..utils.logging import get_logger

logger = get_logger("engine.result_store")


class ResultStore:
    """Saves and loads DetectionResults through an async session factory."""

    def __init__(self, db_session_factory=None):
        self._db_session_factory = db_session_factory

    def set_db_session_factory(self, factory) -> None:
        self._db_session_factory = factory

    async def save(self, result: DetectionResult, organization_id: str, source_id: str) -> int:
        """Persist a result and return its row id."""
        async with self._db_session_factory() as session:
            row = DetectionResultRecord(
                request_id=result.request_id,
                organization_id=organization_id,
                source_id=source_id,
                detection_timestamp=result.detection_timestamp.replace(tzinfo=None),
                outcome=result.outcome.value,
                anomaly_count=len(result.anomalies),
                alert_count=len(result.alerts),
                processing_time_ms=result.processing_time_ms,
                result_json=result.model_dump_json(),
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            logger.info(
                "detection_result_saved",
                request_id=result.request_id,
                organization_id=organization_id,
                anomalies=row.anomaly_count,
            )
            return row.id

    async def get(self, request_id: str) -> Optional[DetectionResult]:
        async with self._db_session_factory() as session:
            result = await session.execute(
                select(DetectionResultRecord).where(DetectionResultRecord.request_id == request_id)
            )
            row = result.scalar_one_or_none()
            if row is None or not row.result_json:
                return None
            return DetectionResult.model_validate_json(row.result_json)

    async def list_recent(self, organization_id: str, limit: int = 20) -> list[DetectionResult]:
        """Most recent results for an organization, newest first."""
        async with self._db_session_factory() as session:
            result = await session.execute(
                select(DetectionResultRecord)
                .where(DetectionResultRecord.organization_id == organization_id)
                .order_by(DetectionResultRecord.detection_timestamp.desc(), DetectionResultRecord.id.desc())
                .limit(limit)
            )
            return [
                DetectionResult.model_validate_json(row.result_json)
                for row in result.scalars().all()
                if row.result_json
            ]
