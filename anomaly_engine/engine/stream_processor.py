"""Stream Processor — repeats the detection pipeline for each arriving batch.

Each processor owns its baseline reference, alert manager and one lock that
serializes batch processing and baseline refreshes. Status reads never take
the lock.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Optional

from ..ai.behavioral_baseline import BaselineStore
from ..alerting.manager import AlertManager
from ..contracts import BatchResult, DetectionRequest, HistoricalBaseline, ProcessorStatus
from ..exceptions import ProcessorStoppedError
from ..utils.logging import get_logger
from .pipeline import DetectionPipeline


class StreamProcessor:
    """Continuous detection for one (organization, data source) request."""

    def __init__(
        self,
        processor_id: str,
        request: DetectionRequest,
        pipeline: DetectionPipeline,
        baseline_store: BaselineStore,
        alert_manager: Optional[AlertManager] = None,
    ):
        self.processor_id = processor_id
        self.request = request
        self._pipeline = pipeline
        self._baseline_store = baseline_store
        self._alert_manager = alert_manager
        self._baseline: Optional[HistoricalBaseline] = None
        self._lock = asyncio.Lock()
        self._running = False
        self._waiting = 0
        self._batches = 0
        self._failed_batches = 0
        self._total_processed = 0
        self._last_processed: Optional[datetime] = None
        self._latency_ms = 0.0
        self.logger = get_logger(f"engine.stream_processor.{processor_id}")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def baseline(self) -> Optional[HistoricalBaseline]:
        return self._baseline

    @property
    def alert_manager(self) -> Optional[AlertManager]:
        return self._alert_manager

    async def start(self) -> None:
        """Mark the processor running, seeding the baseline from the request data."""
        if self._running:
            return
        if self.request.data_source.data:
            batch = self._pipeline.prepare(self.request.data_source)
            self._baseline = await self._baseline_store.get_or_create(
                self.request.organization_id,
                self.request.data_source.source_id,
                lambda: self._pipeline.build_baseline(batch),
            )
        self._running = True
        self.logger.info("stream_processor_started", processor_id=self.processor_id)

    async def stop(self) -> None:
        """Stop accepting batches; waits for an in-flight batch to finish."""
        if not self._running:
            return
        self._running = False
        # batches queued on the lock see the flag and raise
        async with self._lock:
            pass
        self.logger.info(
            "stream_processor_stopped",
            processor_id=self.processor_id,
            total_processed=self._total_processed,
        )

    async def process_data_stream(self, records: list[Any]) -> BatchResult:
        """Run the pipeline over one batch of raw records.

        Raises:
            ProcessorStoppedError: If the processor is not running.
            RequestValidationError: If the batch has no usable records.
        """
        if not self._running:
            raise ProcessorStoppedError(self.processor_id)

        self._waiting += 1
        try:
            await self._lock.acquire()
        finally:
            self._waiting -= 1

        try:
            if not self._running:
                raise ProcessorStoppedError(self.processor_id)
            started = time.perf_counter()
            self._batches += 1
            try:
                batch = self._pipeline.prepare(self.request.data_source.model_copy(update={"data": records}))
                if self._baseline is None:
                    self._baseline = await self._baseline_store.get_or_create(
                        self.request.organization_id,
                        self.request.data_source.source_id,
                        lambda: self._pipeline.build_baseline(batch),
                    )
                output = await self._pipeline.run(
                    batch,
                    self._baseline,
                    self.request.detection_config,
                    self.request.context,
                    self._alert_manager,
                )
            except Exception as e:
                self._failed_batches += 1
                self.logger.error("stream_batch_failed", processor_id=self.processor_id, error=str(e))
                raise

            self._total_processed += len(batch)
            self._last_processed = datetime.now(timezone.utc)
            self._latency_ms = (time.perf_counter() - started) * 1000
            return BatchResult(
                outcome=output.outcome,
                outcome_reason=output.outcome_reason,
                anomalies=output.anomalies,
                alerts=output.alerts,
            )
        finally:
            self._lock.release()

    async def update_baseline(self, records: list[Any]) -> HistoricalBaseline:
        """Rebuild the baseline from records and swap it in atomically."""
        async with self._lock:
            batch = self._pipeline.prepare(self.request.data_source.model_copy(update={"data": records}))
            baseline = await self._pipeline.build_baseline(batch)
            self._baseline = baseline
            self._baseline_store.replace(
                self.request.organization_id, self.request.data_source.source_id, baseline
            )
        self.logger.info(
            "stream_baseline_updated",
            processor_id=self.processor_id,
            samples=baseline.sample_count,
        )
        return baseline

    def get_status(self) -> ProcessorStatus:
        return ProcessorStatus(
            is_running=self._running,
            last_processed=self._last_processed,
            total_processed=self._total_processed,
            error_rate=self._failed_batches / self._batches if self._batches else 0.0,
            latency_ms=round(self._latency_ms, 3),
            queue_size=self._waiting,
        )
