"""Anomaly Detection Service — inbound requests and the real-time control surface.

Owns the shared collaborators (detector registry, baseline cache, enricher,
optional result store) and the set of running stream processors.
"""

import asyncio
import time
import uuid
from typing import Optional

from ..ai.behavioral_baseline import BaselineStore
from ..ai.enricher import AnomalyEnricher
from ..ai.registry import DetectorRegistry
from ..ai.text_generation import HttpTextGenerator, TextGenerator
from ..alerting.manager import AlertManager
from ..config import AnomalyEngineConfig, get_config
from ..contracts import DetectionRequest, DetectionResult, ProcessorStatus
from ..database import close_engine, create_tables, get_session_factory
from ..utils.logging import get_logger, setup_logging
from .pipeline import DetectionPipeline
from .reporting import build_model_performance, build_summary, generate_recommendations
from .result_store import ResultStore
from .stream_processor import StreamProcessor

logger = get_logger("engine.detection_service")


class AnomalyDetectionService:
    """Entry point for one-shot and continuous anomaly detection."""

    def __init__(
        self,
        config: Optional[AnomalyEngineConfig] = None,
        registry: Optional[DetectorRegistry] = None,
        text_generator: Optional[TextGenerator] = None,
        baseline_store: Optional[BaselineStore] = None,
        result_store: Optional[ResultStore] = None,
    ):
        self.config = config or AnomalyEngineConfig()
        if text_generator is None and self.config.text_generation_url:
            text_generator = HttpTextGenerator(
                self.config.text_generation_url, timeout=self.config.text_generation_timeout
            )
        self.registry = registry or DetectorRegistry(self.config)
        self.baseline_store = baseline_store or BaselineStore(
            ttl_seconds=self.config.baseline_cache_ttl_seconds,
            max_entries=self.config.baseline_cache_max_entries,
        )
        self.pipeline = DetectionPipeline(
            self.config,
            self.registry,
            AnomalyEnricher(
                text_generator,
                timeout=self.config.text_generation_timeout,
                concurrency=self.config.enrichment_concurrency,
            ),
        )
        self._result_store = result_store
        self._alert_managers: dict[str, tuple[str, AlertManager]] = {}
        self._processors: dict[str, StreamProcessor] = {}
        self._pending_saves: set[asyncio.Task] = set()

    def _alert_manager_for(self, request: DetectionRequest) -> AlertManager:
        """One alert manager per (organization, source), rebuilt when its config changes.

        Suppression windows therefore span successive requests for the same source.
        """
        key = self.baseline_store.key(request.organization_id, request.data_source.source_id)
        fingerprint = request.alert_config.model_dump_json()
        cached = self._alert_managers.get(key)
        if cached is not None and cached[0] == fingerprint:
            return cached[1]
        manager = AlertManager(request.alert_config)
        self._alert_managers[key] = (fingerprint, manager)
        return manager

    async def detect(self, request: DetectionRequest) -> DetectionResult:
        """Run detection over the request's data source.

        Raises:
            RequestValidationError: Empty data, no algorithms or no alert config.
            UnknownAlgorithmError: An algorithm with no registered detector.
        """
        started = time.perf_counter()
        self.pipeline.validate_request(request)
        alert_manager = self._alert_manager_for(request)

        batch = self.pipeline.prepare(request.data_source)
        baseline = await self.baseline_store.get_or_create(
            request.organization_id,
            request.data_source.source_id,
            lambda: self.pipeline.build_baseline(batch),
        )
        output = await self.pipeline.run(
            batch, baseline, request.detection_config, request.context, alert_manager
        )

        elapsed = time.perf_counter() - started
        summary = build_summary(
            output.anomalies,
            batch,
            request.data_source.metadata.quality_score,
            list(output.results_by_algorithm),
            elapsed,
            low_quality_threshold=self.config.low_quality_threshold,
        )
        low_quality = (
            request.data_source.metadata.quality_score < self.config.low_quality_threshold
            or batch.filled_values > 0
            or batch.dropped_records > 0
        )
        result = DetectionResult(
            request_id=request.id,
            outcome=output.outcome,
            outcome_reason=output.outcome_reason,
            anomalies=output.anomalies,
            summary=summary,
            recommendations=generate_recommendations(
                output.anomalies,
                summary.data_quality_issues,
                volume_threshold=self.config.recommendation_volume_threshold,
                low_quality=low_quality,
            ),
            model_performance=build_model_performance(
                request.detection_config,
                output.results_by_algorithm,
                output.timings_ms,
                baseline.last_updated,
            ),
            alerts=output.alerts,
            processing_time_ms=round((time.perf_counter() - started) * 1000, 3),
        )
        logger.info(
            "detection_complete",
            request_id=request.id,
            organization_id=request.organization_id,
            outcome=result.outcome.value,
            anomalies=len(result.anomalies),
            alerts=len(result.alerts),
            processing_time_ms=result.processing_time_ms,
        )

        if self._result_store is not None and self.config.persist_results:
            self._schedule_save(result, request)
        return result

    def _schedule_save(self, result: DetectionResult, request: DetectionRequest) -> None:
        task = asyncio.create_task(
            self._result_store.save(result, request.organization_id, request.data_source.source_id)
        )
        self._pending_saves.add(task)
        task.add_done_callback(self._on_save_done)

    def _on_save_done(self, task: asyncio.Task) -> None:
        self._pending_saves.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("detection_result_save_failed", error=str(exc))

    async def start_real_time_detection(self, request: DetectionRequest) -> str:
        """Start a stream processor for the request and return its id.

        The request's own data, if any, seeds the baseline; it may be empty.
        """
        self.pipeline.validate_config(request)
        processor_id = (
            f"processor_{request.organization_id}_{request.data_source.source_id}_{uuid.uuid4().hex[:8]}"
        )
        processor = StreamProcessor(
            processor_id,
            request,
            self.pipeline,
            self.baseline_store,
            AlertManager(request.alert_config),
        )
        await processor.start()
        self._processors[processor_id] = processor
        logger.info("real_time_detection_started", processor_id=processor_id)
        return processor_id

    async def stop_real_time_detection(self, processor_id: str) -> bool:
        """Stop a processor; its final status stays readable. Returns False for unknown ids."""
        processor = self._processors.get(processor_id)
        if processor is None:
            return False
        await processor.stop()
        logger.info("real_time_detection_stopped", processor_id=processor_id)
        return True

    def get_processor(self, processor_id: str) -> Optional[StreamProcessor]:
        return self._processors.get(processor_id)

    def get_detection_status(self, processor_id: str) -> Optional[ProcessorStatus]:
        processor = self._processors.get(processor_id)
        return processor.get_status() if processor else None

    def list_processors(self, running_only: bool = False) -> list[str]:
        return [pid for pid, p in self._processors.items() if p.is_running or not running_only]

    async def shutdown(self) -> None:
        """Stop every processor and wait for outstanding result saves."""
        for processor_id in list(self._processors):
            await self.stop_real_time_detection(processor_id)
        if self._pending_saves:
            await asyncio.gather(*self._pending_saves, return_exceptions=True)
        if self._result_store is not None:
            await close_engine()
        logger.info("detection_service_shutdown")


async def create_service(
    config: Optional[AnomalyEngineConfig] = None,
    text_generator: Optional[TextGenerator] = None,
) -> AnomalyDetectionService:
    """Configure logging and result persistence, then build the service.

    Tables are created on the configured database only when
    ``persist_results`` is enabled.
    """
    config = config or get_config()
    setup_logging(
        debug=config.debug,
        log_dir=config.log_dir,
        log_max_bytes=config.log_max_bytes,
        log_backup_count=config.log_backup_count,
    )

    result_store = None
    if config.persist_results:
        await create_tables(config)
        result_store = ResultStore(get_session_factory(config))

    service = AnomalyDetectionService(config, text_generator=text_generator, result_store=result_store)
    logger.info("detection_service_ready", persist_results=config.persist_results)
    return service
