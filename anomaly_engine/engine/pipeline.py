"""Detection pipeline — prepare, score, combine, enrich and alert for one batch.

Shared by one-shot detection and stream processors. Detectors run
concurrently on the default thread pool against the same batch and baseline;
``asyncio.gather`` is the barrier before the ensemble reduction.
"""

import asyncio
import functools
import time
from dataclasses import dataclass, field
from typing import Optional

from ..ai.behavioral_baseline import BaselineBuilder
from ..ai.data_preparer import DataPreparer, PreparedBatch
from ..ai.enricher import AnomalyEnricher
from ..ai.ensemble_detector import EnsembleCombiner
from ..ai.registry import DetectorRegistry
from ..alerting.manager import AlertManager
from ..config import AnomalyEngineConfig
from ..contracts import (
    Algorithm,
    AlgorithmKind,
    DataSource,
    DetectedAnomaly,
    DetectionConfig,
    DetectionContext,
    DetectionOutcome,
    DetectionRequest,
    GeneratedAlert,
    HistoricalBaseline,
)
from ..exceptions import RequestValidationError
from ..utils.logging import get_logger
from ..utils.timeparse import parse_duration

logger = get_logger("engine.pipeline")


@dataclass
class PipelineOutput:
    outcome: DetectionOutcome = DetectionOutcome.COMPLETED
    outcome_reason: Optional[str] = None
    anomalies: list[DetectedAnomaly] = field(default_factory=list)
    alerts: list[GeneratedAlert] = field(default_factory=list)
    results_by_algorithm: dict[AlgorithmKind, list[DetectedAnomaly]] = field(default_factory=dict)
    timings_ms: dict[AlgorithmKind, float] = field(default_factory=dict)


class DetectionPipeline:
    """Runs the detection stages for prepared batches."""

    def __init__(
        self,
        config: AnomalyEngineConfig,
        registry: DetectorRegistry,
        enricher: AnomalyEnricher,
    ):
        self.config = config
        self.registry = registry
        self.enricher = enricher
        self.preparer = DataPreparer()
        self.builder = BaselineBuilder(pattern_min_strength=config.pattern_min_strength)
        self.combiner = EnsembleCombiner(confidence_boost=config.ensemble_confidence_boost)

    def validate_request(self, request: DetectionRequest) -> None:
        """Reject requests the pipeline cannot run.

        Raises:
            RequestValidationError: Empty data, no algorithms, a missing alert
                configuration or a malformed aggregation window.
            UnknownAlgorithmError: An algorithm kind with no registered detector.
        """
        data = request.data_source.data
        if not isinstance(data, list) or not data:
            raise RequestValidationError("Data source must contain a non-empty list of records")
        self.validate_config(request)

    def validate_config(self, request: DetectionRequest) -> None:
        if not request.detection_config.algorithms:
            raise RequestValidationError("At least one detection algorithm is required")
        if request.alert_config is None:
            raise RequestValidationError("Alert configuration is required")
        try:
            parse_duration(request.detection_config.aggregation_window)
        except ValueError as e:
            raise RequestValidationError(str(e)) from e
        for algorithm in request.detection_config.algorithms:
            self.registry.get(algorithm.kind)

    def prepare(self, data_source: DataSource) -> PreparedBatch:
        return self.preparer.prepare(data_source)

    async def build_baseline(self, batch: PreparedBatch) -> HistoricalBaseline:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.builder.build, batch)

    async def run_detectors(
        self,
        batch: PreparedBatch,
        baseline: HistoricalBaseline,
        detection_config: DetectionConfig,
        context: DetectionContext,
    ) -> tuple[dict[AlgorithmKind, list[DetectedAnomaly]], dict[AlgorithmKind, float]]:
        """Run each configured algorithm once; failures only drop that algorithm's output."""
        algorithms: dict[AlgorithmKind, Algorithm] = {}
        for algorithm in detection_config.algorithms:
            algorithms.setdefault(algorithm.kind, algorithm)

        loop = asyncio.get_running_loop()
        timings: dict[AlgorithmKind, float] = {}

        async def _run(kind: AlgorithmKind, algorithm: Algorithm) -> Optional[list[DetectedAnomaly]]:
            detector = self.registry.get(kind)
            started = time.perf_counter()
            try:
                return await loop.run_in_executor(
                    None,
                    functools.partial(detector.detect, batch, baseline, detection_config, context, algorithm),
                )
            except Exception as e:
                logger.error("detector_failed", algorithm=kind.value, batch_id=batch.batch_id, error=str(e))
                return None
            finally:
                timings[kind] = (time.perf_counter() - started) * 1000

        outputs = await asyncio.gather(*(_run(k, a) for k, a in algorithms.items()))
        results = {kind: found for kind, found in zip(algorithms, outputs) if found is not None}
        return results, timings

    async def run(
        self,
        batch: PreparedBatch,
        baseline: HistoricalBaseline,
        detection_config: DetectionConfig,
        context: DetectionContext,
        alert_manager: Optional[AlertManager] = None,
    ) -> PipelineOutput:
        if baseline.sample_count < detection_config.minimum_samples:
            reason = (
                f"Baseline has {baseline.sample_count} samples, "
                f"{detection_config.minimum_samples} required"
            )
            logger.info("insufficient_baseline_data", batch_id=batch.batch_id, reason=reason)
            return PipelineOutput(outcome=DetectionOutcome.INSUFFICIENT_DATA, outcome_reason=reason)

        results, timings = await self.run_detectors(batch, baseline, detection_config, context)
        combined = self.combiner.combine(results)
        enriched = await self.enricher.enrich(combined, context)
        alerts = alert_manager.generate_alerts(enriched) if alert_manager is not None else []

        logger.info(
            "batch_processed",
            batch_id=batch.batch_id,
            records=len(batch),
            algorithms=[k.value for k in results],
            anomalies=len(enriched),
            alerts=len(alerts),
        )
        return PipelineOutput(
            anomalies=enriched,
            alerts=alerts,
            results_by_algorithm=results,
            timings_ms=timings,
        )
