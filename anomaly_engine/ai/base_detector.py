"""Abstract base class for detection strategies.

Every strategy receives the same immutable inputs (prepared batch, baseline,
detection config, request context) and returns a list of anomalies. Strategies
are synchronous and CPU-bound; the pipeline runs them on a thread pool.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

import numpy as np

from ..config import AnomalyEngineConfig
from ..contracts import (
    AffectedField,
    Algorithm,
    AlgorithmKind,
    AnomalyContext,
    AnomalyType,
    DetectedAnomaly,
    DetectionConfig,
    DetectionContext,
    Explanation,
    HistoricalBaseline,
    MAX_CONFIDENCE,
    PatternAnalysis,
    Severity,
    TimeRange,
)
from ..utils.logging import get_logger
from .data_preparer import NORMALIZED_SUFFIX, PreparedBatch
from .explainability import AnomalyExplainer, statistical_evidence


def severity_from_ratio(ratio: float) -> Severity:
    """Map a score-to-threshold ratio onto a severity tier."""
    if ratio > 2.0:
        return Severity.CRITICAL
    if ratio > 1.5:
        return Severity.HIGH
    if ratio > 1.2:
        return Severity.MEDIUM
    return Severity.LOW


def severity_from_score(score: float) -> Severity:
    """Map a 0-1 model score onto a severity tier."""
    if score >= 0.8:
        return Severity.CRITICAL
    if score >= 0.6:
        return Severity.HIGH
    if score >= 0.4:
        return Severity.MEDIUM
    return Severity.LOW


class BaseDetector(ABC):
    """Base class that all detection strategies inherit from."""

    kind: AlgorithmKind

    def __init__(self, config: Optional[AnomalyEngineConfig] = None):
        self.config = config or AnomalyEngineConfig()
        self.logger = get_logger(f"ai.detector.{self.kind.value.lower()}")

    @abstractmethod
    def detect(
        self,
        batch: PreparedBatch,
        baseline: HistoricalBaseline,
        detection_config: DetectionConfig,
        context: DetectionContext,
        algorithm: Optional[Algorithm] = None,
    ) -> list[DetectedAnomaly]:
        """Detect anomalies in a prepared batch.

        Returns:
            Anomalies found, in record order. Must not mutate its inputs.
        """
        ...

    def new_anomaly_id(self, index: int) -> str:
        return f"{self.kind.value.lower()}_{index}_{uuid.uuid4().hex[:8]}"

    def build_context(
        self,
        batch: PreparedBatch,
        index: int,
        context: DetectionContext,
    ) -> AnomalyContext:
        """Capture the record, its neighbours and the time window they span."""
        window = self.config.surrounding_window
        start = max(0, index - window)
        end = min(len(batch), index + window + 1)
        known = [ts for ts in batch.timestamps[start:end] if ts is not None]
        return AnomalyContext(
            data_point=_public_fields(batch.records[index]),
            surrounding_data=[_public_fields(r) for r in batch.records[start:end]],
            time_window=TimeRange(start=min(known), end=max(known)) if known else None,
            related_entities=list(context.client_context),
            contextual_factors=list(context.contextual_factors),
        )


def _public_fields(record: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in record.items() if not k.endswith(NORMALIZED_SUFFIX)}


class FeatureModelDetector(BaseDetector):
    """Base for model-based strategies that score the normalized feature matrix.

    Subclasses fit a model on the batch and return a per-record outlier flag and
    a 0-1 score; this class turns flagged rows into anomalies with
    deviation-based field attribution against the baseline.
    """

    primary_cause: str = "Model-based detector flagged anomaly"
    rule_name: str = "Model decision boundary"

    def __init__(self, config: Optional[AnomalyEngineConfig] = None):
        super().__init__(config)
        self._explainer = AnomalyExplainer()

    @abstractmethod
    def fit_predict(self, matrix: np.ndarray, parameters: dict[str, Any]) -> tuple[np.ndarray, np.ndarray]:
        """Fit on the matrix and return (is_outlier flags, 0-1 scores) per row."""
        ...

    def detect(
        self,
        batch: PreparedBatch,
        baseline: HistoricalBaseline,
        detection_config: DetectionConfig,
        context: DetectionContext,
        algorithm: Optional[Algorithm] = None,
    ) -> list[DetectedAnomaly]:
        parameters = dict(algorithm.parameters) if algorithm else {}
        min_records = int(parameters.get("min_records", self.config.ml_min_records))
        matrix = batch.feature_matrix()
        if len(batch) < min_records or matrix.shape[1] == 0:
            self.logger.debug(
                "model_detection_skipped",
                batch_id=batch.batch_id,
                records=len(batch),
                min_records=min_records,
            )
            return []

        flags, scores = self.fit_predict(matrix, parameters)

        means, stds = {}, {}
        for f in batch.value_fields:
            metric = baseline.metric_for(f)
            means[f] = metric.mean if metric else batch.field_means[f]
            stds[f] = metric.std if metric else batch.field_stds[f]

        anomalies = []
        for index in np.flatnonzero(flags):
            index = int(index)
            record = batch.records[index]
            actual = {f: float(record[f]) for f in batch.value_fields}
            attribution = self._explainer.compute_attribution(actual, means, stds)
            affected = [
                AffectedField(
                    field_name=f,
                    expected_value=means[f],
                    actual_value=actual[f],
                    deviation_score=abs(actual[f] - means[f]) / stds[f] if stds[f] > 0 else 0.0,
                    contribution_to_anomaly=attribution[f],
                )
                for f in batch.value_fields
            ]
            top = max(affected, key=lambda a: a.contribution_to_anomaly)
            score = float(np.clip(scores[index], 0.0, 1.0))

            anomalies.append(DetectedAnomaly(
                id=self.new_anomaly_id(index),
                type=AnomalyType.POINT_ANOMALY,
                severity=severity_from_score(score),
                confidence=min(MAX_CONFIDENCE, score),
                anomaly_score=score,
                timestamp=batch.timestamps[index],
                record_index=index,
                affected_fields=affected,
                context=self.build_context(batch, index, context),
                explanation=Explanation(
                    primary_cause=self.primary_cause,
                    contributing_factors=[
                        "Multivariate analysis",
                        f"Largest deviation in {top.field_name} ({top.contribution_to_anomaly:.0%})",
                    ],
                    possible_reasons=["Unusual combination of feature values"],
                    rules_broken=[self.rule_name],
                    statistical_evidence=statistical_evidence(
                        top.actual_value, means[top.field_name], stds[top.field_name]
                    ),
                    pattern_analysis=PatternAnalysis(
                        expected_pattern="Typical feature combination",
                        observed_pattern="Unusual feature combination",
                        pattern_deviation=score,
                    ),
                ),
                detected_by=[self.kind],
            ))

        self.logger.debug(
            "model_detection_complete",
            batch_id=batch.batch_id,
            records=len(batch),
            anomalies=len(anomalies),
        )
        return anomalies
