"""Z-Score Detector — statistical anomaly detection via per-field z-scores.

Scores every record against the baseline mean/std of each field and flags
values whose absolute z-score exceeds a sensitivity-dependent threshold.
"""

from typing import Optional

from ..contracts import (
    AffectedField,
    Algorithm,
    AlgorithmKind,
    AnomalyType,
    DetectedAnomaly,
    DetectionConfig,
    DetectionContext,
    Explanation,
    HistoricalBaseline,
    MAX_CONFIDENCE,
    PatternAnalysis,
    Sensitivity,
)
from .base_detector import BaseDetector, severity_from_ratio
from .data_preparer import PreparedBatch
from .explainability import statistical_evidence

SENSITIVITY_THRESHOLDS = {
    Sensitivity.LOW: 3.0,
    Sensitivity.MEDIUM: 2.5,
    Sensitivity.HIGH: 2.0,
}
DEFAULT_THRESHOLD = 2.5

POSSIBLE_REASONS = [
    "Data entry error",
    "System malfunction",
    "Unusual business activity",
]


def resolve_threshold(detection_config: DetectionConfig) -> float:
    """Custom statistical threshold when given, else the sensitivity default."""
    custom = detection_config.custom_thresholds
    if custom is not None and custom.statistical_threshold:
        return custom.statistical_threshold
    return SENSITIVITY_THRESHOLDS.get(detection_config.sensitivity, DEFAULT_THRESHOLD)


class ZScoreDetector(BaseDetector):
    """Statistical anomaly detection using z-score thresholding."""

    kind = AlgorithmKind.STATISTICAL

    def detect(
        self,
        batch: PreparedBatch,
        baseline: HistoricalBaseline,
        detection_config: DetectionConfig,
        context: DetectionContext,
        algorithm: Optional[Algorithm] = None,
    ) -> list[DetectedAnomaly]:
        threshold = resolve_threshold(detection_config)
        custom = detection_config.custom_thresholds
        percentile_threshold = custom.percentile_threshold if custom else None

        # a cached baseline may cover fields this batch does not declare or clean
        metrics = [m for m in baseline.metrics if m.field in batch.value_fields]

        anomalies = []
        for index, record in enumerate(batch.records):
            for metric in metrics:
                value = float(record[metric.field])
                evidence = statistical_evidence(value, metric.mean, metric.std)
                abs_z = abs(evidence.z_score)
                if abs_z <= threshold:
                    continue

                ratio = abs_z / threshold
                rules_broken = [f"Z-score threshold: {threshold}"]
                if percentile_threshold is not None and (
                    evidence.percentile > percentile_threshold
                    or evidence.percentile < 100.0 - percentile_threshold
                ):
                    rules_broken.append(f"Percentile threshold: {percentile_threshold}")

                anomaly_type = AnomalyType.POINT_ANOMALY
                primary_cause = "Statistical outlier detected"
                pattern_analysis = PatternAnalysis(
                    expected_pattern="Normal distribution",
                    observed_pattern="Outlier",
                    pattern_deviation=abs_z,
                )
                pattern = baseline.pattern_for(metric.field) if detection_config.seasonality_aware else None
                if pattern is not None:
                    anomaly_type = AnomalyType.CONTEXTUAL_ANOMALY
                    primary_cause = f"Deviation from {pattern.pattern} pattern in {metric.field}"
                    pattern_analysis = PatternAnalysis(
                        expected_pattern=f"{pattern.pattern} cycle ({pattern.frequency}h)",
                        observed_pattern="Outlier against seasonal profile",
                        pattern_deviation=abs_z,
                        seasonality_impact=pattern.strength,
                    )

                anomalies.append(DetectedAnomaly(
                    id=self.new_anomaly_id(index),
                    type=anomaly_type,
                    severity=severity_from_ratio(ratio),
                    confidence=min(MAX_CONFIDENCE, ratio * 0.8),
                    anomaly_score=abs_z,
                    timestamp=batch.timestamps[index],
                    record_index=index,
                    affected_fields=[AffectedField(
                        field_name=metric.field,
                        expected_value=metric.mean,
                        actual_value=value,
                        deviation_score=abs_z,
                        contribution_to_anomaly=1.0,
                    )],
                    context=self.build_context(batch, index, context),
                    explanation=Explanation(
                        primary_cause=primary_cause,
                        contributing_factors=[f"Z-score: {evidence.z_score:.2f}"],
                        possible_reasons=list(POSSIBLE_REASONS),
                        rules_broken=rules_broken,
                        statistical_evidence=evidence,
                        pattern_analysis=pattern_analysis,
                    ),
                    detected_by=[self.kind],
                ))

        self.logger.debug(
            "zscore_detection_complete",
            batch_id=batch.batch_id,
            threshold=threshold,
            anomalies=len(anomalies),
        )
        return anomalies
