"""AI Explainability — field attribution, statistical evidence and narratives.

Provides per-field contribution analysis and a human-readable narrative for
detected anomalies.
"""

import math
from typing import Optional

import numpy as np

from ..contracts import ConfidenceInterval, DetectedAnomaly, StatisticalEvidence
from ..utils.logging import get_logger

logger = get_logger("ai.explainability")


def normal_cdf(z: float) -> float:
    return 0.5 * (1.0 + math.erf(z / math.sqrt(2.0)))


def statistical_evidence(value: float, mean: float, std: float) -> StatisticalEvidence:
    """Z-score, percentile, two-tailed probability and a mean ± 2·std interval.

    A zero standard deviation yields z = 0, so the value is treated as typical.
    """
    z = (value - mean) / std if std > 0 else 0.0
    return StatisticalEvidence(
        z_score=z,
        percentile=100.0 * normal_cdf(z),
        probability_of_occurrence=2.0 * (1.0 - normal_cdf(abs(z))),
        confidence_interval=ConfidenceInterval(lower=mean - 2 * std, upper=mean + 2 * std),
    )


class AnomalyExplainer:
    """Generates attributions and explanations for anomalies."""

    def compute_attribution(
        self,
        actual: dict[str, float],
        baseline_mean: Optional[dict[str, float]],
        baseline_std: Optional[dict[str, float]],
    ) -> dict[str, float]:
        """Compute per-field contribution to an anomaly.

        Uses the absolute standardized deviation from the baseline, normalized so
        contributions sum to 1. Falls back to equal weights when no baseline is
        available or every field sits exactly on its mean.
        """
        names = list(actual)
        if not names:
            return {}
        equal = {name: 1.0 / len(names) for name in names}
        if baseline_mean is None or baseline_std is None:
            return equal

        values = np.array([actual[n] for n in names], dtype=float)
        means = np.array([baseline_mean.get(n, 0.0) for n in names], dtype=float)
        stds = np.array([baseline_std.get(n, 0.0) for n in names], dtype=float)
        std_safe = np.where(stds == 0, 1.0, stds)
        deviations = np.abs(values - means) / std_safe

        total = deviations.sum()
        if total == 0 or not np.isfinite(total):
            return equal
        normalized = deviations / total
        return {name: float(normalized[i]) for i, name in enumerate(names)}

    def generate_narrative(self, anomaly: DetectedAnomaly) -> str:
        """Build a short plain-language account of an anomaly."""
        parts = [
            f"{anomaly.severity.value.capitalize()} {anomaly.type.value.replace('_', ' ').lower()} "
            f"(score {anomaly.anomaly_score:.2f}, confidence {anomaly.confidence:.0%})."
        ]

        if anomaly.detected_by:
            parts.append(f"Flagged by: {', '.join(k.value for k in anomaly.detected_by)}.")

        top_fields = sorted(
            anomaly.affected_fields, key=lambda f: f.contribution_to_anomaly, reverse=True
        )[:3]
        if top_fields:
            field_strs = [
                f"{f.field_name} was {f.actual_value:g} against an expected {f.expected_value:g} "
                f"({f.contribution_to_anomaly:.0%})"
                for f in top_fields
            ]
            parts.append(f"Primary drivers: {'; '.join(field_strs)}.")

        evidence = anomaly.explanation.statistical_evidence
        if evidence.z_score:
            parts.append(
                f"Z-score {evidence.z_score:.2f} puts the value at the "
                f"{evidence.percentile:.1f}th percentile."
            )

        if anomaly.business_impact is not None:
            impact = anomaly.business_impact
            parts.append(
                f"Business impact: {impact.estimated_impact.value.lower()} "
                f"{impact.category.value.lower()} ({impact.urgency.value.lower()} urgency)."
            )
        return " ".join(parts)
