"""Ensemble Combiner — merges overlapping detections from multiple strategies.

Anomalies reported by different algorithms for the same record and the same
set of fields collapse into one anomaly with boosted confidence.
"""

import uuid
from typing import Hashable

from ..contracts import (
    AffectedField,
    AlgorithmKind,
    DetectedAnomaly,
    MAX_CONFIDENCE,
    highest_severity,
)
from ..utils.logging import get_logger

logger = get_logger("ai.ensemble_detector")


def _ordered_union(lists: list[list]) -> list:
    seen: list = []
    for items in lists:
        for item in items:
            if item not in seen:
                seen.append(item)
    return seen


class EnsembleCombiner:
    """Groups anomalies by record and affected fields, merging each group
    that more than one algorithm contributed to."""

    def __init__(self, confidence_boost: float = 0.1):
        self._confidence_boost = confidence_boost

    @staticmethod
    def group_key(anomaly: DetectedAnomaly) -> Hashable:
        # every detector scores the same batch, so the index identifies the record
        return anomaly.record_index, tuple(anomaly.field_names)

    def combine(self, results_by_algorithm: dict[AlgorithmKind, list[DetectedAnomaly]]) -> list[DetectedAnomaly]:
        """Merge per-algorithm results into one list, in first-seen order."""
        if len(results_by_algorithm) <= 1:
            return [a for anomalies in results_by_algorithm.values() for a in anomalies]

        groups: dict[Hashable, list[DetectedAnomaly]] = {}
        for anomalies in results_by_algorithm.values():
            for anomaly in anomalies:
                groups.setdefault(self.group_key(anomaly), []).append(anomaly)

        combined = []
        merged_groups = 0
        for group in groups.values():
            if len({kind for a in group for kind in a.detected_by}) < 2:
                combined.extend(group)
            else:
                combined.append(self.merge(group))
                merged_groups += 1

        logger.debug(
            "ensemble_combined",
            algorithms=len(results_by_algorithm),
            inputs=sum(len(g) for g in groups.values()),
            outputs=len(combined),
            merged_groups=merged_groups,
        )
        return combined

    def merge(self, group: list[DetectedAnomaly]) -> DetectedAnomaly:
        """Combine several detections of the same anomaly into one."""
        first = group[0]
        avg_confidence = sum(a.confidence for a in group) / len(group)
        max_confidence = max(a.confidence for a in group)
        confidence = min(MAX_CONFIDENCE, max(avg_confidence + self._confidence_boost, max_confidence))

        detected_by = _ordered_union([a.detected_by for a in group])
        explanation = first.explanation.model_copy(update={
            "primary_cause": "Multiple algorithms detected anomaly",
            "contributing_factors": _ordered_union([a.explanation.contributing_factors for a in group])
            + [f"Detected by {len(detected_by)} algorithms"],
            "possible_reasons": _ordered_union([a.explanation.possible_reasons for a in group]),
            "rules_broken": _ordered_union([a.explanation.rules_broken for a in group]),
        })

        return first.model_copy(update={
            "id": f"ensemble_{uuid.uuid4().hex[:12]}",
            "severity": highest_severity(*(a.severity for a in group)),
            "confidence": confidence,
            "anomaly_score": max(a.anomaly_score for a in group),
            "affected_fields": self._merge_fields(group),
            "explanation": explanation,
            "detected_by": detected_by,
        })

    @staticmethod
    def _merge_fields(group: list[DetectedAnomaly]) -> list[AffectedField]:
        """Average each field's contribution across the group and renormalize to 1."""
        by_name: dict[str, list[AffectedField]] = {}
        for anomaly in group:
            for affected in anomaly.affected_fields:
                by_name.setdefault(affected.field_name, []).append(affected)

        averages = {
            name: sum(f.contribution_to_anomaly for f in fields) / len(fields)
            for name, fields in by_name.items()
        }
        total = sum(averages.values())
        merged = []
        for name, fields in by_name.items():
            share = averages[name] / total if total > 0 else 1.0 / len(by_name)
            merged.append(fields[0].model_copy(update={
                "deviation_score": max(f.deviation_score for f in fields),
                "contribution_to_anomaly": share,
            }))
        return merged
