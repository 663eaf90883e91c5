"""Isolation Forest Detector — sklearn-based multivariate anomaly detection.

Fits an IsolationForest on the batch's normalized value columns and flags the
rows the forest isolates fastest.
"""

from typing import Any

import numpy as np

from ..contracts import AlgorithmKind
from .base_detector import FeatureModelDetector


class IsolationForestDetector(FeatureModelDetector):
    """Anomaly detection via sklearn IsolationForest."""

    kind = AlgorithmKind.ML_ISOLATION_FOREST
    primary_cause = "Isolation Forest algorithm detected anomaly"
    rule_name = "Isolation threshold"

    def fit_predict(self, matrix: np.ndarray, parameters: dict[str, Any]) -> tuple[np.ndarray, np.ndarray]:
        from sklearn.ensemble import IsolationForest

        # sklearn only accepts contamination in (0, 0.5]
        contamination = min(float(parameters.get("contamination", self.config.isolation_contamination)), 0.5)
        model = IsolationForest(
            contamination=contamination,
            n_estimators=int(parameters.get("n_estimators", self.config.isolation_estimators)),
            random_state=int(parameters.get("random_state", self.config.ml_random_state)),
        )
        model.fit(matrix)

        # score_samples is the negated anomaly score from the original paper:
        # close to -1 for clear outliers, around -0.5 for ordinary rows.
        scores = np.clip(-model.score_samples(matrix), 0.0, 1.0)
        flags = model.predict(matrix) == -1
        return flags, scores
