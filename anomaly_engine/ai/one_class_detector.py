"""One-Class Detector — sklearn OneClassSVM boundary around normal rows."""

from typing import Any

import numpy as np

from ..contracts import AlgorithmKind
from .base_detector import FeatureModelDetector


class OneClassDetector(FeatureModelDetector):
    """Anomaly detection via sklearn OneClassSVM."""

    kind = AlgorithmKind.ML_ONE_CLASS_SVM
    primary_cause = "One-Class SVM detected anomaly"
    rule_name = "One-class decision boundary"

    def fit_predict(self, matrix: np.ndarray, parameters: dict[str, Any]) -> tuple[np.ndarray, np.ndarray]:
        from sklearn.svm import OneClassSVM

        model = OneClassSVM(
            nu=float(parameters.get("nu", self.config.one_class_nu)),
            kernel=parameters.get("kernel", "rbf"),
            gamma=parameters.get("gamma", "scale"),
        )
        model.fit(matrix)

        # Negative decision values fall outside the boundary; map to 0-1 with
        # 0.5 on the boundary itself.
        decision = model.decision_function(matrix)
        scale = float(np.abs(decision).max()) or 1.0
        scores = np.clip(0.5 - decision / (2.0 * scale), 0.0, 1.0)
        flags = model.predict(matrix) == -1
        return flags, scores
