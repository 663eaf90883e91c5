"""Detection strategy registry and factory."""

from typing import Optional

from ..config import AnomalyEngineConfig
from ..contracts import AlgorithmKind
from ..exceptions import UnknownAlgorithmError
from .base_detector import BaseDetector
from .isolation_forest_detector import IsolationForestDetector
from .one_class_detector import OneClassDetector
from .zscore_detector import ZScoreDetector

# Registry of available strategies
DETECTOR_CLASSES: dict[AlgorithmKind, type[BaseDetector]] = {
    AlgorithmKind.STATISTICAL: ZScoreDetector,
    AlgorithmKind.ML_ISOLATION_FOREST: IsolationForestDetector,
    AlgorithmKind.ML_ONE_CLASS_SVM: OneClassDetector,
}


class DetectorRegistry:
    """Holds one detector instance per algorithm kind."""

    def __init__(self, config: Optional[AnomalyEngineConfig] = None, register_defaults: bool = True):
        self._config = config or AnomalyEngineConfig()
        self._detectors: dict[AlgorithmKind, BaseDetector] = {}
        if register_defaults:
            for kind, detector_cls in DETECTOR_CLASSES.items():
                self._detectors[kind] = detector_cls(self._config)

    def register(self, kind: AlgorithmKind, detector: BaseDetector) -> None:
        """Register or replace the detector for an algorithm kind."""
        self._detectors[kind] = detector

    def get(self, kind: AlgorithmKind) -> BaseDetector:
        """Return the detector for a kind.

        Raises:
            UnknownAlgorithmError: If nothing is registered for the kind.
        """
        detector = self._detectors.get(kind)
        if detector is None:
            name = getattr(kind, "value", kind)
            available = ", ".join(k.value for k in self._detectors)
            raise UnknownAlgorithmError(f"Unknown algorithm '{name}'. Available algorithms: {available}")
        return detector

    def kinds(self) -> list[AlgorithmKind]:
        return list(self._detectors)

    def __contains__(self, kind: AlgorithmKind) -> bool:
        return kind in self._detectors
