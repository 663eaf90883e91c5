"""Tests for DetectorRegistry."""

from unittest.mock import MagicMock

import pytest

from anomaly_engine.ai.isolation_forest_detector import IsolationForestDetector
from anomaly_engine.ai.one_class_detector import OneClassDetector
from anomaly_engine.ai.registry import DetectorRegistry
from anomaly_engine.ai.zscore_detector import ZScoreDetector
from anomaly_engine.contracts import AlgorithmKind
from anomaly_engine.exceptions import UnknownAlgorithmError


class TestDetectorRegistry:
    def test_default_registrations(self):
        registry = DetectorRegistry()
        assert isinstance(registry.get(AlgorithmKind.STATISTICAL), ZScoreDetector)
        assert isinstance(registry.get(AlgorithmKind.ML_ISOLATION_FOREST), IsolationForestDetector)
        assert isinstance(registry.get(AlgorithmKind.ML_ONE_CLASS_SVM), OneClassDetector)
        assert len(registry.kinds()) == 3

    def test_unknown_kind_raises(self):
        registry = DetectorRegistry(register_defaults=False)
        with pytest.raises(UnknownAlgorithmError, match="STATISTICAL"):
            registry.get(AlgorithmKind.STATISTICAL)

    def test_register_replaces(self):
        registry = DetectorRegistry()
        fake = MagicMock()
        registry.register(AlgorithmKind.STATISTICAL, fake)
        assert registry.get(AlgorithmKind.STATISTICAL) is fake
        assert AlgorithmKind.STATISTICAL in registry
