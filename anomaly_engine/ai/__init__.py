"""Anomaly engine AI layer — data preparation, baselines, detectors and enrichment."""

from .data_preparer import DataPreparer, PreparedBatch
from .behavioral_baseline import BaselineBuilder, BaselineStore
from .base_detector import BaseDetector, FeatureModelDetector
from .zscore_detector import ZScoreDetector
from .isolation_forest_detector import IsolationForestDetector
from .one_class_detector import OneClassDetector
from .registry import DetectorRegistry
from .ensemble_detector import EnsembleCombiner
from .explainability import AnomalyExplainer
from .text_generation import HttpTextGenerator, TextGenerator
from .enricher import AnomalyEnricher

__all__ = [
    "DataPreparer",
    "PreparedBatch",
    "BaselineBuilder",
    "BaselineStore",
    "BaseDetector",
    "FeatureModelDetector",
    "ZScoreDetector",
    "IsolationForestDetector",
    "OneClassDetector",
    "DetectorRegistry",
    "EnsembleCombiner",
    "AnomalyExplainer",
    "HttpTextGenerator",
    "TextGenerator",
    "AnomalyEnricher",
]
