"""Tests for the model-based detectors (IsolationForest and OneClassSVM)."""

import numpy as np
import pytest

from anomaly_engine.ai.behavioral_baseline import BaselineBuilder
from anomaly_engine.ai.data_preparer import DataPreparer
from anomaly_engine.ai.isolation_forest_detector import IsolationForestDetector
from anomaly_engine.ai.one_class_detector import OneClassDetector
from anomaly_engine.contracts import (
    Algorithm,
    AlgorithmKind,
    DetectionConfig,
    DetectionContext,
)

OUTLIER_INDEX = 30


def make_records(n=40):
    rng = np.random.RandomState(42)
    records = []
    for i in range(n):
        amount = float(100 + rng.randn() * 2)
        fee = float(5 + rng.randn() * 0.2)
        if i == OUTLIER_INDEX:
            amount, fee = 400.0, 5.0
        records.append({
            "timestamp": f"2024-01-{1 + i // 24:02d}T{i % 24:02d}:00:00Z",
            "amount": amount,
            "fee": fee,
        })
    return records


@pytest.fixture
def prepared(make_data_source):
    batch = DataPreparer().prepare(make_data_source(make_records(), value_fields=("amount", "fee")))
    baseline = BaselineBuilder().build(batch)
    return batch, baseline


@pytest.fixture(params=[IsolationForestDetector, OneClassDetector])
def detector(request):
    return request.param()


class TestModelDetectors:
    def test_flags_obvious_outlier(self, detector, prepared):
        batch, baseline = prepared
        anomalies = detector.detect(batch, baseline, DetectionConfig(), DetectionContext())
        assert OUTLIER_INDEX in [a.record_index for a in anomalies]
        assert all(a.detected_by == [detector.kind] for a in anomalies)

    def test_attribution_sums_to_one(self, detector, prepared):
        batch, baseline = prepared
        anomalies = detector.detect(batch, baseline, DetectionConfig(), DetectionContext())
        outlier = next(a for a in anomalies if a.record_index == OUTLIER_INDEX)
        assert sum(f.contribution_to_anomaly for f in outlier.affected_fields) == pytest.approx(1.0)
        assert {f.field_name for f in outlier.affected_fields} == {"amount", "fee"}
        top = max(outlier.affected_fields, key=lambda f: f.contribution_to_anomaly)
        assert top.field_name == "amount"

    def test_scores_and_confidence_bounded(self, detector, prepared):
        batch, baseline = prepared
        for anomaly in detector.detect(batch, baseline, DetectionConfig(), DetectionContext()):
            assert 0.0 <= anomaly.anomaly_score <= 1.0
            assert anomaly.confidence <= 0.95

    def test_reproducible(self, detector, prepared):
        batch, baseline = prepared
        first = detector.detect(batch, baseline, DetectionConfig(), DetectionContext())
        second = detector.detect(batch, baseline, DetectionConfig(), DetectionContext())
        assert [a.record_index for a in first] == [a.record_index for a in second]
        assert [a.anomaly_score for a in first] == pytest.approx([a.anomaly_score for a in second])

    def test_too_few_records_returns_nothing(self, detector, make_data_source, records_factory):
        batch = DataPreparer().prepare(make_data_source(records_factory([1, 2, 300])))
        baseline = BaselineBuilder().build(batch)
        assert detector.detect(batch, baseline, DetectionConfig(), DetectionContext()) == []

    def test_min_records_parameter(self, detector, make_data_source, records_factory):
        batch = DataPreparer().prepare(make_data_source(records_factory([1, 2, 3, 4, 5, 6, 7, 8, 9, 10])))
        baseline = BaselineBuilder().build(batch)
        algorithm = Algorithm(kind=detector.kind, parameters={"min_records": 20})
        assert detector.detect(batch, baseline, DetectionConfig(), DetectionContext(), algorithm) == []


class TestIsolationForestParameters:
    def test_contamination_parameter_is_clamped(self, prepared):
        batch, baseline = prepared
        detector = IsolationForestDetector()
        algorithm = Algorithm(kind=AlgorithmKind.ML_ISOLATION_FOREST, parameters={"contamination": 0.9})
        anomalies = detector.detect(batch, baseline, DetectionConfig(), DetectionContext(), algorithm)
        assert 0 < len(anomalies) <= len(batch) // 2 + 1
