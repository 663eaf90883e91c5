"""Tests for AnomalyExplainer and statistical evidence helpers."""

import pytest

from anomaly_engine.ai.explainability import AnomalyExplainer, normal_cdf, statistical_evidence
from anomaly_engine.contracts import BusinessImpact, EstimatedImpact, ImpactCategory, Urgency


@pytest.fixture
def explainer():
    return AnomalyExplainer()


class TestAttribution:
    def test_sums_to_one(self, explainer):
        attribution = explainer.compute_attribution(
            {"amount": 150.0, "fee": 6.0},
            {"amount": 100.0, "fee": 5.0},
            {"amount": 10.0, "fee": 1.0},
        )
        assert sum(attribution.values()) == pytest.approx(1.0)
        # z of 5 vs z of 1
        assert attribution["amount"] == pytest.approx(5 / 6)
        assert attribution["fee"] == pytest.approx(1 / 6)

    def test_equal_without_baseline(self, explainer):
        attribution = explainer.compute_attribution({"a": 1.0, "b": 2.0, "c": 3.0, "d": 4.0}, None, None)
        assert all(v == pytest.approx(0.25) for v in attribution.values())

    def test_equal_when_no_deviation(self, explainer):
        attribution = explainer.compute_attribution({"a": 1.0, "b": 2.0}, {"a": 1.0, "b": 2.0}, {"a": 0.0, "b": 3.0})
        assert attribution == {"a": 0.5, "b": 0.5}

    def test_zero_std_uses_unit_scale(self, explainer):
        attribution = explainer.compute_attribution({"a": 3.0, "b": 1.0}, {"a": 0.0, "b": 0.0}, {"a": 0.0, "b": 0.0})
        assert attribution["a"] == pytest.approx(0.75)

    def test_empty(self, explainer):
        assert explainer.compute_attribution({}, None, None) == {}


class TestStatisticalEvidence:
    def test_normal_cdf(self):
        assert normal_cdf(0.0) == pytest.approx(0.5)
        assert normal_cdf(1.96) == pytest.approx(0.975, abs=1e-3)

    def test_evidence_values(self):
        evidence = statistical_evidence(120.0, 100.0, 10.0)
        assert evidence.z_score == pytest.approx(2.0)
        assert evidence.percentile == pytest.approx(97.725, abs=1e-2)
        assert evidence.probability_of_occurrence == pytest.approx(0.0455, abs=1e-3)
        assert evidence.confidence_interval.lower == 80.0
        assert evidence.confidence_interval.upper == 120.0

    def test_zero_std(self):
        evidence = statistical_evidence(1e6, 5.0, 0.0)
        assert evidence.z_score == 0.0
        assert evidence.percentile == pytest.approx(50.0)
        assert evidence.probability_of_occurrence == pytest.approx(1.0)


class TestNarrative:
    def test_mentions_fields_and_impact(self, explainer, make_anomaly):
        anomaly = make_anomaly(fields=("amount", "fee"), contributions=[0.8, 0.2])
        anomaly.business_impact = BusinessImpact(
            category=ImpactCategory.FINANCIAL,
            estimated_impact=EstimatedImpact.MODERATE,
            urgency=Urgency.URGENT,
        )
        narrative = explainer.generate_narrative(anomaly)
        assert narrative.startswith("High point anomaly")
        assert "amount was 150 against an expected 100 (80%)" in narrative
        assert "moderate financial" in narrative
        assert "STATISTICAL" in narrative
