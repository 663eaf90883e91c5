"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from anomaly_engine.contracts import (
    AffectedField,
    Algorithm,
    AlgorithmKind,
    AlertChannel,
    AlertConfig,
    AnomalyType,
    ChannelType,
    DataSource,
    DataSourceMetadata,
    DetectedAnomaly,
    DetectionConfig,
    DetectionRequest,
    Explanation,
    Sensitivity,
    Severity,
    SeverityConfig,
    SeverityTier,
)

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)  # a Monday


def make_records(values, field="amount", start=T0, step=timedelta(hours=1)):
    """Timestamped records with one value field."""
    return [
        {"timestamp": (start + i * step).isoformat(), field: v}
        for i, v in enumerate(values)
    ]


def default_alert_config(**overrides) -> AlertConfig:
    tier = SeverityTier(threshold=0.0)
    params = {
        "severity": SeverityConfig(critical=tier, high=tier, medium=tier, low=tier),
        "channels": [
            AlertChannel(type=ChannelType.EMAIL, recipients=["ops@example.com"]),
            AlertChannel(type=ChannelType.SLACK, recipients=["#alerts", "ops@example.com"]),
        ],
    }
    params.update(overrides)
    return AlertConfig(**params)


@pytest.fixture
def make_data_source():
    def _make(records, value_fields=("amount",), source_id="ledger", **metadata):
        return DataSource(
            source_id=source_id,
            data=records,
            metadata=DataSourceMetadata(value_fields=list(value_fields), **metadata),
        )
    return _make


@pytest.fixture
def make_request(make_data_source):
    def _make(
        records,
        algorithms=(AlgorithmKind.STATISTICAL,),
        value_fields=("amount",),
        sensitivity=Sensitivity.MEDIUM,
        minimum_samples=1,
        alert_config="default",
        organization_id="org-1",
        source_id="ledger",
        **detection,
    ):
        return DetectionRequest(
            organization_id=organization_id,
            data_source=make_data_source(records, value_fields=value_fields, source_id=source_id),
            detection_config=DetectionConfig(
                algorithms=[Algorithm(kind=k) for k in algorithms],
                sensitivity=sensitivity,
                minimum_samples=minimum_samples,
                **detection,
            ),
            alert_config=default_alert_config() if alert_config == "default" else alert_config,
        )
    return _make


@pytest.fixture
def make_anomaly():
    counter = {"n": 0}

    def _make(
        severity=Severity.HIGH,
        score=3.0,
        confidence=0.8,
        fields=("amount",),
        record_index=0,
        timestamp=T0,
        anomaly_type=AnomalyType.POINT_ANOMALY,
        detected_by=(AlgorithmKind.STATISTICAL,),
        contributions=None,
        factors=(),
    ):
        counter["n"] += 1
        contributions = contributions or [1.0 / len(fields)] * len(fields)
        return DetectedAnomaly(
            id=f"a{counter['n']}",
            type=anomaly_type,
            severity=severity,
            confidence=confidence,
            anomaly_score=score,
            timestamp=timestamp,
            record_index=record_index,
            affected_fields=[
                AffectedField(
                    field_name=f,
                    expected_value=100.0,
                    actual_value=150.0,
                    deviation_score=score,
                    contribution_to_anomaly=c,
                )
                for f, c in zip(fields, contributions)
            ],
            explanation=Explanation(
                primary_cause="Statistical outlier detected",
                contributing_factors=list(factors),
            ),
            detected_by=list(detected_by),
        )
    return _make


@pytest.fixture
def records_factory():
    return make_records


@pytest.fixture
def alert_config_factory():
    return default_alert_config
