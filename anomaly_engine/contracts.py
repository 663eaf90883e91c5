"""Engine contracts — Pydantic models for requests, baselines, anomalies, alerts and results."""
from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

MAX_CONFIDENCE = 0.95


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


# ── Enumerations ──
class DataSourceType(str, Enum):
    FINANCIAL_TRANSACTIONS = "FINANCIAL_TRANSACTIONS"
    PERFORMANCE_METRICS = "PERFORMANCE_METRICS"
    COMPLIANCE_DATA = "COMPLIANCE_DATA"
    OPERATIONAL_DATA = "OPERATIONAL_DATA"
    CLIENT_BEHAVIOR = "CLIENT_BEHAVIOR"


class ExpectedFrequency(str, Enum):
    REAL_TIME = "REAL_TIME"
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class AlgorithmKind(str, Enum):
    STATISTICAL = "STATISTICAL"
    ML_ISOLATION_FOREST = "ML_ISOLATION_FOREST"
    ML_ONE_CLASS_SVM = "ML_ONE_CLASS_SVM"


class Sensitivity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CUSTOM = "CUSTOM"


class AnomalyType(str, Enum):
    POINT_ANOMALY = "POINT_ANOMALY"
    CONTEXTUAL_ANOMALY = "CONTEXTUAL_ANOMALY"
    COLLECTIVE_ANOMALY = "COLLECTIVE_ANOMALY"
    TREND_ANOMALY = "TREND_ANOMALY"


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


def highest_severity(*severities: Severity) -> Severity:
    """Return the highest severity among inputs."""
    return max(severities, key=SEVERITY_ORDER.index)


class ImpactCategory(str, Enum):
    FINANCIAL = "FINANCIAL"
    OPERATIONAL = "OPERATIONAL"
    COMPLIANCE = "COMPLIANCE"
    REPUTATIONAL = "REPUTATIONAL"
    STRATEGIC = "STRATEGIC"


class EstimatedImpact(str, Enum):
    NEGLIGIBLE = "NEGLIGIBLE"
    MINOR = "MINOR"
    MODERATE = "MODERATE"
    MAJOR = "MAJOR"
    SEVERE = "SEVERE"


class Urgency(str, Enum):
    IMMEDIATE = "IMMEDIATE"
    URGENT = "URGENT"
    STANDARD = "STANDARD"
    LOW = "LOW"


class AlertStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"


class ChannelType(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    SLACK = "SLACK"
    WEBHOOK = "WEBHOOK"
    IN_APP = "IN_APP"


class UserRole(str, Enum):
    PARTNER = "PARTNER"
    MANAGER = "MANAGER"
    ASSOCIATE = "ASSOCIATE"
    INTERN = "INTERN"


class RecommendationType(str, Enum):
    IMMEDIATE_ACTION = "IMMEDIATE_ACTION"
    INVESTIGATION = "INVESTIGATION"
    PROCESS_IMPROVEMENT = "PROCESS_IMPROVEMENT"
    MONITORING_ENHANCEMENT = "MONITORING_ENHANCEMENT"


class Priority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class DetectionOutcome(str, Enum):
    COMPLETED = "COMPLETED"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


# ── Data source ──
class TimeRange(BaseModel):
    start: datetime
    end: datetime


class DataSourceMetadata(BaseModel):
    field_types: dict[str, str] = {}
    primary_key: Optional[str] = None
    timestamp_field: str = "timestamp"
    value_fields: list[str] = []
    categorical_fields: list[str] = []
    expected_frequency: ExpectedFrequency = ExpectedFrequency.DAILY
    quality_score: float = Field(1.0, ge=0.0, le=1.0)


class DataSource(BaseModel):
    type: DataSourceType = DataSourceType.OPERATIONAL_DATA
    source_id: str
    data: list[Any] = []
    metadata: DataSourceMetadata
    time_range: Optional[TimeRange] = None
    sampling_rate: Optional[float] = None


# ── Detection configuration ──
class Algorithm(BaseModel):
    kind: AlgorithmKind
    parameters: dict[str, Any] = {}
    weight: float = Field(1.0, ge=0.0)


class CustomThresholds(BaseModel):
    statistical_threshold: Optional[float] = Field(None, gt=0.0)
    percentile_threshold: Optional[float] = Field(None, ge=0.0, le=100.0)


class DetectionConfig(BaseModel):
    algorithms: list[Algorithm] = []
    sensitivity: Sensitivity = Sensitivity.MEDIUM
    custom_thresholds: Optional[CustomThresholds] = None
    aggregation_window: str = "1h"
    minimum_samples: int = Field(10, ge=1)
    seasonality_aware: bool = False
    contextual_detection: bool = False
    multivariate_analysis: bool = False


# ── Alert configuration ──
class SeverityTier(BaseModel):
    threshold: float = 0.0
    conditions: list[str] = []


class SeverityConfig(BaseModel):
    critical: Optional[SeverityTier] = None
    high: Optional[SeverityTier] = None
    medium: Optional[SeverityTier] = None
    low: Optional[SeverityTier] = None

    def tier_for(self, severity: Severity) -> Optional[SeverityTier]:
        return getattr(self, severity.value.lower())


class AlertChannel(BaseModel):
    type: ChannelType
    config: dict[str, Any] = {}
    recipients: list[str] = []
    template: Optional[str] = None


class EscalationRule(BaseModel):
    condition: str = "*"
    delay_minutes: float = Field(15.0, ge=0.0)
    escalate_to: list[str] = []
    max_escalations: int = Field(1, ge=0)


class SuppressionRule(BaseModel):
    condition: str = "*"
    duration: str = "30m"
    max_occurrences: int = Field(1, ge=0)


class WorkingHours(BaseModel):
    start: str = "09:00"
    end: str = "17:00"


class BusinessHoursConfig(BaseModel):
    timezone: str = "UTC"
    working_hours: WorkingHours = WorkingHours()
    working_days: list[int] = [1, 2, 3, 4, 5]  # 0=Sunday, 6=Saturday
    holidays: list[date] = []


class AlertConfig(BaseModel):
    severity: SeverityConfig = SeverityConfig()
    channels: list[AlertChannel] = []
    escalation: list[EscalationRule] = []
    suppression_rules: list[SuppressionRule] = []
    business_hours: Optional[BusinessHoursConfig] = None


# ── Request ──
class DetectionContext(BaseModel):
    user_role: UserRole = UserRole.MANAGER
    business_unit: Optional[str] = None
    client_context: list[str] = []
    contextual_factors: list[str] = []


class DetectionRequest(BaseModel):
    id: str = Field(default_factory=lambda: new_id("detection"))
    organization_id: str
    user_id: Optional[str] = None
    data_source: DataSource
    detection_config: DetectionConfig
    alert_config: Optional[AlertConfig] = None
    context: DetectionContext = DetectionContext()


# ── Baseline ──
class BaselineMetric(BaseModel):
    field: str
    mean: float
    std: float
    min: float
    max: float
    percentiles: dict[str, float] = {}


class BaselinePattern(BaseModel):
    pattern: str
    field: str
    frequency: int  # hours per cycle
    strength: float
    last_seen: Optional[datetime] = None


class HistoricalBaseline(BaseModel):
    period: str = ""
    metrics: list[BaselineMetric] = []
    patterns: list[BaselinePattern] = []
    sample_count: int = 0
    last_updated: datetime = Field(default_factory=_now)

    def metric_for(self, field: str) -> Optional[BaselineMetric]:
        for metric in self.metrics:
            if metric.field == field:
                return metric
        return None

    def pattern_for(self, field: str) -> Optional[BaselinePattern]:
        matches = [p for p in self.patterns if p.field == field]
        return max(matches, key=lambda p: p.strength) if matches else None


# ── Anomalies ──
class AffectedField(BaseModel):
    field_name: str
    expected_value: float
    actual_value: float
    deviation_score: float
    contribution_to_anomaly: float = Field(ge=0.0, le=1.0)


class AnomalyContext(BaseModel):
    data_point: dict[str, Any] = {}
    surrounding_data: list[dict[str, Any]] = []
    time_window: Optional[TimeRange] = None
    related_entities: list[str] = []
    contextual_factors: list[str] = []


class ConfidenceInterval(BaseModel):
    lower: float
    upper: float


class StatisticalEvidence(BaseModel):
    z_score: float = 0.0
    percentile: float = 50.0
    probability_of_occurrence: float = 1.0
    confidence_interval: Optional[ConfidenceInterval] = None


class PatternAnalysis(BaseModel):
    expected_pattern: str = ""
    observed_pattern: str = ""
    pattern_deviation: float = 0.0
    seasonality_impact: float = 0.0


class Explanation(BaseModel):
    primary_cause: str
    contributing_factors: list[str] = []
    possible_reasons: list[str] = []
    rules_broken: list[str] = []
    statistical_evidence: StatisticalEvidence = StatisticalEvidence()
    pattern_analysis: PatternAnalysis = PatternAnalysis()
    narrative: str = ""


class BusinessImpact(BaseModel):
    category: ImpactCategory
    estimated_impact: EstimatedImpact
    potential_loss: Optional[float] = None
    affected_processes: list[str] = []
    stakeholders: list[str] = []
    urgency: Urgency


class DetectedAnomaly(BaseModel):
    id: str
    type: AnomalyType = AnomalyType.POINT_ANOMALY
    severity: Severity
    confidence: float = Field(ge=0.0, le=MAX_CONFIDENCE)
    anomaly_score: float = Field(ge=0.0)
    timestamp: Optional[datetime] = None
    record_index: int
    affected_fields: list[AffectedField]
    context: AnomalyContext = AnomalyContext()
    explanation: Explanation
    business_impact: Optional[BusinessImpact] = None
    detected_by: list[AlgorithmKind] = []

    @property
    def field_names(self) -> list[str]:
        return sorted(f.field_name for f in self.affected_fields)


# ── Alerts ──
class GeneratedAlert(BaseModel):
    id: str = Field(default_factory=lambda: new_id("alert"))
    anomaly_id: str
    severity: Severity
    title: str
    message: str
    timestamp: datetime = Field(default_factory=_now)
    channels: list[ChannelType] = []
    recipients: list[str] = []
    status: AlertStatus = AlertStatus.PENDING
    escalation_level: int = 0
    business_context: str = ""
    condition_key: str = ""
    deliver_after: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    last_escalated_at: Optional[datetime] = None


# ── Results ──
class ProcessingStats(BaseModel):
    records_processed: int = 0
    processing_rate: float = 0.0  # records per second
    algorithms_used: list[str] = []


class DetectionSummary(BaseModel):
    total_anomalies: int = 0
    severity_breakdown: dict[str, int] = {}
    type_breakdown: dict[str, int] = {}
    time_range: Optional[TimeRange] = None
    coverage_percentage: float = 0.0
    data_quality_issues: list[str] = []
    processing_stats: ProcessingStats = ProcessingStats()


class Recommendation(BaseModel):
    type: RecommendationType
    priority: Priority
    title: str
    description: str
    action_steps: list[str] = []
    expected_outcome: str = ""
    resources: list[str] = []
    timeline: str = ""
    success_criteria: list[str] = []


class AlgorithmPerformance(BaseModel):
    algorithm: AlgorithmKind
    weight: float
    contribution: float
    anomalies_reported: int = 0
    processing_time_ms: float = 0.0
    succeeded: bool = True


class ModelPerformance(BaseModel):
    # No labelled validation data is available to the engine, so accuracy-style
    # metrics stay unset unless a caller supplies them.
    accuracy: Optional[float] = None
    precision: Optional[float] = None
    recall: Optional[float] = None
    f1_score: Optional[float] = None
    algorithm_performance: list[AlgorithmPerformance] = []
    baseline_updated_at: Optional[datetime] = None
    model_version: str = ""


class DetectionResult(BaseModel):
    request_id: str
    outcome: DetectionOutcome = DetectionOutcome.COMPLETED
    outcome_reason: Optional[str] = None
    detection_timestamp: datetime = Field(default_factory=_now)
    anomalies: list[DetectedAnomaly] = []
    summary: DetectionSummary = DetectionSummary()
    recommendations: list[Recommendation] = []
    model_performance: ModelPerformance = ModelPerformance()
    alerts: list[GeneratedAlert] = []
    processing_time_ms: float = 0.0


# ── Stream processing ──
class ProcessorStatus(BaseModel):
    is_running: bool = False
    last_processed: Optional[datetime] = None
    total_processed: int = 0
    error_rate: float = 0.0
    latency_ms: float = 0.0
    queue_size: int = 0


class BatchResult(BaseModel):
    outcome: DetectionOutcome = DetectionOutcome.COMPLETED
    outcome_reason: Optional[str] = None
    anomalies: list[DetectedAnomaly] = []
    alerts: list[GeneratedAlert] = []
