"""Detection reporting — summary, recommendations and model performance."""

from collections import Counter
from datetime import datetime
from typing import Optional

from .. import __version__
from ..ai.data_preparer import PreparedBatch
from ..contracts import (
    AlgorithmKind,
    AlgorithmPerformance,
    DetectedAnomaly,
    DetectionConfig,
    DetectionSummary,
    ImpactCategory,
    ModelPerformance,
    Priority,
    ProcessingStats,
    Recommendation,
    RecommendationType,
    Severity,
)


def build_summary(
    anomalies: list[DetectedAnomaly],
    batch: PreparedBatch,
    quality_score: float,
    algorithms_used: list[AlgorithmKind],
    elapsed_seconds: float,
    low_quality_threshold: float = 0.7,
) -> DetectionSummary:
    issues = []
    if batch.dropped_records:
        issues.append(f"{batch.dropped_records} records dropped as malformed")
    if batch.filled_values:
        issues.append(f"{batch.filled_values} missing or non-numeric values filled with 0")
    if batch.missing_timestamps:
        issues.append(f"{batch.missing_timestamps} records without a parseable timestamp")
    if quality_score < low_quality_threshold:
        issues.append(f"Source quality score {quality_score:.2f} below {low_quality_threshold:.2f}")

    return DetectionSummary(
        total_anomalies=len(anomalies),
        severity_breakdown=dict(Counter(a.severity.value for a in anomalies)),
        type_breakdown=dict(Counter(a.type.value for a in anomalies)),
        time_range=batch.time_range(),
        coverage_percentage=round(len(batch) / batch.raw_count * 100, 2) if batch.raw_count else 0.0,
        data_quality_issues=issues,
        processing_stats=ProcessingStats(
            records_processed=len(batch),
            processing_rate=round(len(batch) / elapsed_seconds, 2) if elapsed_seconds > 0 else float(len(batch)),
            algorithms_used=[k.value for k in algorithms_used],
        ),
    )


def generate_recommendations(
    anomalies: list[DetectedAnomaly],
    quality_issues: list[str],
    volume_threshold: int = 10,
    low_quality: bool = False,
) -> list[Recommendation]:
    recommendations = []

    critical = [a for a in anomalies if a.severity == Severity.CRITICAL]
    if critical:
        recommendations.append(Recommendation(
            type=RecommendationType.IMMEDIATE_ACTION,
            priority=Priority.HIGH,
            title="Address Critical Anomalies",
            description=f"{len(critical)} critical anomalies detected requiring immediate attention",
            action_steps=[
                "Review critical anomaly details",
                "Verify data accuracy",
                "Check system integrity",
                "Implement corrective measures",
                "Monitor for recurrence",
            ],
            expected_outcome="Resolution of critical issues and prevention of business impact",
            resources=["Data analyst", "System administrator", "Business stakeholder"],
            timeline="Immediate (within 1 hour)",
            success_criteria=["All critical anomalies resolved", "Root cause identified", "Prevention measures in place"],
        ))

    if len(anomalies) > volume_threshold:
        recommendations.append(Recommendation(
            type=RecommendationType.PROCESS_IMPROVEMENT,
            priority=Priority.MEDIUM,
            title="Investigate Systematic Issues",
            description="High number of anomalies suggests potential systematic problems",
            action_steps=[
                "Analyze anomaly patterns",
                "Review data collection processes",
                "Validate system configurations",
                "Consider baseline updates",
            ],
            expected_outcome="Improved data quality and reduced false positives",
            resources=["Process analyst", "Quality assurance team"],
            timeline="1-2 weeks",
            success_criteria=["Anomaly rate reduced by 50%", "Process improvements documented"],
        ))

    by_category = Counter(a.business_impact.category for a in anomalies if a.business_impact)
    if by_category[ImpactCategory.FINANCIAL]:
        recommendations.append(Recommendation(
            type=RecommendationType.INVESTIGATION,
            priority=Priority.HIGH,
            title="Financial Data Investigation",
            description=f"{by_category[ImpactCategory.FINANCIAL]} financial anomalies require investigation",
            action_steps=[
                "Review financial transactions",
                "Verify account balances",
                "Check for data entry errors",
                "Validate calculation logic",
            ],
            expected_outcome="Accurate financial reporting and compliance",
            resources=["Financial analyst", "Accounting team"],
            timeline="2-3 days",
            success_criteria=["Financial accuracy verified", "Discrepancies resolved"],
        ))
    if by_category[ImpactCategory.COMPLIANCE]:
        recommendations.append(Recommendation(
            type=RecommendationType.INVESTIGATION,
            priority=Priority.HIGH,
            title="Compliance Review",
            description=f"{by_category[ImpactCategory.COMPLIANCE]} compliance anomalies may affect regulatory obligations",
            action_steps=[
                "Review affected compliance records",
                "Confirm filing and audit deadlines",
                "Document findings for the audit trail",
            ],
            expected_outcome="Compliance exposure assessed and documented",
            resources=["Compliance officer", "Audit team"],
            timeline="Within 24 hours",
            success_criteria=["Exposure assessed", "Remediation plan agreed"],
        ))

    if low_quality and quality_issues:
        recommendations.append(Recommendation(
            type=RecommendationType.MONITORING_ENHANCEMENT,
            priority=Priority.LOW,
            title="Improve Data Quality",
            description="Data quality issues reduce detection reliability",
            action_steps=["Fix upstream data feeds", "Add validation at ingestion"] + quality_issues[:3],
            expected_outcome="Fewer filled values and more reliable baselines",
            resources=["Data engineer"],
            timeline="1 week",
            success_criteria=["Quality score above threshold"],
        ))

    return recommendations


def build_model_performance(
    config: DetectionConfig,
    results_by_algorithm: dict[AlgorithmKind, list[DetectedAnomaly]],
    timings_ms: dict[AlgorithmKind, float],
    baseline_updated_at: Optional[datetime],
) -> ModelPerformance:
    total_weight = sum(a.weight for a in config.algorithms)
    performance = [
        AlgorithmPerformance(
            algorithm=algo.kind,
            weight=algo.weight,
            contribution=algo.weight / total_weight if total_weight > 0 else 1.0 / len(config.algorithms),
            anomalies_reported=len(results_by_algorithm.get(algo.kind, [])),
            processing_time_ms=round(timings_ms.get(algo.kind, 0.0), 3),
            succeeded=algo.kind in results_by_algorithm,
        )
        for algo in config.algorithms
    ]
    return ModelPerformance(
        algorithm_performance=performance,
        baseline_updated_at=baseline_updated_at,
        model_version=__version__,
    )
