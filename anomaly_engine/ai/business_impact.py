"""Business impact heuristics keyed on affected field names."""

from ..contracts import (
    BusinessImpact,
    DetectedAnomaly,
    DetectionContext,
    EstimatedImpact,
    ImpactCategory,
    Urgency,
)

FINANCIAL_KEYWORDS = ("revenue", "cost", "amount", "price", "payment", "balance")
COMPLIANCE_KEYWORDS = ("compliance", "regulatory", "audit")

AFFECTED_PROCESSES = {
    ImpactCategory.FINANCIAL: ["Financial reporting", "Billing", "Reconciliation"],
    ImpactCategory.COMPLIANCE: ["Regulatory filing", "Audit trail"],
    ImpactCategory.OPERATIONAL: ["Data processing", "Reporting"],
}


def _matches(field_name: str, keywords: tuple[str, ...]) -> bool:
    name = field_name.lower()
    return any(k in name for k in keywords)


def assess_business_impact(anomaly: DetectedAnomaly, context: DetectionContext) -> BusinessImpact:
    """Classify an anomaly's business impact from the fields it touches.

    Compliance fields take precedence over financial ones; anything else is
    treated as a minor operational issue.
    """
    names = [f.field_name for f in anomaly.affected_fields]
    financial = [f for f in anomaly.affected_fields if _matches(f.field_name, FINANCIAL_KEYWORDS)]

    if any(_matches(n, COMPLIANCE_KEYWORDS) for n in names):
        category, impact, urgency = ImpactCategory.COMPLIANCE, EstimatedImpact.MAJOR, Urgency.IMMEDIATE
    elif financial:
        category, impact, urgency = ImpactCategory.FINANCIAL, EstimatedImpact.MODERATE, Urgency.URGENT
    else:
        category, impact, urgency = ImpactCategory.OPERATIONAL, EstimatedImpact.MINOR, Urgency.STANDARD

    potential_loss = None
    if category == ImpactCategory.FINANCIAL:
        potential_loss = round(sum(abs(f.actual_value - f.expected_value) for f in financial), 2)

    stakeholders = [context.user_role.value]
    if context.business_unit:
        stakeholders.append(context.business_unit)

    return BusinessImpact(
        category=category,
        estimated_impact=impact,
        potential_loss=potential_loss,
        affected_processes=list(AFFECTED_PROCESSES[category]),
        stakeholders=stakeholders,
        urgency=urgency,
    )
