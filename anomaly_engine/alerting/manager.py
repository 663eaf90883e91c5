"""Alert generation manager.

Turns enriched anomalies into alerts according to an AlertConfig: severity
tier thresholds, suppression, business-hours deferral and escalation. Also
owns the alert status state machine. Delivery itself is out of scope; alerts
carry the channel and recipient lists a dispatcher needs.
"""

import hashlib
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Optional

from ..contracts import (
    AlertConfig,
    AlertStatus,
    DetectedAnomaly,
    GeneratedAlert,
    Severity,
)
from ..exceptions import AlertTransitionError
from ..utils.logging import get_logger
from .rules import BusinessHoursWindow, SuppressionTracker, condition_matches

logger = get_logger("alerting.manager")

MAX_TRACKED_ALERTS = 1000

VALID_TRANSITIONS = {
    AlertStatus.PENDING: [AlertStatus.SENT],
    AlertStatus.SENT: [AlertStatus.ACKNOWLEDGED],
    AlertStatus.ACKNOWLEDGED: [AlertStatus.RESOLVED],
    AlertStatus.RESOLVED: [],
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_alert_message(anomaly: DetectedAnomaly) -> str:
    fields = ", ".join(f.field_name for f in anomaly.affected_fields)
    return (
        f"{anomaly.severity.value} anomaly detected in {fields}. "
        f"Score: {anomaly.anomaly_score:.2f}, "
        f"Confidence: {anomaly.confidence * 100:.1f}%. "
        f"Primary cause: {anomaly.explanation.primary_cause}"
    )


class AlertManager:
    """Manages alert creation, suppression, escalation and status changes."""

    def __init__(self, alert_config: AlertConfig, clock: Optional[Callable[[], datetime]] = None):
        self._config = alert_config
        self._clock = clock or _utcnow
        self._suppression = SuppressionTracker(alert_config.suppression_rules)
        self._business_hours = (
            BusinessHoursWindow(alert_config.business_hours) if alert_config.business_hours else None
        )
        self._alerts: dict[str, GeneratedAlert] = {}
        self._anomalies: dict[str, DetectedAnomaly] = {}
        self._alert_history: deque = deque(maxlen=MAX_TRACKED_ALERTS)

    @staticmethod
    def alert_key(anomaly: DetectedAnomaly) -> str:
        """Hash key for suppression; excludes volatile values such as scores."""
        raw = f"{anomaly.severity.value}|{anomaly.type.value}|{','.join(anomaly.field_names)}"
        return hashlib.md5(raw.encode("utf-8")).hexdigest()

    def generate_alerts(self, anomalies: list[DetectedAnomaly], now: Optional[datetime] = None) -> list[GeneratedAlert]:
        """Create alerts for anomalies that meet their severity tier.

        Suppressed anomalies produce no alert. Non-critical alerts raised
        outside business hours get ``deliver_after`` set to the next window.
        """
        now = now or self._clock()
        recipients = list(dict.fromkeys(r for c in self._config.channels for r in c.recipients))
        channels = [c.type for c in self._config.channels]

        alerts = []
        for anomaly in anomalies:
            tier = self._config.severity.tier_for(anomaly.severity)
            if tier is None or anomaly.anomaly_score < tier.threshold:
                continue
            if tier.conditions and not any(condition_matches(c, anomaly) for c in tier.conditions):
                continue

            key = self.alert_key(anomaly)
            rule = self._suppression.check(anomaly, key, now)
            if rule is not None:
                logger.info(
                    "alert_suppressed",
                    anomaly_id=anomaly.id,
                    condition=rule.condition,
                    max_occurrences=rule.max_occurrences,
                    duration=rule.duration,
                )
                continue

            impact = anomaly.business_impact
            alert = GeneratedAlert(
                anomaly_id=anomaly.id,
                severity=anomaly.severity,
                title=f"{anomaly.severity.value} Anomaly Detected",
                message=format_alert_message(anomaly),
                timestamp=now,
                channels=list(channels),
                recipients=list(recipients),
                business_context=(
                    f"{impact.category.value} impact - {impact.urgency.value} urgency" if impact else ""
                ),
                condition_key=key,
            )

            if self._business_hours is not None and anomaly.severity != Severity.CRITICAL:
                opening = self._business_hours.next_open(now)
                if opening is not None and opening > now:
                    alert.deliver_after = opening
                    logger.info("alert_deferred", alert_id=alert.id, deliver_after=opening.isoformat())

            self._track(alert, anomaly)
            self._alert_history.append(alert)
            alerts.append(alert)
            logger.info(
                "alert_created",
                alert_id=alert.id,
                anomaly_id=anomaly.id,
                severity=anomaly.severity.value,
                recipients=len(alert.recipients),
            )
        return alerts

    def _track(self, alert: GeneratedAlert, anomaly: DetectedAnomaly) -> None:
        """Keep an open alert for status changes and escalation; the oldest goes first at capacity."""
        while len(self._alerts) >= MAX_TRACKED_ALERTS:
            oldest = next(iter(self._alerts))
            self._forget(oldest)
            logger.warning("alert_evicted", alert_id=oldest)
        self._alerts[alert.id] = alert
        self._anomalies[alert.id] = anomaly

    def _forget(self, alert_id: str) -> None:
        self._alerts.pop(alert_id, None)
        self._anomalies.pop(alert_id, None)

    def get_alert(self, alert_id: str) -> Optional[GeneratedAlert]:
        """Open alerts only; resolved ones remain in the recent history."""
        return self._alerts.get(alert_id)

    def get_recent_alerts(self, limit: int = 50) -> list[GeneratedAlert]:
        return list(self._alert_history)[-limit:]

    def release_due(self, now: Optional[datetime] = None) -> list[GeneratedAlert]:
        """Pending alerts whose delivery time has arrived."""
        now = now or self._clock()
        return [
            a for a in self._alerts.values()
            if a.status == AlertStatus.PENDING and (a.deliver_after is None or a.deliver_after <= now)
        ]

    def transition(self, alert_id: str, new_status: AlertStatus, now: Optional[datetime] = None) -> GeneratedAlert:
        """Move an alert along PENDING → SENT → ACKNOWLEDGED → RESOLVED.

        Raises:
            KeyError: If the alert is unknown.
            AlertTransitionError: If the change skips or reverses a step.
        """
        alert = self._alerts.get(alert_id)
        if alert is None:
            # resolved alerts only live on in the history
            alert = next((a for a in reversed(self._alert_history) if a.id == alert_id), None)
            if alert is None:
                raise KeyError(alert_id)
        allowed = VALID_TRANSITIONS[alert.status]
        if new_status not in allowed:
            raise AlertTransitionError(
                alert_id, alert.status.value, new_status.value, [s.value for s in allowed]
            )

        now = now or self._clock()
        previous = alert.status
        alert.status = new_status
        if new_status == AlertStatus.SENT:
            alert.sent_at = now
        elif new_status == AlertStatus.ACKNOWLEDGED:
            alert.acknowledged_at = now
        elif new_status == AlertStatus.RESOLVED:
            alert.resolved_at = now
            self._forget(alert_id)

        logger.info("alert_transition", alert_id=alert_id, old_status=previous.value, new_status=new_status.value)
        return alert

    def mark_sent(self, alert_id: str, now: Optional[datetime] = None) -> GeneratedAlert:
        return self.transition(alert_id, AlertStatus.SENT, now)

    def acknowledge(self, alert_id: str, now: Optional[datetime] = None) -> GeneratedAlert:
        return self.transition(alert_id, AlertStatus.ACKNOWLEDGED, now)

    def resolve(self, alert_id: str, now: Optional[datetime] = None) -> GeneratedAlert:
        return self.transition(alert_id, AlertStatus.RESOLVED, now)

    def process_escalations(self, now: Optional[datetime] = None) -> list[GeneratedAlert]:
        """Escalate sent alerts that stayed unacknowledged past a rule's delay.

        Each call escalates an alert at most one level, using the first matching
        rule that is due and still below its ``max_escalations``.
        """
        now = now or self._clock()
        escalated = []
        for alert in self._alerts.values():
            if alert.status != AlertStatus.SENT or alert.sent_at is None:
                continue
            anomaly = self._anomalies.get(alert.id)
            if anomaly is None:
                continue
            reference = alert.last_escalated_at or alert.sent_at
            elapsed_minutes = (now - reference).total_seconds() / 60.0

            for rule in self._config.escalation:
                if alert.escalation_level >= rule.max_escalations:
                    continue
                if elapsed_minutes < rule.delay_minutes or not condition_matches(rule.condition, anomaly):
                    continue
                alert.escalation_level += 1
                alert.recipients = list(dict.fromkeys(alert.recipients + rule.escalate_to))
                alert.last_escalated_at = now
                escalated.append(alert)
                logger.warning(
                    "alert_escalated",
                    alert_id=alert.id,
                    level=alert.escalation_level,
                    escalate_to=rule.escalate_to,
                )
                break
        return escalated
