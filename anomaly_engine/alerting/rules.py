"""Alert policy rules — condition matching, suppression windows and business hours."""

from collections import deque
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..contracts import BusinessHoursConfig, DetectedAnomaly, SuppressionRule
from ..exceptions import RequestValidationError
from ..utils.logging import get_logger
from ..utils.timeparse import parse_duration

logger = get_logger("alerting.rules")

# Search horizon when looking for the next working window (covers a year of holidays)
_MAX_LOOKAHEAD_DAYS = 366


def condition_matches(condition: str, anomaly: DetectedAnomaly) -> bool:
    """Evaluate a rule condition against an anomaly.

    Grammar: ``*`` or empty matches everything; ``severity:<TIER>``,
    ``field:<name>``, ``category:<IMPACT>`` and ``type:<ANOMALY_TYPE>`` test
    one attribute; any other text matches an affected field name.
    """
    condition = (condition or "").strip()
    if condition in ("", "*"):
        return True

    names = anomaly.field_names
    prefix, sep, value = condition.partition(":")
    if not sep:
        return condition in names

    prefix = prefix.strip().lower()
    value = value.strip()
    if prefix == "severity":
        return anomaly.severity.value == value.upper()
    if prefix == "field":
        return value in names
    if prefix == "category":
        return anomaly.business_impact is not None and anomaly.business_impact.category.value == value.upper()
    if prefix == "type":
        return anomaly.type.value == value.upper()
    return condition in names


class SuppressionTracker:
    """Counts recent sightings per (rule, alert key) inside each rule's window."""

    def __init__(self, rules: list[SuppressionRule]):
        self._rules = rules
        try:
            self._windows = [parse_duration(rule.duration) for rule in rules]
        except ValueError as e:
            raise RequestValidationError(f"Invalid suppression rule: {e}") from e
        self._sightings: dict[tuple[int, str], deque] = {}

    def check(self, anomaly: DetectedAnomaly, key: str, now: datetime) -> Optional[SuppressionRule]:
        """Record a sighting and return the rule that suppresses it, if any.

        The current sighting counts toward the limit, so with
        ``max_occurrences=2`` the third sighting inside the window is suppressed.
        """
        suppressed_by = None
        for index, rule in enumerate(self._rules):
            if not condition_matches(rule.condition, anomaly):
                continue
            sightings = self._sightings.setdefault((index, key), deque())
            cutoff = now - self._windows[index]
            while sightings and sightings[0] <= cutoff:
                sightings.popleft()
            sightings.append(now)
            if len(sightings) > rule.max_occurrences and suppressed_by is None:
                suppressed_by = rule
        return suppressed_by


class BusinessHoursWindow:
    """Working-hours calendar used to defer non-critical delivery."""

    def __init__(self, config: BusinessHoursConfig):
        self._config = config
        try:
            self._tz: tzinfo = timezone.utc if config.timezone.upper() == "UTC" else ZoneInfo(config.timezone)
            self._start = time.fromisoformat(config.working_hours.start)
            self._end = time.fromisoformat(config.working_hours.end)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise RequestValidationError(f"Invalid business hours: {e}") from e
        if self._start >= self._end:
            raise RequestValidationError("Business hours must start before they end")
        self._holidays = set(config.holidays)
        # 0=Sunday ... 6=Saturday
        self._days = set(config.working_days)

    def _is_working_day(self, local: datetime) -> bool:
        return (local.weekday() + 1) % 7 in self._days and local.date() not in self._holidays

    def is_open(self, now: datetime) -> bool:
        local = now.astimezone(self._tz)
        return self._is_working_day(local) and self._start <= local.time() < self._end

    def next_open(self, now: datetime) -> Optional[datetime]:
        """Return ``now`` if open, else the start of the next working window (UTC).

        Returns None when the calendar has no working windows at all.
        """
        if self.is_open(now):
            return now
        local_now = now.astimezone(self._tz)
        for offset in range(_MAX_LOOKAHEAD_DAYS + 1):
            day = local_now.date() + timedelta(days=offset)
            opening = datetime.combine(day, self._start, tzinfo=self._tz)
            if opening > local_now and self._is_working_day(opening):
                return opening.astimezone(timezone.utc)
        logger.warning("business_hours_never_open", timezone=self._config.timezone)
        return None
