"""Behavioral Baseline — per-field statistics and periodic patterns for a data source.

Builds a HistoricalBaseline (mean, population std, min, max, percentiles per
value field) and looks for hour-of-day and day-of-week structure in the
values. Baselines are cached per (organization, data source) and replaced
wholesale on refresh.
"""

import math
from datetime import datetime
from typing import Awaitable, Callable, Optional

import numpy as np

from ..contracts import BaselineMetric, BaselinePattern, HistoricalBaseline
from ..utils.cache import TTLCache
from ..utils.logging import get_logger
from .data_preparer import PreparedBatch

logger = get_logger("ai.behavioral_baseline")

PERCENTILES = (25, 50, 75, 90, 95, 99)

# pattern name -> (hours per cycle, bucket function)
PERIODS: dict[str, tuple[int, Callable[[datetime], int]]] = {
    "daily": (24, lambda ts: ts.hour),
    "weekly": (168, lambda ts: ts.weekday()),
}


def percentile_of_sorted(values_sorted: list[float], p: float) -> float:
    """Nearest-rank percentile: ``values_sorted[min(floor(p/100*n), n-1)]``."""
    n = len(values_sorted)
    index = min(int(math.floor(p / 100.0 * n)), n - 1)
    return values_sorted[index]


def bucket_strength(values: np.ndarray, buckets: list[int]) -> Optional[float]:
    """Share of variance explained by bucket means, or None when not measurable.

    Needs at least two distinct buckets and more samples than buckets, so a
    single observation per bucket can never look like a perfect pattern.
    """
    distinct = set(buckets)
    if len(distinct) < 2 or len(values) <= len(distinct):
        return None
    overall = values.mean()
    total = float(((values - overall) ** 2).sum())
    if total == 0:
        return None
    labels = np.array(buckets)
    between = 0.0
    for b in distinct:
        members = values[labels == b]
        between += len(members) * float((members.mean() - overall) ** 2)
    return between / total


class BaselineBuilder:
    """Computes a HistoricalBaseline from a prepared batch."""

    def __init__(self, pattern_min_strength: float = 0.3):
        self._pattern_min_strength = pattern_min_strength

    def build(self, batch: PreparedBatch) -> HistoricalBaseline:
        metrics = [self._metric(batch, f) for f in batch.value_fields]
        patterns = self._patterns(batch)
        time_range = batch.time_range()
        period = (
            f"{time_range.start.isoformat()}/{time_range.end.isoformat()}" if time_range else "untimed"
        )
        baseline = HistoricalBaseline(
            period=period,
            metrics=metrics,
            patterns=patterns,
            sample_count=len(batch),
        )
        logger.info(
            "baseline_built",
            source_id=batch.source_id,
            fields=len(metrics),
            patterns=len(patterns),
            samples=baseline.sample_count,
        )
        return baseline

    def _metric(self, batch: PreparedBatch, field_name: str) -> BaselineMetric:
        values = batch.values(field_name)
        values_sorted = sorted(values.tolist())
        return BaselineMetric(
            field=field_name,
            mean=float(values.mean()),
            std=float(values.std()),
            min=float(values.min()),
            max=float(values.max()),
            percentiles={f"p{p}": float(percentile_of_sorted(values_sorted, p)) for p in PERCENTILES},
        )

    def _patterns(self, batch: PreparedBatch) -> list[BaselinePattern]:
        timed = [i for i, ts in enumerate(batch.timestamps) if ts is not None]
        if len(timed) < 3:
            return []
        last_seen = max(batch.timestamps[i] for i in timed)

        patterns = []
        for field_name in batch.value_fields:
            values = np.array([batch.records[i][field_name] for i in timed], dtype=float)
            for name, (frequency, bucket_fn) in PERIODS.items():
                strength = bucket_strength(values, [bucket_fn(batch.timestamps[i]) for i in timed])
                if strength is not None and strength >= self._pattern_min_strength:
                    patterns.append(BaselinePattern(
                        pattern=name,
                        field=field_name,
                        frequency=frequency,
                        strength=round(strength, 4),
                        last_seen=last_seen,
                    ))
        return patterns


class BaselineStore:
    """TTL cache of baselines keyed by organization and data source."""

    def __init__(self, ttl_seconds: float = 3600.0, max_entries: int = 1000):
        self._cache = TTLCache(default_ttl=ttl_seconds, max_entries=max_entries)

    @staticmethod
    def key(organization_id: str, source_id: str) -> str:
        return f"{organization_id}:{source_id}"

    def get(self, organization_id: str, source_id: str) -> Optional[HistoricalBaseline]:
        return self._cache.get(self.key(organization_id, source_id))

    async def get_or_create(
        self,
        organization_id: str,
        source_id: str,
        build_fn: Callable[[], Awaitable[HistoricalBaseline]],
    ) -> HistoricalBaseline:
        """Return the cached baseline, building a fresh one on miss or expiry."""
        return await self._cache.get_or_compute(self.key(organization_id, source_id), build_fn)

    def replace(self, organization_id: str, source_id: str, baseline: HistoricalBaseline) -> None:
        self._cache.set(self.key(organization_id, source_id), baseline)
        logger.info(
            "baseline_replaced",
            organization_id=organization_id,
            source_id=source_id,
            samples=baseline.sample_count,
        )

    def invalidate(self, organization_id: str, source_id: str) -> None:
        self._cache.invalidate(self.key(organization_id, source_id))

    def __len__(self) -> int:
        return len(self._cache)
