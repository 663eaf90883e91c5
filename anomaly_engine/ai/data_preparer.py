"""Data Preparer — turns raw data-source records into an ordered numeric batch.

Records are copied, sorted by timestamp, gap-filled with zeros and extended
with ``<field>_normalized`` columns computed from the batch's own mean and
standard deviation.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import numpy as np

from ..contracts import DataSource, TimeRange
from ..exceptions import RequestValidationError
from ..utils.logging import get_logger
from ..utils.timeparse import parse_timestamp

logger = get_logger("ai.data_preparer")

NORMALIZED_SUFFIX = "_normalized"


@dataclass
class PreparedBatch:
    """Ordered, numeric view of one data-source payload."""
    batch_id: str
    source_id: str
    records: list[dict]
    timestamps: list[Optional[datetime]]
    value_fields: list[str]
    timestamp_field: str = "timestamp"
    raw_count: int = 0
    dropped_records: int = 0
    filled_values: int = 0
    missing_timestamps: int = 0
    field_means: dict[str, float] = field(default_factory=dict)
    field_stds: dict[str, float] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.records)

    def values(self, field_name: str) -> np.ndarray:
        return np.array([r[field_name] for r in self.records], dtype=float)

    def feature_matrix(self) -> np.ndarray:
        """Normalized value columns as an (n_records, n_fields) matrix."""
        if not self.records or not self.value_fields:
            return np.empty((len(self.records), 0))
        return np.array(
            [[r[f + NORMALIZED_SUFFIX] for f in self.value_fields] for r in self.records],
            dtype=float,
        )

    def time_range(self) -> Optional[TimeRange]:
        known = [ts for ts in self.timestamps if ts is not None]
        if not known:
            return None
        return TimeRange(start=min(known), end=max(known))


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def infer_value_fields(records: list[dict], exclude: set[str]) -> list[str]:
    """Numeric fields present in the records, in first-seen order."""
    fields: list[str] = []
    for record in records:
        for key, value in record.items():
            if key in exclude or key in fields or key.endswith(NORMALIZED_SUFFIX):
                continue
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                fields.append(key)
    return fields


class DataPreparer:
    """Validates, orders, fills and normalizes data-source records."""

    def prepare(self, data_source: DataSource) -> PreparedBatch:
        """Build a PreparedBatch from a data source without mutating it.

        Raises:
            RequestValidationError: If the payload is not a non-empty list of records.
        """
        raw = data_source.data
        if not isinstance(raw, list) or not raw:
            raise RequestValidationError("Data source must contain a non-empty list of records")

        metadata = data_source.metadata
        ts_field = metadata.timestamp_field

        kept = [dict(r) for r in raw if isinstance(r, dict)]
        dropped = len(raw) - len(kept)
        if not kept:
            raise RequestValidationError("Data source contains no usable records")

        value_fields = list(metadata.value_fields) or infer_value_fields(
            kept, exclude={ts_field, *metadata.categorical_fields}
        )

        parsed = [parse_timestamp(r.get(ts_field)) for r in kept]
        order = sorted(
            range(len(kept)),
            key=lambda i: (0, parsed[i]) if parsed[i] is not None else (1, datetime.min),
        )
        records = [kept[i] for i in order]
        timestamps = [parsed[i] for i in order]

        filled = 0
        for record in records:
            for f in value_fields:
                number = _to_number(record.get(f))
                if number is None:
                    number = 0.0
                    filled += 1
                record[f] = number

        means: dict[str, float] = {}
        stds: dict[str, float] = {}
        for f in value_fields:
            column = np.array([r[f] for r in records], dtype=float)
            mean = float(column.mean())
            std = float(column.std())
            means[f] = mean
            stds[f] = std
            for record in records:
                record[f + NORMALIZED_SUFFIX] = (record[f] - mean) / std if std > 0 else 0.0

        batch = PreparedBatch(
            batch_id=f"batch_{uuid.uuid4().hex[:12]}",
            source_id=data_source.source_id,
            records=records,
            timestamps=timestamps,
            value_fields=value_fields,
            timestamp_field=ts_field,
            raw_count=len(raw),
            dropped_records=dropped,
            filled_values=filled,
            missing_timestamps=sum(1 for ts in timestamps if ts is None),
            field_means=means,
            field_stds=stds,
        )
        logger.debug(
            "batch_prepared",
            batch_id=batch.batch_id,
            source_id=batch.source_id,
            records=len(records),
            dropped=dropped,
            filled=filled,
        )
        return batch
