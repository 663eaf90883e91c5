"""Tests for DataPreparer."""

import copy

import pytest

from anomaly_engine.ai.data_preparer import DataPreparer
from anomaly_engine.exceptions import RequestValidationError


@pytest.fixture
def preparer():
    return DataPreparer()


class TestDataPreparer:
    def test_empty_data_rejected(self, preparer, make_data_source):
        with pytest.raises(RequestValidationError):
            preparer.prepare(make_data_source([]))

    def test_only_malformed_records_rejected(self, preparer, make_data_source):
        with pytest.raises(RequestValidationError):
            preparer.prepare(make_data_source([None, "x", 3]))

    def test_sorts_by_timestamp_with_untimed_last(self, preparer, make_data_source):
        records = [
            {"timestamp": "2024-01-03T00:00:00Z", "amount": 3},
            {"amount": 99},
            {"timestamp": "2024-01-01T00:00:00Z", "amount": 1},
            {"timestamp": "bogus", "amount": 98},
            {"timestamp": "2024-01-02T00:00:00Z", "amount": 2},
        ]
        batch = preparer.prepare(make_data_source(records))
        assert [r["amount"] for r in batch.records] == [1, 2, 3, 99, 98]
        assert batch.missing_timestamps == 2
        assert batch.timestamps[-1] is None

    def test_fills_missing_values_with_zero(self, preparer, make_data_source, records_factory):
        records = records_factory([10, 20])
        records.append({"timestamp": "2024-03-05T00:00:00Z", "amount": "n/a"})
        records.append({"timestamp": "2024-03-06T00:00:00Z"})
        batch = preparer.prepare(make_data_source(records))
        assert batch.filled_values == 2
        assert [r["amount"] for r in batch.records] == [10.0, 20.0, 0.0, 0.0]

    def test_numeric_strings_are_parsed(self, preparer, make_data_source, records_factory):
        batch = preparer.prepare(make_data_source(records_factory(["1.5", "2"])))
        assert batch.filled_values == 0
        assert batch.values("amount").tolist() == [1.5, 2.0]

    def test_normalized_columns(self, preparer, make_data_source, records_factory):
        batch = preparer.prepare(make_data_source(records_factory([1, 2, 3])))
        normalized = [r["amount_normalized"] for r in batch.records]
        assert normalized[1] == pytest.approx(0.0)
        assert normalized[0] == pytest.approx(-normalized[2])
        assert batch.feature_matrix().shape == (3, 1)

    def test_constant_field_normalizes_to_zero(self, preparer, make_data_source, records_factory):
        batch = preparer.prepare(make_data_source(records_factory([5, 5, 5])))
        assert all(r["amount_normalized"] == 0.0 for r in batch.records)
        assert batch.field_stds["amount"] == 0.0

    def test_input_not_mutated(self, preparer, make_data_source, records_factory):
        records = records_factory([3, 1, None])
        original = copy.deepcopy(records)
        preparer.prepare(make_data_source(records))
        assert records == original

    def test_drops_non_mapping_records(self, preparer, make_data_source, records_factory):
        records = records_factory([1, 2]) + [None, ["x"]]
        batch = preparer.prepare(make_data_source(records))
        assert len(batch) == 2
        assert batch.dropped_records == 2
        assert batch.raw_count == 4

    def test_infers_value_fields_when_not_declared(self, preparer, make_data_source):
        records = [
            {"timestamp": "2024-01-01T00:00:00Z", "amount": 1, "fee": 0.5, "region": "eu", "flag": True},
            {"timestamp": "2024-01-02T00:00:00Z", "amount": 2, "fee": 0.7, "region": "us", "flag": False},
        ]
        batch = preparer.prepare(make_data_source(records, value_fields=()))
        assert batch.value_fields == ["amount", "fee"]

    def test_time_range(self, preparer, make_data_source, records_factory):
        batch = preparer.prepare(make_data_source(records_factory([1, 2, 3])))
        span = batch.time_range()
        assert span is not None
        assert (span.end - span.start).total_seconds() == 7200
