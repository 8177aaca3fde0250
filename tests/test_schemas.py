"""Tests for the metric value model and parsing helpers."""

import pytest
from pydantic import ValidationError

from shared.errors import MetricParseError
from shared.metrics import group_metrics, metric_value, parse_metric, wrap_int64
from shared.schemas import (
    INT64_MAX,
    INT64_MIN,
    CounterMetric,
    GaugeMetric,
    metric_adapter,
    metric_list_adapter,
)


class TestMetricModel:
    def test_gauge_serializes_without_delta(self):
        metric = GaugeMetric(id="Alloc", value=120.5)
        assert metric.model_dump(mode="json") == {"id": "Alloc", "type": "gauge", "value": 120.5}

    def test_counter_serializes_without_value(self):
        metric = CounterMetric(id="PollCount", delta=3)
        assert metric.model_dump(mode="json") == {"id": "PollCount", "type": "counter", "delta": 3}

    def test_discriminator_selects_variant(self):
        gauge = metric_adapter.validate_python({"id": "Alloc", "type": "gauge", "value": 1})
        counter = metric_adapter.validate_python({"id": "PollCount", "type": "counter", "delta": 2})
        assert isinstance(gauge, GaugeMetric)
        assert gauge.value == 1.0
        assert isinstance(counter, CounterMetric)

    def test_counter_requires_delta(self):
        with pytest.raises(ValidationError):
            metric_adapter.validate_python({"id": "PollCount", "type": "counter", "value": 1.0})

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            metric_adapter.validate_python({"id": "x", "type": "histogram", "value": 1.0})

    def test_empty_id_rejected(self):
        with pytest.raises(ValidationError):
            GaugeMetric(id="", value=1.0)

    def test_delta_outside_int64_rejected(self):
        with pytest.raises(ValidationError):
            CounterMetric(id="c", delta=INT64_MAX + 1)

    def test_metrics_are_immutable(self):
        metric = GaugeMetric(id="Alloc", value=1.0)
        with pytest.raises(ValidationError):
            metric.value = 2.0

    def test_list_from_json(self):
        raw = b'[{"id":"a","type":"gauge","value":0.5},{"id":"b","type":"counter","delta":-4}]'
        gauge, counter = metric_list_adapter.validate_json(raw)
        assert metric_value(gauge) == 0.5
        assert metric_value(counter) == -4


class TestParseMetric:
    def test_gauge(self):
        assert parse_metric("gauge", "Alloc", "88.0") == GaugeMetric(id="Alloc", value=88.0)

    def test_counter(self):
        assert parse_metric("counter", "PollCount", "7") == CounterMetric(id="PollCount", delta=7)

    @pytest.mark.parametrize(
        ("mtype", "raw"),
        [
            ("counter", "1.5"),
            ("counter", "abc"),
            ("counter", str(INT64_MAX + 1)),
            ("gauge", "none"),
            ("gauge", "nan"),
            ("gauge", "inf"),
            ("histogram", "1"),
        ],
    )
    def test_rejects_malformed_values(self, mtype, raw):
        with pytest.raises(MetricParseError):
            parse_metric(mtype, "m", raw)


def test_wrap_int64_wraps_like_signed_addition():
    assert wrap_int64(INT64_MAX + 1) == INT64_MIN
    assert wrap_int64(INT64_MIN - 1) == INT64_MAX
    assert wrap_int64(42) == 42


def test_group_metrics_later_entries_win():
    grouped = group_metrics(
        [GaugeMetric(id="a", value=1.0), CounterMetric(id="a", delta=1), GaugeMetric(id="a", value=2.0)]
    )
    assert grouped == {
        "gauge": {"a": GaugeMetric(id="a", value=2.0)},
        "counter": {"a": CounterMetric(id="a", delta=1)},
    }
