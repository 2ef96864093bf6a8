"""Tests for instance_monitor.normalizer."""

from __future__ import annotations

import random

import pytest

from conftest import matrix, vector
from instance_monitor.errors import MalformedSample
from instance_monitor.models import Point, SeriesKind
from instance_monitor.normalizer import (
    SYNTHETIC_POINTS,
    InstantNormalizer,
    InstantSample,
    RangeSample,
    SeriesNormalizer,
    flatten,
    iter_samples,
    normalize_instant,
    normalize_series,
    parse_sample,
    synthetic_series,
)


# ═══════════════════════════════════════════════════════════════════════════
# parse_sample
# ═══════════════════════════════════════════════════════════════════════════


class TestParseSample:
    def test_instant(self):
        s = parse_sample({"metric": {"domain": "d"}, "value": [1, "0.5"]})
        assert isinstance(s, InstantSample)
        assert s.metric == {"domain": "d"}

    def test_range(self):
        s = parse_sample({"metric": {}, "values": [[1, "1"], [2, "2"]]})
        assert isinstance(s, RangeSample)
        assert len(s.values) == 2

    def test_nested_value_is_range(self):
        s = parse_sample({"metric": {}, "value": [[1, "1"], [2, "2"]]})
        assert isinstance(s, RangeSample)

    def test_missing_metric_defaults_to_empty(self):
        s = parse_sample({"value": [1, "1"]})
        assert s.metric == {}

    @pytest.mark.parametrize(
        "raw",
        [None, "x", {"metric": {}}, {"metric": {}, "value": []}, {"metric": "bad", "value": [1, "1"]}],
    )
    def test_malformed(self, raw):
        with pytest.raises(MalformedSample):
            parse_sample(raw)

    def test_iter_samples_skips_malformed(self):
        responses = [vector({"metric": {}}, {"metric": {"a": "1"}, "value": [1, "1"]})]
        samples = list(iter_samples(responses))
        assert len(samples) == 1
        assert samples[0][0] == 0
        assert samples[0][1].metric == {"a": "1"}


# ═══════════════════════════════════════════════════════════════════════════
# normalize_instant
# ═══════════════════════════════════════════════════════════════════════════


class TestNormalizeInstant:
    def test_scaled_percentage(self):
        points = normalize_instant([vector({"metric": {}, "value": [1704067200, "0.3456"]})], scale=100)
        assert len(points) == 1
        assert points[0].x == 1704067200
        assert points[0].y == pytest.approx(34.56, abs=0.01)

    def test_first_result_by_default(self):
        resp = vector(
            {"metric": {}, "value": [1, "10"]},
            {"metric": {}, "value": [1, "20"]},
        )
        assert normalize_instant([resp])[0].y == 10

    def test_selector(self):
        resp = vector(
            {"metric": {}, "value": [1, "10"]},
            {"metric": {}, "value": [1, "20"]},
        )
        assert normalize_instant([resp], selector=1)[0].y == 20
        assert normalize_instant([resp], selector=5) == []

    def test_range_sample_uses_latest(self):
        resp = matrix({"metric": {}, "values": [[1, "1"], [2, "2"], [3, "bad"]]})
        assert normalize_instant([resp]) == [Point(x=2, y=2)]

    @pytest.mark.parametrize(
        "responses",
        [None, [], [{}], [vector()], [{"data": None}], [{"status": "success", "data": {"result": "x"}}]],
    )
    def test_empty_input(self, responses):
        assert normalize_instant(responses) == []

    def test_nan_dropped(self):
        assert normalize_instant([vector({"metric": {}, "value": [1, "NaN"]})]) == []

    def test_precision(self):
        points = normalize_instant([vector({"metric": {}, "value": [1, "1.23456"]})], precision=2)
        assert points[0].y == 1.23


# ═══════════════════════════════════════════════════════════════════════════
# normalize_series
# ═══════════════════════════════════════════════════════════════════════════


class TestNormalizeSeries:
    def test_one_point_per_tuple_in_order(self):
        values = [[100, "0.1"], [160, "0.2"], [220, "0.3"]]
        result = normalize_series([matrix({"metric": {}, "values": values})], scale=100)
        assert result.kind == SeriesKind.OBSERVED
        assert len(result.series) == 1
        pts = result.series[0].points
        assert [p.x for p in pts] == [100, 160, 220]
        assert [p.y for p in pts] == pytest.approx([10, 20, 30])

    def test_rename_is_positional(self):
        used = matrix({"metric": {}, "values": [[1, "100"]]})
        free = matrix({"metric": {}, "values": [[1, "50"]]})
        result = normalize_series([used, free], rename=["Used", "Free"])
        assert result.names == ["Used", "Free"]
        assert result.get("Free").points[0].y == 50

    def test_without_rename_uses_response_index(self):
        a = matrix({"metric": {}, "values": [[1, "1"]]})
        b = matrix({"metric": {}, "values": [[1, "2"]]})
        assert normalize_series([a, b]).names == ["0", "1"]

    def test_short_rename_falls_back_to_index(self):
        a = matrix({"metric": {}, "values": [[1, "1"]]})
        b = matrix({"metric": {}, "values": [[1, "2"]]})
        assert normalize_series([a, b], rename=["read"]).names == ["read", "1"]

    def test_device_split(self):
        read = matrix(
            {"metric": {"device": "vda"}, "values": [[1, "10"], [2, "11"]]},
            {"metric": {"device": "vdb"}, "values": [[1, "20"]]},
        )
        write = matrix(
            {"metric": {"device": "vda"}, "values": [[1, "30"]]},
        )
        result = normalize_series([read, write], rename=["read", "write"], device_label="device")
        assert [(s.name, s.device) for s in result.series] == [
            ("read", "vda"),
            ("read", "vdb"),
            ("write", "vda"),
        ]
        assert result.get("read", "vda").points == [Point(x=1, y=10), Point(x=2, y=11)]
        assert result.devices == ["vda", "vdb"]
        assert result.series[0].label == "read (vda)"

    def test_same_key_results_merge(self):
        resp = matrix(
            {"metric": {"device": "vda"}, "values": [[1, "1"]]},
            {"metric": {"device": "vda"}, "values": [[2, "2"]]},
        )
        result = normalize_series([resp], device_label="device")
        assert len(result.series) == 1
        assert len(result.series[0].points) == 2

    def test_instant_and_range_mixed(self):
        instant = vector({"metric": {}, "value": [5, "0.5"]})
        ranged = matrix({"metric": {}, "values": [[1, "1"], [2, "2"]]})
        result = normalize_series([instant, ranged], rename=["now", "trend"])
        assert result.get("now").points == [Point(x=5, y=0.5)]
        assert len(result.get("trend").points) == 2

    def test_malformed_tuples_skipped(self):
        resp = matrix(
            {"metric": {}, "values": [[1, "1"], [2], None, [3, "abc"], [4, "+Inf"], [5, "5"]]},
            {"metric": {}},
        )
        result = normalize_series([resp])
        assert [p.x for p in result.series[0].points] == [1, 5]

    @pytest.mark.parametrize("responses", [None, [], [vector()], [{"status": "error"}]])
    def test_empty_input(self, responses):
        result = normalize_series(responses)
        assert result.is_empty
        assert result.series == []
        assert not result.synthetic

    def test_fallback_when_empty(self):
        result = normalize_series([vector()], fallback=True)
        assert result.synthetic
        assert result.point_count == SYNTHETIC_POINTS

    def test_no_fallback_when_data_present(self):
        resp = matrix({"metric": {}, "values": [[1, "1"]]})
        assert not normalize_series([resp], fallback=True).synthetic


class TestSyntheticSeries:
    def test_shape(self):
        result = synthetic_series(now=1000.0, rng=random.Random(1))
        assert result.kind == SeriesKind.SYNTHETIC
        pts = result.series[0].points
        assert len(pts) == SYNTHETIC_POINTS
        assert pts[-1].x == 1000.0
        assert pts[0].x == 1000.0 - 60 * (SYNTHETIC_POINTS - 1)
        assert all(30 <= p.y <= 70 for p in pts)

    def test_seeded_is_repeatable(self):
        a = synthetic_series(now=0, rng=random.Random(7))
        b = synthetic_series(now=0, rng=random.Random(7))
        assert a == b


class TestFlatten:
    def test_records(self):
        resp = matrix({"metric": {"device": "vda"}, "values": [[1, "2"]]})
        rows = flatten(normalize_series([resp], rename=["read"], device_label="device"))
        assert rows == [{"x": 1.0, "y": 2.0, "type": "read", "device": "vda"}]

    def test_no_device_key(self):
        resp = matrix({"metric": {}, "values": [[1, "2"]]})
        rows = flatten(normalize_series([resp], rename=["Used"]))
        assert rows == [{"x": 1.0, "y": 2.0, "type": "Used"}]


class TestNormalizerObjects:
    def test_instant_callable(self):
        n = InstantNormalizer(scale=100, precision=2)
        assert n([vector({"metric": {}, "value": [1, "0.5"]})]) == [Point(x=1, y=50)]

    def test_series_callable(self):
        n = SeriesNormalizer(rename=("a",))
        assert n([matrix({"metric": {}, "values": [[1, "1"]]})]).names == ["a"]

    def test_equality(self):
        assert SeriesNormalizer(rename=("a", "b"), scale=2) == SeriesNormalizer(rename=("a", "b"), scale=2)
        assert InstantNormalizer(scale=100) != InstantNormalizer(scale=1)
