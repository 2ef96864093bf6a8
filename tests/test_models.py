"""Tests for instance_monitor.models."""

from __future__ import annotations

import pytest

from instance_monitor.models import (
    TIME_RANGES,
    MonitorState,
    MonitorStatus,
    Point,
    QuerySpec,
    Series,
    SeriesKind,
    SeriesSet,
    TimeRange,
    get_time_range,
)


class TestQuerySpec:
    def test_equality(self) -> None:
        assert QuerySpec(metric_key="a", params={"domain": "d"}) == QuerySpec(
            metric_key="a", params={"domain": "d"}
        )


class TestTimeRange:
    def test_known_ranges(self) -> None:
        assert list(TIME_RANGES) == ["1h", "1d", "7d", "14d"]

    def test_step_has_floor(self) -> None:
        assert TimeRange(name="5m", seconds=300).step == 15
        assert get_time_range("1d").step == 360

    def test_as_params(self) -> None:
        params = get_time_range("1h").as_params(now=7200.0)
        assert params == {"start": "3600.000", "end": "7200.000", "step": "15s"}

    def test_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown time range"):
            get_time_range("2h")


class TestSeriesSet:
    def _set(self) -> SeriesSet:
        return SeriesSet(
            series=[
                Series(name="read", device="vda", points=[Point(x=1, y=1), Point(x=2, y=3)]),
                Series(name="read", device="vdb", points=[Point(x=1, y=2)]),
                Series(name="write", device="vda"),
            ]
        )

    def test_counts_and_labels(self) -> None:
        s = self._set()
        assert s.point_count == 3
        assert s.names == ["read (vda)", "read (vdb)", "write (vda)"]
        assert s.devices == ["vda", "vdb"]
        assert not s.synthetic
        assert not s.is_empty

    def test_get(self) -> None:
        s = self._set()
        assert s.get("read", "vda").latest == Point(x=2, y=3)
        assert s.get("write", "vda").latest is None
        assert s.get("read") is None

    def test_empty(self) -> None:
        assert SeriesSet().is_empty
        assert SeriesSet(series=[Series(name="x")]).is_empty
        assert SeriesSet(kind=SeriesKind.SYNTHETIC).synthetic


class TestMonitorState:
    def test_default_is_loading(self) -> None:
        state = MonitorState()
        assert state.is_loading
        assert state.backend_available

    def test_flags(self) -> None:
        assert MonitorState(status=MonitorStatus.READY, domain="d").is_ready
        assert MonitorState(status=MonitorStatus.ERROR, error_message="x").is_error

    def test_frozen(self) -> None:
        with pytest.raises(Exception):
            MonitorState().domain = "d"  # type: ignore[misc]
