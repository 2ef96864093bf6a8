"""Pydantic models for query specs, normalized series and monitor state."""

from __future__ import annotations

import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# ──────────────────────────── Queries ─────────────────────────────────────────


class QuerySpec(BaseModel):
    """A catalog key plus the label filters to substitute into its templates."""

    model_config = ConfigDict(frozen=True)

    metric_key: str = Field(description="Dotted catalog key, e.g. 'instanceMonitor.cpu'")
    params: dict[str, str] = Field(
        default_factory=dict,
        description="Label filters such as domain, device or instance",
    )


# Maximum number of points a range query should return per series.
MAX_RANGE_POINTS = 240
MIN_STEP_SECONDS = 15


class TimeRange(BaseModel):
    """A look-back window for range queries."""

    model_config = ConfigDict(frozen=True)

    name: str
    seconds: int

    @property
    def step(self) -> int:
        return max(self.seconds // MAX_RANGE_POINTS, MIN_STEP_SECONDS)

    def bounds(self, now: float | None = None) -> tuple[float, float]:
        end = time.time() if now is None else now
        return end - self.seconds, end

    def as_params(self, now: float | None = None) -> dict[str, str]:
        """Return the ``start``/``end``/``step`` parameters of ``/api/v1/query_range``."""
        start, end = self.bounds(now)
        return {"start": f"{start:.3f}", "end": f"{end:.3f}", "step": f"{self.step}s"}


TIME_RANGES: dict[str, TimeRange] = {
    "1h": TimeRange(name="1h", seconds=3600),
    "1d": TimeRange(name="1d", seconds=86400),
    "7d": TimeRange(name="7d", seconds=7 * 86400),
    "14d": TimeRange(name="14d", seconds=14 * 86400),
}
DEFAULT_TIME_RANGE = "1h"


def get_time_range(name: str) -> TimeRange:
    try:
        return TIME_RANGES[name]
    except KeyError:
        raise ValueError(
            f"Unknown time range {name!r}. Choose one of: {', '.join(TIME_RANGES)}"
        ) from None


# ──────────────────────────── Normalized series ──────────────────────────────


class Point(BaseModel):
    """One chart point: unix seconds on ``x``, a finite value on ``y``."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float


class SeriesKind(str, Enum):
    """Whether a series set came from the backend or was generated locally."""

    OBSERVED = "observed"
    SYNTHETIC = "synthetic"


class Series(BaseModel):
    """An ordered run of points for one name/device combination."""

    name: str
    device: str | None = None
    points: list[Point] = Field(default_factory=list)

    @property
    def label(self) -> str:
        if self.device:
            return f"{self.name} ({self.device})"
        return self.name

    @property
    def latest(self) -> Point | None:
        return self.points[-1] if self.points else None


class SeriesSet(BaseModel):
    """Every series produced from one card's responses."""

    series: list[Series] = Field(default_factory=list)
    kind: SeriesKind = SeriesKind.OBSERVED

    @property
    def synthetic(self) -> bool:
        return self.kind == SeriesKind.SYNTHETIC

    @property
    def is_empty(self) -> bool:
        return not any(s.points for s in self.series)

    @property
    def point_count(self) -> int:
        return sum(len(s.points) for s in self.series)

    @property
    def names(self) -> list[str]:
        return [s.label for s in self.series]

    @property
    def devices(self) -> list[str]:
        seen: list[str] = []
        for s in self.series:
            if s.device and s.device not in seen:
                seen.append(s.device)
        return seen

    def get(self, name: str, device: str | None = None) -> Series | None:
        for s in self.series:
            if s.name == name and s.device == device:
                return s
        return None


# ──────────────────────────── Monitor state ──────────────────────────────────


class MonitorStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class MonitorState(BaseModel):
    """What the rendering layer reads from the lifecycle controller."""

    model_config = ConfigDict(frozen=True)

    status: MonitorStatus = MonitorStatus.LOADING
    instance_id: str | None = None
    domain: str | None = None
    error_message: str | None = None
    advisory: str | None = Field(
        default=None,
        description="Non-blocking message, e.g. the domain fell back to the instance id",
    )
    backend_available: bool = True

    @property
    def is_loading(self) -> bool:
        return self.status == MonitorStatus.LOADING

    @property
    def is_ready(self) -> bool:
        return self.status == MonitorStatus.READY

    @property
    def is_error(self) -> bool:
        return self.status == MonitorStatus.ERROR
