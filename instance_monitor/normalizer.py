"""Turn Prometheus query responses into chart-ready point sequences.

Every result entry is classified once into an :class:`InstantSample` or a
:class:`RangeSample`; normalization then dispatches on that type instead of
poking at ``value``/``values`` over and over.  Bad entries and bad tuples are
dropped, never coerced into NaN or zero.
"""

from __future__ import annotations

import logging
import math
import random
import time
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Union

from pydantic import BaseModel, ConfigDict

from instance_monitor.errors import MalformedSample
from instance_monitor.models import Point, Series, SeriesKind, SeriesSet

logger = logging.getLogger(__name__)

# Shape of the synthetic series used when a chart has no data at all.
SYNTHETIC_POINTS = 61
SYNTHETIC_INTERVAL = 60
SYNTHETIC_LOW = 30.0
SYNTHETIC_HIGH = 70.0
SYNTHETIC_SERIES_NAME = "synthetic"


# ──────────────────────────── Raw samples ─────────────────────────────────────


@dataclass(frozen=True)
class InstantSample:
    """A result of an instant query: one ``[timestamp, "value"]`` pair."""

    metric: dict[str, str]
    value: Sequence[Any]


@dataclass(frozen=True)
class RangeSample:
    """A result of a range query: a list of ``[timestamp, "value"]`` pairs."""

    metric: dict[str, str]
    values: Sequence[Sequence[Any]]


RawSample = Union[InstantSample, RangeSample]


def parse_sample(raw: Any) -> RawSample:
    """Classify one entry of ``data.result``.

    An instant ``value`` whose first element is itself a pair is read as a
    range.  Raises ``MalformedSample`` for anything unusable.
    """
    if not isinstance(raw, dict):
        raise MalformedSample(f"result entry is not an object: {raw!r}")
    metric = raw.get("metric") or {}
    if not isinstance(metric, dict):
        raise MalformedSample(f"metric labels are not an object: {metric!r}")

    values = raw.get("values")
    if isinstance(values, list):
        return RangeSample(metric=metric, values=values)

    value = raw.get("value")
    if isinstance(value, list) and value:
        if isinstance(value[0], list):
            return RangeSample(metric=metric, values=value)
        return InstantSample(metric=metric, value=value)

    raise MalformedSample(f"result entry has no value or values: {raw!r}")


def _results(response: Any) -> list[Any]:
    if not isinstance(response, dict):
        return []
    data = response.get("data")
    if not isinstance(data, dict):
        return []
    result = data.get("result")
    return result if isinstance(result, list) else []


def iter_samples(responses: Iterable[Any] | None) -> Iterator[tuple[int, RawSample]]:
    """Yield ``(response_index, sample)`` for every well-formed result."""
    for index, response in enumerate(responses or ()):
        for raw in _results(response):
            try:
                yield index, parse_sample(raw)
            except MalformedSample as exc:
                logger.debug("Dropping malformed sample: %s", exc)


def sample_tuples(sample: RawSample) -> Sequence[Sequence[Any]]:
    if isinstance(sample, RangeSample):
        return sample.values
    return (sample.value,)


def to_point(pair: Any, scale: float = 1.0, precision: int | None = None) -> Point | None:
    """Convert one ``[timestamp, "value"]`` pair, or return None if it is unusable."""
    if not isinstance(pair, (list, tuple)) or len(pair) < 2:
        return None
    try:
        x = float(pair[0])
        y = float(pair[1]) * scale
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    if precision is not None:
        y = round(y, precision)
    return Point(x=x, y=y)


# ──────────────────────────── Normalization ───────────────────────────────────


def normalize_instant(
    responses: Sequence[Any] | None,
    selector: int = 0,
    scale: float = 1.0,
    precision: int | None = None,
) -> list[Point]:
    """Return the current value of one result as zero or one point.

    Picks result *selector* of the first response.  For a range sample the
    latest usable pair is taken.
    """
    if not responses:
        return []
    results = _results(responses[0])
    if not 0 <= selector < len(results):
        return []
    try:
        sample = parse_sample(results[selector])
    except MalformedSample as exc:
        logger.debug("Dropping malformed instant sample: %s", exc)
        return []

    for pair in reversed(sample_tuples(sample)):
        point = to_point(pair, scale, precision)
        if point is not None:
            return [point]
    return []


def normalize_series(
    responses: Sequence[Any] | None,
    rename: Sequence[str] | None = None,
    device_label: str | None = None,
    scale: float = 1.0,
    precision: int | None = None,
    fallback: bool = False,
) -> SeriesSet:
    """Group every point of every response into named series.

    A series is keyed by its name (``rename[i]`` for response ``i``, or the
    index itself) and, when *device_label* is given, by that label's value.
    Series appear in the order they are first seen.  Point order inside a
    series follows the input.
    """
    grouped: dict[tuple[str, str | None], list[Point]] = {}
    for index, sample in iter_samples(responses):
        name = rename[index] if rename and index < len(rename) else str(index)
        device = sample.metric.get(device_label) if device_label else None
        points = grouped.setdefault((name, device), [])
        for pair in sample_tuples(sample):
            point = to_point(pair, scale, precision)
            if point is None:
                logger.debug("Skipping malformed value %r in series %s", pair, name)
                continue
            points.append(point)

    series_set = SeriesSet(
        series=[Series(name=name, device=device, points=points) for (name, device), points in grouped.items()]
    )
    if series_set.is_empty and fallback:
        logger.info("No data returned, substituting a synthetic series")
        return synthetic_series()
    return series_set


def synthetic_series(
    now: float | None = None,
    rng: random.Random | None = None,
    name: str = SYNTHETIC_SERIES_NAME,
) -> SeriesSet:
    """Build a placeholder series so an empty chart still has a shape.

    The result is tagged ``synthetic`` and must never be stored or compared
    against real data.
    """
    end = time.time() if now is None else now
    rng = rng or random.Random()
    points = [
        Point(
            x=end - i * SYNTHETIC_INTERVAL,
            y=round(rng.uniform(SYNTHETIC_LOW, SYNTHETIC_HIGH), 2),
        )
        for i in range(SYNTHETIC_POINTS - 1, -1, -1)
    ]
    return SeriesSet(series=[Series(name=name, points=points)], kind=SeriesKind.SYNTHETIC)


def flatten(series_set: SeriesSet) -> list[dict[str, Any]]:
    """Return one ``{x, y, type[, device]}`` record per point, for chart libraries."""
    rows: list[dict[str, Any]] = []
    for series in series_set.series:
        for point in series.points:
            row: dict[str, Any] = {"x": point.x, "y": point.y, "type": series.name}
            if series.device is not None:
                row["device"] = series.device
            rows.append(row)
    return rows


# ──────────────────────────── Normalizer objects ──────────────────────────────


class InstantNormalizer(BaseModel):
    """Comparable callable wrapping :func:`normalize_instant`."""

    model_config = ConfigDict(frozen=True)

    selector: int = 0
    scale: float = 1.0
    precision: int | None = None

    def __call__(self, responses: Sequence[Any] | None) -> list[Point]:
        return normalize_instant(responses, self.selector, self.scale, self.precision)


class SeriesNormalizer(BaseModel):
    """Comparable callable wrapping :func:`normalize_series`."""

    model_config = ConfigDict(frozen=True)

    rename: tuple[str, ...] = ()
    device_label: str | None = None
    scale: float = 1.0
    precision: int | None = None
    fallback: bool = False

    def __call__(self, responses: Sequence[Any] | None) -> SeriesSet:
        return normalize_series(
            responses,
            rename=self.rename or None,
            device_label=self.device_label,
            scale=self.scale,
            precision=self.precision,
            fallback=self.fallback,
        )
