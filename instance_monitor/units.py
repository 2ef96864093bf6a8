"""Human-readable formatting of card values."""

from __future__ import annotations

import math

from instance_monitor.charts import ValueUnit

_SCALES: dict[ValueUnit, tuple[int, list[str]]] = {
    ValueUnit.MEMORY: (1024, ["B", "KB", "MB", "GB", "TB", "PB"]),
    ValueUnit.DISK: (1024, ["B/s", "KB/s", "MB/s", "GB/s", "TB/s", "PB/s"]),
    # Traffic is reported in bytes/s and shown in bits/s.
    ValueUnit.TRAFFIC: (1000, ["bps", "Kbps", "Mbps", "Gbps", "Tbps", "Pbps"]),
}


def suitable_value(value: float | None, unit: ValueUnit | str, decimals: int = 2) -> str:
    """Format *value* with the largest unit that keeps it at or above 1.

    ``None`` and non-finite values render as ``"-"``.
    """
    if value is None or not math.isfinite(value):
        return "-"
    unit = ValueUnit(unit)
    if unit == ValueUnit.PERCENT:
        return f"{value:.{decimals}f}%"
    if unit == ValueUnit.COUNT:
        return f"{value:.{decimals}f}"

    base, names = _SCALES[unit]
    if unit == ValueUnit.TRAFFIC:
        value *= 8
    index = 0
    while abs(value) >= base and index < len(names) - 1:
        value /= base
        index += 1
    return f"{value:.{decimals}f} {names[index]}"
