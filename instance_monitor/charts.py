"""Declarative card definitions for the instance monitor page.

Nothing here talks to the network.  :func:`build_card_configs` returns the
same structure every time it is called with the same arguments.
"""

from __future__ import annotations

from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from instance_monitor.catalog import MetricCatalog
from instance_monitor.models import QuerySpec
from instance_monitor.normalizer import InstantNormalizer, SeriesNormalizer

DEFAULT_DEVICE_LABEL = "device"


class ChartType(str, Enum):
    ONELINE = "one_line"
    MULTILINE = "multi_line"
    MULTILINEDEVICES = "multi_line_devices"


class ValueUnit(str, Enum):
    """How values on a card should be formatted (see ``instance_monitor.units``)."""

    PERCENT = "percent"
    COUNT = "count"
    MEMORY = "memory"
    TRAFFIC = "traffic"
    DISK = "disk"


class Presentation(BaseModel):
    """Rendering hints; the renderer is free to ignore them."""

    model_config = ConfigDict(frozen=True)

    unit: ValueUnit = ValueUnit.COUNT
    chart_type: ChartType | None = Field(default=None, description="None for summary cards")
    span: int | None = Field(default=None, description="Grid columns out of 24")
    height: int | None = None
    decimals: int = 2
    y_alias: str = ""


class CardSpec(BaseModel):
    """One summary card or trend chart."""

    model_config = ConfigDict(frozen=True)

    title: str
    query: QuerySpec
    normalize: Union[InstantNormalizer, SeriesNormalizer]
    presentation: Presentation = Field(default_factory=Presentation)
    device_filterable: bool = Field(
        default=False,
        description="Whether a selected disk device narrows this card's query",
    )

    @property
    def mode(self) -> str:
        """Query mode the card needs: ``current`` for summaries, ``range`` for trends."""
        return "current" if isinstance(self.normalize, InstantNormalizer) else "range"


class CardConfigs(BaseModel):
    model_config = ConfigDict(frozen=True)

    top_cards: tuple[CardSpec, ...] = ()
    trend_cards: tuple[CardSpec, ...] = ()

    @property
    def all_cards(self) -> tuple[CardSpec, ...]:
        return self.top_cards + self.trend_cards


def _query(metric_key: str, domain: str) -> QuerySpec:
    return QuerySpec(metric_key=metric_key, params={"domain": domain})


def top_cards(instance_id: str, domain: str) -> tuple[CardSpec, ...]:
    """Summary cards showing the current CPU, memory and IOPS values."""
    return (
        CardSpec(
            title="CPU Usage(%)",
            query=_query("instanceMonitor.cpu", domain),
            normalize=InstantNormalizer(scale=100.0, precision=2),
            presentation=Presentation(unit=ValueUnit.PERCENT, span=8),
        ),
        CardSpec(
            title="Memory Usage",
            query=_query("instanceMonitor.memUsage", domain),
            normalize=InstantNormalizer(precision=2),
            presentation=Presentation(unit=ValueUnit.PERCENT, span=8),
        ),
        CardSpec(
            title="DISK IOPS",
            query=_query("instanceMonitor.disk_iops", domain),
            normalize=InstantNormalizer(precision=2),
            presentation=Presentation(unit=ValueUnit.COUNT, span=8),
        ),
    )


def trend_cards(
    instance_id: str,
    domain: str,
    device_label: str = DEFAULT_DEVICE_LABEL,
    synthetic_fallback: bool = False,
) -> tuple[CardSpec, ...]:
    """Time-series charts for CPU, memory, network and disk throughput."""
    return (
        CardSpec(
            title="CPU Usage(%)",
            query=_query("instanceMonitor.cpu", domain),
            normalize=SeriesNormalizer(
                rename=("CPU Usage(%)",), scale=100.0, precision=2, fallback=synthetic_fallback
            ),
            presentation=Presentation(
                unit=ValueUnit.PERCENT,
                chart_type=ChartType.ONELINE,
                height=300,
                y_alias="CPU Usage(%)",
            ),
        ),
        CardSpec(
            title="Memory Usage",
            query=_query("instanceMonitor.memory", domain),
            normalize=SeriesNormalizer(rename=("Used", "Free")),
            presentation=Presentation(
                unit=ValueUnit.MEMORY,
                chart_type=ChartType.MULTILINE,
                height=300,
                y_alias="Memory",
            ),
        ),
        CardSpec(
            title="Network Traffic",
            query=_query("instanceMonitor.network", domain),
            normalize=SeriesNormalizer(rename=("receive", "transmit"), device_label=device_label),
            presentation=Presentation(
                unit=ValueUnit.TRAFFIC,
                chart_type=ChartType.MULTILINE,
                height=300,
                decimals=0,
            ),
        ),
        CardSpec(
            title="DISK Read/Write",
            query=_query("instanceMonitor.disk", domain),
            normalize=SeriesNormalizer(rename=("read", "write"), device_label=device_label),
            presentation=Presentation(
                unit=ValueUnit.DISK,
                chart_type=ChartType.MULTILINEDEVICES,
                height=300,
            ),
            device_filterable=True,
        ),
    )


def build_card_configs(
    instance_id: str,
    domain: str,
    catalog: MetricCatalog | None = None,
    *,
    device_label: str = DEFAULT_DEVICE_LABEL,
    synthetic_fallback: bool = False,
) -> CardConfigs:
    """Return the summary and trend cards for one instance.

    When *catalog* is given every card's metric key is resolved up front, so
    a catalog missing a key fails here with ``UnknownMetricKey`` rather than
    halfway through a fetch.
    """
    configs = CardConfigs(
        top_cards=top_cards(instance_id, domain),
        trend_cards=trend_cards(
            instance_id, domain, device_label=device_label, synthetic_fallback=synthetic_fallback
        ),
    )
    if catalog is not None:
        for card in configs.all_cards:
            catalog.resolve(card.query.metric_key)
    return configs
