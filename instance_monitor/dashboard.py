"""Execute card specs and tie the controller, device filter and cards together.

:class:`InstanceMonitor` is what a page (or the CLI) holds for one instance:
it owns a :class:`MonitorController` and a :class:`DeviceFilter` and turns
the card configs into fetched, normalized data.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from pydantic import BaseModel, Field

from instance_monitor.catalog import MetricCatalog
from instance_monitor.charts import CardConfigs, CardSpec, build_card_configs
from instance_monitor.devices import ALL_DEVICES, DeviceFilter, MetricsFetcher
from instance_monitor.lifecycle import MonitorController
from instance_monitor.models import MonitorState, Point, SeriesSet, TimeRange

logger = logging.getLogger(__name__)


class CardResult(BaseModel):
    """The outcome of fetching one card."""

    card: CardSpec
    queries: list[str] = Field(default_factory=list)
    points: list[Point] = Field(default_factory=list, description="Summary card value")
    series: SeriesSet | None = Field(default=None, description="Trend chart data")
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def value(self) -> float | None:
        """Current value of a summary card, or the latest point of a single-line chart."""
        if self.points:
            return self.points[0].y
        if self.series is not None and len(self.series.series) == 1:
            latest = self.series.series[0].latest
            return latest.y if latest else None
        return None


class MonitorSnapshot(BaseModel):
    """Everything the rendering layer needs for one refresh."""

    state: MonitorState
    devices: list[str] = Field(default_factory=list)
    selected_device: str = ALL_DEVICES
    top: list[CardResult] = Field(default_factory=list)
    trends: list[CardResult] = Field(default_factory=list)

    @property
    def failed_cards(self) -> list[CardResult]:
        return [r for r in self.top + self.trends if not r.ok]


async def fetch_card(
    client: MetricsFetcher,
    catalog: MetricCatalog,
    card: CardSpec,
    *,
    device_params: dict[str, str] | None = None,
    range_params: dict[str, str] | None = None,
) -> CardResult:
    """Render the card's templates, run them concurrently and normalize the responses.

    *device_params* only apply to device-filterable cards.  Failures are
    reported on the result instead of raised.
    """
    params = dict(card.query.params)
    if card.device_filterable and device_params:
        params.update(device_params)

    queries: list[str] = []
    try:
        queries = catalog.render(card.query.metric_key, params)
        responses = await asyncio.gather(
            *(client.fetch_metrics(q, card.mode, range_params if card.mode == "range" else None) for q in queries)
        )
    except Exception as exc:
        logger.warning("Card %r failed: %s", card.title, exc)
        return CardResult(card=card, queries=queries, error=str(exc))

    data = card.normalize(list(responses))
    if isinstance(data, SeriesSet):
        return CardResult(card=card, queries=queries, series=data)
    return CardResult(card=card, queries=queries, points=data)


async def fetch_cards(
    client: MetricsFetcher,
    catalog: MetricCatalog,
    cards: Sequence[CardSpec],
    *,
    device_params: dict[str, str] | None = None,
    range_params: dict[str, str] | None = None,
) -> list[CardResult]:
    """Fetch every card concurrently, preserving card order."""
    return list(
        await asyncio.gather(
            *(
                fetch_card(client, catalog, card, device_params=device_params, range_params=range_params)
                for card in cards
            )
        )
    )


class InstanceMonitor:
    """One monitored instance: lifecycle, device filter and card fetching.

    Device discovery runs as a background task started by :meth:`open`
    whenever the resolved domain changes; :meth:`snapshot` fetches the cards
    alongside it and :meth:`wait_devices` waits for it explicitly.
    """

    def __init__(
        self,
        client: MetricsFetcher,
        catalog: MetricCatalog,
        *,
        device_label: str = "device",
        synthetic_fallback: bool = False,
    ) -> None:
        self.client = client
        self.catalog = catalog
        self.device_label = device_label
        self.synthetic_fallback = synthetic_fallback
        self.controller = MonitorController(client, catalog)
        self.device_filter = DeviceFilter()
        self._devices_domain: str | None = None
        self._devices_task: asyncio.Task[set[str]] | None = None

    @property
    def state(self) -> MonitorState:
        return self.controller.state

    async def open(self, instance_id: str | None, detail: object = None) -> MonitorState:
        """Point the monitor at *instance_id* and wait for the lifecycle to settle.

        Devices of the previous domain are dropped as soon as the domain
        changes, including when the new state is an error.
        """
        self.controller.update(instance_id, detail)
        state = await self.controller.wait()
        domain = state.domain if state.is_ready else None
        if domain != self._devices_domain:
            self._start_device_discovery(domain, reset=True)
        return state

    async def refresh_devices(self) -> set[str]:
        """Re-discover devices for the current domain and wait for the result."""
        state = self.state
        self._start_device_discovery(state.domain if state.is_ready else None, reset=False)
        return await self.wait_devices()

    async def wait_devices(self) -> set[str]:
        """Wait for a pending device discovery and return the known devices."""
        if self._devices_task is not None:
            await self._devices_task
        return set(self.device_filter.devices)

    def _start_device_discovery(self, domain: str | None, *, reset: bool) -> None:
        if self._devices_task is not None and not self._devices_task.done():
            self._devices_task.cancel()
        self._devices_task = None
        self._devices_domain = domain
        if reset or not domain:
            self.device_filter.clear()
        if domain:
            self._devices_task = asyncio.get_running_loop().create_task(
                self.device_filter.refresh(self.client, self.catalog, domain, self.device_label)
            )

    def select_device(self, device: str) -> None:
        self.device_filter.select(device)

    def card_configs(self) -> CardConfigs:
        state = self.state
        if not state.is_ready or not state.instance_id or not state.domain:
            raise RuntimeError(f"Monitor is not ready (status: {state.status.value})")
        return build_card_configs(
            state.instance_id,
            state.domain,
            self.catalog,
            device_label=self.device_label,
            synthetic_fallback=self.synthetic_fallback,
        )

    async def snapshot(self, time_range: TimeRange | None = None) -> MonitorSnapshot:
        """Fetch all cards for the current state.

        Card fetches run concurrently with any pending device discovery.
        Returns a snapshot with no card data when the monitor is not ready.
        """
        state = self.state
        if not state.is_ready:
            return MonitorSnapshot(
                state=state,
                devices=sorted(self.device_filter.devices),
                selected_device=self.device_filter.selected,
            )

        configs = self.card_configs()
        device_params = self.device_filter.params(self.device_label)
        range_params = time_range.as_params() if time_range else None
        top, trends, devices = await asyncio.gather(
            fetch_cards(self.client, self.catalog, configs.top_cards, device_params=device_params),
            fetch_cards(
                self.client,
                self.catalog,
                configs.trend_cards,
                device_params=device_params,
                range_params=range_params,
            ),
            self.wait_devices(),
        )
        return MonitorSnapshot(
            state=state,
            devices=sorted(devices),
            selected_device=self.device_filter.selected,
            top=top,
            trends=trends,
        )
