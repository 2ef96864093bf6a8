"""Disk device discovery and the device filter fed by it."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

from instance_monitor.catalog import MetricCatalog
from instance_monitor.errors import DeviceDiscoveryFailure
from instance_monitor.normalizer import iter_samples

logger = logging.getLogger(__name__)

DEVICES_METRIC_KEY = "instanceMonitor.devices"
ALL_DEVICES = "all"


class MetricsFetcher(Protocol):
    async def fetch_metrics(
        self, query: str, mode: str = "current", params: dict[str, str] | None = None
    ) -> dict[str, Any]: ...


async def discover_devices(
    client: MetricsFetcher,
    catalog: MetricCatalog,
    domain: str,
    label: str = "device",
) -> set[str]:
    """Return the distinct disk device labels reported for *domain*.

    Device filtering is optional, so a failed lookup is logged and an empty
    set is returned instead of raising.
    """
    if not domain:
        return set()
    try:
        return await _discover(client, catalog, domain, label)
    except DeviceDiscoveryFailure as exc:
        logger.warning("Failed to fetch devices for domain %r: %s", domain, exc)
        return set()


async def _discover(
    client: MetricsFetcher,
    catalog: MetricCatalog,
    domain: str,
    label: str,
) -> set[str]:
    devices: set[str] = set()
    try:
        for query in catalog.render(DEVICES_METRIC_KEY, {"domain": domain}):
            response = await client.fetch_metrics(query, "current")
            for _, sample in iter_samples([response]):
                device = sample.metric.get(label)
                if device:
                    devices.add(device)
    except Exception as exc:
        raise DeviceDiscoveryFailure(str(exc)) from exc
    logger.debug("Discovered devices %s for domain %r", sorted(devices), domain)
    return devices


class DeviceFilter:
    """Holds the discovered devices of one view and the user's selection.

    ``selected`` is ``"all"`` until :meth:`select` picks a device.  The filter
    is hidden (``visible`` is False) while no devices are known.
    """

    def __init__(self, on_change: Callable[[str], None] | None = None) -> None:
        self.devices: set[str] = set()
        self.selected: str = ALL_DEVICES
        self.loading = False
        self._on_change = on_change

    @property
    def visible(self) -> bool:
        return bool(self.devices)

    @property
    def options(self) -> list[str]:
        return [ALL_DEVICES, *sorted(self.devices)]

    async def refresh(
        self,
        client: MetricsFetcher,
        catalog: MetricCatalog,
        domain: str,
        label: str = "device",
    ) -> set[str]:
        """Re-discover devices for *domain*; keeps the selection only if it still exists."""
        self.loading = True
        try:
            self.devices = await discover_devices(client, catalog, domain, label)
        finally:
            self.loading = False
        if self.selected != ALL_DEVICES and self.selected not in self.devices:
            self.select(ALL_DEVICES)
        return self.devices

    def clear(self) -> None:
        """Forget the devices of the previous domain and go back to ``"all"``."""
        self.devices = set()
        self.loading = False
        if self.selected != ALL_DEVICES:
            self.select(ALL_DEVICES)

    def select(self, device: str) -> None:
        """Device-change callback for the rendering layer."""
        if device != ALL_DEVICES and device not in self.devices:
            raise ValueError(f"Unknown device {device!r}; known: {sorted(self.devices)}")
        self.selected = device
        if self._on_change is not None:
            self._on_change(device)

    def params(self, label: str = "device") -> dict[str, str]:
        """Label filters to add to device-filterable queries."""
        if self.selected == ALL_DEVICES:
            return {}
        return {label: self.selected}
