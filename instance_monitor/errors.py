"""Exception types raised inside the monitoring core.

Only :class:`MissingInstanceId` and :class:`BackendUnavailable` end a
monitoring session.  Everything else is recovered where it happens.
"""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for all instance-monitor errors."""


class MissingInstanceId(MonitorError):
    """No instance identifier was supplied to the controller."""


class BackendUnavailable(MonitorError):
    """The metrics backend could not be reached for this instance."""


class DomainResolutionFailure(MonitorError):
    """The libvirt domain of an instance could not be looked up."""


class DeviceDiscoveryFailure(MonitorError):
    """Disk devices of a domain could not be listed."""


class MalformedSample(MonitorError):
    """A result entry has neither a usable ``value`` nor ``values``."""


class CatalogError(MonitorError):
    """A metric catalog file is unreadable or has the wrong shape."""


class UnknownMetricKey(MonitorError, KeyError):
    """The metric key is not present in the catalog."""

    def __str__(self) -> str:
        return f"Unknown metric key: {self.args[0]!r}" if self.args else "Unknown metric key"


class MetricsBackendError(MonitorError, RuntimeError):
    """A query against the metrics backend failed."""

    def __init__(self, message: str, *, query: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.query = query
        self.status_code = status_code
