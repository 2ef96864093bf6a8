"""Shared test fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from instance_monitor.catalog import MetricCatalog
from instance_monitor.errors import MetricsBackendError


def vector(*results: dict[str, Any]) -> dict[str, Any]:
    """Build an instant-query response body."""
    return {"status": "success", "data": {"resultType": "vector", "result": list(results)}}


def matrix(*results: dict[str, Any]) -> dict[str, Any]:
    """Build a range-query response body."""
    return {"status": "success", "data": {"resultType": "matrix", "result": list(results)}}


class FakeMetricsClient:
    """In-memory stand-in for PrometheusClient.fetch_metrics.

    *routes* maps a query prefix to either a response body or an
    exception instance to raise.  The first matching route wins; unmatched
    queries get an empty vector.
    """

    def __init__(self, routes: dict[str, Any] | None = None) -> None:
        self.routes = dict(routes or {})
        self.calls: list[tuple[str, str, dict[str, str] | None]] = []

    async def fetch_metrics(
        self, query: str, mode: str = "current", params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        self.calls.append((query, mode, params))
        for needle, outcome in self.routes.items():
            if query.startswith(needle):
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        return vector()

    def queries(self) -> list[str]:
        return [q for q, _, _ in self.calls]


@pytest.fixture()
def catalog() -> MetricCatalog:
    return MetricCatalog.default()


@pytest.fixture()
def healthy_client() -> FakeMetricsClient:
    """Prometheus up, instance 'abc' runs as domain 'instance-0000000a' with two disks."""
    return FakeMetricsClient(
        {
            "libvirt_domain_openstack_info": vector(
                {
                    "metric": {"domain": "instance-0000000a", "instance_id": "abc"},
                    "value": [1704067200, "1"],
                }
            ),
            "libvirt_domain_block_stats_read_bytes_total{": vector(
                {"metric": {"domain": "instance-0000000a", "device": "vda"}, "value": [1704067200, "10"]},
                {"metric": {"domain": "instance-0000000a", "device": "vdb"}, "value": [1704067200, "20"]},
            ),
        }
    )


@pytest.fixture()
def down_client() -> FakeMetricsClient:
    return FakeMetricsClient({"": MetricsBackendError("connection refused")})
