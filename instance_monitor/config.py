"""Application configuration and settings."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

from instance_monitor.catalog import MetricCatalog
from instance_monitor.charts import DEFAULT_DEVICE_LABEL
from instance_monitor.models import DEFAULT_TIME_RANGE, TimeRange, get_time_range

DEFAULT_PROMETHEUS_URL = "http://localhost:9090"


class Settings(BaseModel):
    """Runtime settings resolved from env vars and CLI flags."""

    # Prometheus
    prometheus_url: str = Field(
        default_factory=lambda: os.environ.get("PROMETHEUS_URL", DEFAULT_PROMETHEUS_URL),
        description="Prometheus URL (e.g. http://localhost:9090).",
    )
    ca_cert: str = Field(
        default="",
        description="Path to a CA certificate bundle for TLS verification.",
    )
    timeout_seconds: float = Field(default=10.0, gt=0)

    # Catalog
    catalog_file: str = Field(
        default_factory=lambda: os.environ.get("INSTANCE_MONITOR_CATALOG", ""),
        description="YAML file overriding the built-in metric catalog. Empty = built-in only.",
    )

    # Charts
    device_label: str = Field(
        default=DEFAULT_DEVICE_LABEL,
        description="Label naming the disk/network device on libvirt metrics.",
    )
    time_range: str = DEFAULT_TIME_RANGE
    synthetic_fallback: bool = Field(
        default=False,
        description="Draw a placeholder CPU series when Prometheus returns no data.",
    )

    # Behaviour
    verbose: bool = False

    @property
    def resolved_time_range(self) -> TimeRange:
        return get_time_range(self.time_range)

    def validate_prometheus_url(self) -> None:
        if not self.prometheus_url:
            raise ValueError(
                "PROMETHEUS_URL is not set. "
                "Export it as an environment variable or pass --prometheus-url."
            )
        if not self.prometheus_url.startswith(("http://", "https://")):
            raise ValueError(f"Prometheus URL must start with http:// or https://, got {self.prometheus_url!r}")

    def load_catalog(self) -> MetricCatalog:
        if self.catalog_file:
            return MetricCatalog.from_yaml(self.catalog_file)
        return MetricCatalog.default()
