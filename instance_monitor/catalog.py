"""Metric catalog: logical metric keys mapped to PromQL query templates.

Templates use ``string.Template`` placeholders.  ``$labels`` expands to the
label-matcher block built from the query params (``{domain="instance-01"}``);
any param name (``$domain``, ``$device``, ``$instance``) expands to its quoted
value.  A template that is a bare metric name gets the matcher block appended
with no space in between, which is the form the Prometheus grammar expects.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from string import Template
from types import MappingProxyType
from typing import Any

import yaml

from instance_monitor.errors import CatalogError, UnknownMetricKey

logger = logging.getLogger(__name__)

_METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")

# Window used inside rate() for counter metrics.
RATE_WINDOW = "5m"

DEFAULT_QUERIES: dict[str, tuple[str, ...]] = {
    "instanceMonitor.cpu": (
        f"rate(libvirt_domain_info_cpu_time_seconds_total$labels[{RATE_WINDOW}])"
        " / libvirt_domain_info_virtual_cpus$labels",
    ),
    "instanceMonitor.memUsage": (
        "libvirt_domain_info_memory_usage_bytes$labels"
        " / libvirt_domain_info_maximum_memory_bytes$labels * 100",
    ),
    "instanceMonitor.memory": (
        "libvirt_domain_info_memory_usage_bytes$labels",
        "libvirt_domain_info_maximum_memory_bytes$labels"
        " - libvirt_domain_info_memory_usage_bytes$labels",
    ),
    "instanceMonitor.network": (
        f"rate(libvirt_domain_interface_stats_receive_bytes_total$labels[{RATE_WINDOW}])",
        f"rate(libvirt_domain_interface_stats_transmit_bytes_total$labels[{RATE_WINDOW}])",
    ),
    "instanceMonitor.disk": (
        f"rate(libvirt_domain_block_stats_read_bytes_total$labels[{RATE_WINDOW}])",
        f"rate(libvirt_domain_block_stats_write_bytes_total$labels[{RATE_WINDOW}])",
    ),
    "instanceMonitor.disk_iops": (
        f"sum(rate(libvirt_domain_block_stats_read_requests_total$labels[{RATE_WINDOW}]))"
        f" + sum(rate(libvirt_domain_block_stats_write_requests_total$labels[{RATE_WINDOW}]))",
    ),
    "instanceMonitor.devices": ("libvirt_domain_block_stats_read_bytes_total",),
    "instanceMonitor.openstackinfo": ("libvirt_domain_openstack_info",),
}


def quote_label_value(value: str) -> str:
    """Escape a label value for use inside double quotes."""
    return str(value).replace("\\", "\\\\").replace('"', '\\"')


def label_matchers(params: Mapping[str, str | None]) -> str:
    """Build ``{k="v",...}`` from *params*, skipping empty values.

    Returns an empty string when nothing is left to filter on.
    """
    parts = [f'{key}="{quote_label_value(value)}"' for key, value in params.items() if value]
    if not parts:
        return ""
    return "{" + ",".join(parts) + "}"


@dataclass(frozen=True)
class QueryTemplate:
    """A single PromQL expression with named placeholders."""

    expr: str

    @property
    def is_bare_metric(self) -> bool:
        return bool(_METRIC_NAME_RE.match(self.expr))

    def render(self, params: Mapping[str, str | None] | None = None) -> str:
        params = params or {}
        matcher = label_matchers(params)
        if self.is_bare_metric:
            return f"{self.expr}{matcher}"
        values = {key: quote_label_value(value) for key, value in params.items() if value}
        return Template(self.expr).safe_substitute(values, labels=matcher)


class MetricCatalog(Mapping[str, tuple[QueryTemplate, ...]]):
    """Read-only mapping from metric key to its query templates.

    Build it once at start-up and hand it to whatever needs to query.
    """

    def __init__(self, queries: Mapping[str, Any]) -> None:
        entries: dict[str, tuple[QueryTemplate, ...]] = {}
        for key, exprs in queries.items():
            if isinstance(exprs, str):
                exprs = (exprs,)
            templates = tuple(QueryTemplate(str(e)) for e in exprs)
            if not templates:
                raise CatalogError(f"Metric key {key!r} has no query templates")
            entries[key] = templates
        self._entries = MappingProxyType(entries)

    def __getitem__(self, key: str) -> tuple[QueryTemplate, ...]:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"MetricCatalog({len(self)} keys)"

    def resolve(self, metric_key: str) -> tuple[QueryTemplate, ...]:
        """Return the templates for *metric_key*.

        Raises ``UnknownMetricKey`` if the key is not in the catalog.
        """
        try:
            return self._entries[metric_key]
        except KeyError:
            raise UnknownMetricKey(metric_key) from None

    def render(self, metric_key: str, params: Mapping[str, str | None] | None = None) -> list[str]:
        """Resolve *metric_key* and render every template with *params*."""
        return [t.render(params) for t in self.resolve(metric_key)]

    # ── Construction ─────────────────────────────────────────────────────

    @classmethod
    def default(cls) -> MetricCatalog:
        return cls(DEFAULT_QUERIES)

    @classmethod
    def from_yaml(cls, path: str | Path, *, extend_default: bool = True) -> MetricCatalog:
        """Load a catalog from a YAML file.

        The file may be flat (``instanceMonitor.cpu: [...]``) or nested the way
        dashboards usually group metrics::

            instanceMonitor:
              cpu:
                url:
                  - rate(...)

        With *extend_default* the file entries override the built-in ones.
        """
        path = Path(path)
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise CatalogError(f"Cannot read metric catalog {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise CatalogError(f"Metric catalog {path} must be a mapping, got {type(raw).__name__}")

        loaded = _flatten(raw)
        logger.info("Loaded %d metric keys from %s", len(loaded), path)
        if extend_default:
            return cls({**DEFAULT_QUERIES, **loaded})
        return cls(loaded)


def _flatten(node: Mapping[str, Any], prefix: str = "") -> dict[str, list[str]]:
    out: dict[str, list[str]] = {}
    for key, value in node.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict) and "url" in value:
            value = value["url"]
        if isinstance(value, str):
            out[dotted] = [value]
        elif isinstance(value, list):
            if not all(isinstance(v, str) for v in value):
                raise CatalogError(f"Templates for {dotted!r} must be strings")
            out[dotted] = list(value)
        elif isinstance(value, dict):
            out.update(_flatten(value, dotted))
        else:
            raise CatalogError(f"Unsupported catalog entry for {dotted!r}: {value!r}")
    return out
