"""Async Prometheus HTTP API client used as the metrics fetch capability.

Everything outside this module goes through
:meth:`PrometheusClient.fetch_metrics`.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

import httpx

from instance_monitor.errors import MetricsBackendError
from instance_monitor.models import DEFAULT_TIME_RANGE, TimeRange, get_time_range

logger = logging.getLogger(__name__)

# Timeout for Prometheus API calls.
_TIMEOUT = httpx.Timeout(10.0, connect=5.0)

QueryMode = Literal["current", "range"]


class PrometheusClient:
    """Lightweight async Prometheus HTTP API v1 client.

    Parameters
    ----------
    base_url : str
        Base URL of the Prometheus server (e.g. ``http://localhost:9090``).
    ca_cert : str
        Optional CA bundle for TLS verification.
    timeout : float | None
        Overall request timeout in seconds.  Defaults to 10s (5s connect).
    time_range : TimeRange | None
        Window used for ``range`` queries that do not carry explicit bounds.
    """

    def __init__(
        self,
        base_url: str,
        *,
        ca_cert: str = "",
        timeout: float | None = None,
        time_range: TimeRange | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.time_range = time_range or get_time_range(DEFAULT_TIME_RANGE)
        verify: bool | str = ca_cert if ca_cert else True
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=5.0) if timeout else _TIMEOUT,
            verify=verify,
            headers={"Accept": "application/json"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "PrometheusClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # ── Raw helpers ───────────────────────────────────────────────────────

    async def _get(self, path: str, params: dict[str, str]) -> dict[str, Any]:
        """Execute a GET request and return the parsed JSON body.

        Raises ``MetricsBackendError`` on transport errors, non-2xx responses
        and bodies whose ``status`` is not ``success``.
        """
        query = params.get("query", "")
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as exc:
            raise MetricsBackendError(
                f"Prometheus returned {exc.response.status_code} for {path}: {exc.response.text[:300]}",
                query=query,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise MetricsBackendError(f"Prometheus request failed: {exc}", query=query) from exc
        except ValueError as exc:
            raise MetricsBackendError(f"Prometheus returned invalid JSON: {exc}", query=query) from exc

        if not isinstance(body, dict) or body.get("status") != "success":
            error = body.get("error", "unknown error") if isinstance(body, dict) else "unexpected body"
            raise MetricsBackendError(f"Prometheus query failed: {error}", query=query)
        return body

    # ── Queries ───────────────────────────────────────────────────────────

    async def query(self, promql: str) -> dict[str, Any]:
        """Execute an instant PromQL query and return the full response."""
        return await self._get("/api/v1/query", {"query": promql})

    async def query_range(
        self,
        promql: str,
        start: str,
        end: str,
        step: str,
    ) -> dict[str, Any]:
        """Execute a range PromQL query and return the full response."""
        return await self._get(
            "/api/v1/query_range",
            {"query": promql, "start": start, "end": end, "step": step},
        )

    async def fetch_metrics(
        self,
        query: str,
        mode: QueryMode = "current",
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Run *query* as an instant (``current``) or ``range`` query.

        For ``range`` queries the ``start``/``end``/``step`` entries of *params*
        win over the client's default time range.
        """
        logger.debug("fetch_metrics mode=%s query=%s", mode, query)
        if mode == "current":
            return await self.query(query)
        if mode == "range":
            bounds = {**self.time_range.as_params(), **(params or {})}
            return await self.query_range(query, bounds["start"], bounds["end"], bounds["step"])
        raise ValueError(f"Unsupported query mode: {mode!r}")
