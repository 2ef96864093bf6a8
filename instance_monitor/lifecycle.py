"""Monitor lifecycle controller.

Resolves which libvirt domain backs an instance and whether Prometheus can be
queried for it, and exposes the result as a :class:`MonitorState`:

1. no instance id                 -> error, terminal until the id changes
2. availability probe fails       -> error, ``backend_available`` False
3. domain lookup fails or is empty -> fall back to the instance id, advisory set
4. otherwise                      -> ready with the resolved domain, or the
                                     instance id when the result has no
                                     ``domain`` label

Each run is an asyncio task.  Starting a new run cancels the previous one and
bumps a generation counter, so a slow superseded run can never overwrite the
state of a newer one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from instance_monitor.catalog import MetricCatalog
from instance_monitor.devices import MetricsFetcher
from instance_monitor.errors import (
    BackendUnavailable,
    DomainResolutionFailure,
    MissingInstanceId,
)
from instance_monitor.models import MonitorState, MonitorStatus
from instance_monitor.normalizer import iter_samples

logger = logging.getLogger(__name__)

PROBE_METRIC_KEY = "instanceMonitor.cpu"
DOMAIN_METRIC_KEY = "instanceMonitor.openstackinfo"

MSG_INSTANCE_ID_REQUIRED = "Instance ID is required for monitoring"
MSG_BACKEND_UNAVAILABLE = "Prometheus service is unavailable or instance metrics not found"
MSG_DOMAIN_FALLBACK = "Failed to get domain from metrics"

StateListener = Callable[[MonitorState], None]


class MonitorController:
    """Owns the :class:`MonitorState` of one monitored instance.

    Parameters
    ----------
    client
        Anything with an async ``fetch_metrics(query, mode, params)``.
    catalog : MetricCatalog
        Catalog providing the probe and domain-lookup queries.
    """

    def __init__(self, client: MetricsFetcher, catalog: MetricCatalog) -> None:
        self._client = client
        self._catalog = catalog
        self._state = MonitorState()
        self._listeners: list[StateListener] = []
        self._task: asyncio.Task[MonitorState] | None = None
        self._generation = 0
        self._instance_id: str | None = None
        self._detail: Any = None
        self._started = False

    @property
    def state(self) -> MonitorState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* on every state change.  Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ── Entry points ─────────────────────────────────────────────────────

    async def initialize(self, instance_id: str | None) -> MonitorState:
        """Run the full sequence now and return the resulting state."""
        self._generation += 1
        self._instance_id = instance_id
        return await self._run(instance_id, self._generation)

    def reinitialize(self, instance_id: str | None, detail: Any = None) -> asyncio.Task[MonitorState]:
        """Schedule a fresh run on the next loop turn, cancelling any pending one.

        Must be called from inside a running event loop.
        """
        self._generation += 1
        generation = self._generation
        if self._task is not None and not self._task.done():
            logger.debug("Cancelling superseded monitor run for %r", self._instance_id)
            self._task.cancel()
        self._instance_id = instance_id
        self._detail = detail
        self._started = True
        self._task = asyncio.get_running_loop().create_task(self._run(instance_id, generation))
        return self._task

    def update(self, instance_id: str | None, detail: Any = None) -> asyncio.Task[MonitorState] | None:
        """Re-run only if the instance id or the detail object changed.

        The detail object is compared by identity: a new object means the
        owner refreshed the instance and the monitor should follow.
        """
        if self._started and instance_id == self._instance_id and detail is self._detail:
            return None
        return self.reinitialize(instance_id, detail)

    async def wait(self) -> MonitorState:
        """Wait until the latest scheduled run has settled and return the state."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self._state

    # ── Sequence ─────────────────────────────────────────────────────────

    async def _run(self, instance_id: str | None, generation: int) -> MonitorState:
        self._commit(MonitorState(status=MonitorStatus.LOADING, instance_id=instance_id), generation)
        try:
            if not instance_id:
                raise MissingInstanceId(MSG_INSTANCE_ID_REQUIRED)
            await self._probe(instance_id)
        except MissingInstanceId as exc:
            return self._commit(
                MonitorState(status=MonitorStatus.ERROR, error_message=str(exc)),
                generation,
            )
        except BackendUnavailable as exc:
            logger.warning("Metrics backend unavailable for instance %r: %s", instance_id, exc.__cause__)
            return self._commit(
                MonitorState(
                    status=MonitorStatus.ERROR,
                    instance_id=instance_id,
                    error_message=str(exc),
                    backend_available=False,
                ),
                generation,
            )

        advisory = None
        try:
            domain = await self._resolve_domain(instance_id)
        except DomainResolutionFailure as exc:
            logger.warning("Using instance id as domain for %r: %s", instance_id, exc)
            domain = instance_id
            advisory = MSG_DOMAIN_FALLBACK

        return self._commit(
            MonitorState(
                status=MonitorStatus.READY,
                instance_id=instance_id,
                domain=domain,
                advisory=advisory,
            ),
            generation,
        )

    async def _probe(self, instance_id: str) -> None:
        try:
            query = self._catalog.render(PROBE_METRIC_KEY, {"instance": instance_id})[0]
            await self._client.fetch_metrics(query, "current")
        except Exception as exc:
            raise BackendUnavailable(MSG_BACKEND_UNAVAILABLE) from exc

    async def _resolve_domain(self, instance_id: str) -> str:
        try:
            query = self._catalog.render(DOMAIN_METRIC_KEY, {"instance_id": instance_id})[0]
            response = await self._client.fetch_metrics(query, "current")
        except Exception as exc:
            raise DomainResolutionFailure(f"domain lookup failed: {exc}") from exc

        for _, sample in iter_samples([response]):
            domain = sample.metric.get("domain")
            if domain:
                logger.info("Instance %r runs as libvirt domain %r", instance_id, domain)
                return domain
            logger.info("Lookup for instance %r has no domain label, using the instance id", instance_id)
            return instance_id
        raise DomainResolutionFailure(f"no domain found for instance {instance_id!r}")

    def _commit(self, state: MonitorState, generation: int) -> MonitorState:
        if generation != self._generation:
            logger.debug("Discarding stale monitor state %s for %r", state.status.value, state.instance_id)
            return state
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Monitor state listener failed")
        return state

