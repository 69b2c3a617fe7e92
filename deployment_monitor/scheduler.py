"""
Deployment Monitor - Scheduler.

============================================================
PURPOSE
============================================================
Drives the monitoring pipeline on a fixed interval.

EACH TICK:
1. Fetch a snapshot from the metrics source
2. Update every active deployment and its ring buffer
3. Evaluate alerts (notifications are awaited)
4. Record alert events and a health check on each deployment
5. Hand the raw snapshot to the observer callback, once

GUARANTEES:
- Non-reentrant: the next tick is scheduled only after the
  previous one finishes, even if it overran the interval
- A failed fetch skips the tick; the loop keeps running
- stop() lets an in-flight tick finish before returning

============================================================
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional

from .alerts import AlertEngine, AlertTransition
from .errors import MetricsFetchError
from .models import AlertEvent, HealthCheckResult, HealthStatus, MetricSnapshot, utc_now
from .registry import DeploymentRegistry
from .sources import MetricsSource


logger = logging.getLogger(__name__)


MetricsObserver = Callable[[MetricSnapshot], Any]

DEFAULT_INTERVAL_SECONDS = 30.0


@dataclass
class TickResult:
    """Outcome of one scheduler tick."""

    timestamp: datetime
    snapshot: Optional[MetricSnapshot] = None
    transitions: List[AlertTransition] = field(default_factory=list)
    deployments_updated: int = 0
    skipped: bool = False
    error: Optional[str] = None


class MonitorScheduler:
    """
    Single recurring task that owns all tick-time mutation.

    The lock is shared with the monitor's lifecycle operations so
    that registry writes are serialised on one event loop.
    """

    def __init__(
        self,
        source: MetricsSource,
        registry: DeploymentRegistry,
        engine: AlertEngine,
        observer: Optional[MetricsObserver] = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        lock: Optional[asyncio.Lock] = None,
    ):
        """Initialize scheduler."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._source = source
        self._registry = registry
        self._engine = engine
        self._observer = observer
        self._interval = interval_seconds
        self._lock = lock or asyncio.Lock()

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._tick_count = 0
        self._skipped_count = 0
        self._last_tick: Optional[TickResult] = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def skipped_count(self) -> int:
        return self._skipped_count

    @property
    def last_tick(self) -> Optional[TickResult]:
        return self._last_tick

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    def start(self) -> None:
        """Start the recurring task. No-op if already running."""
        if self.is_running:
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Monitoring started with {self._interval}s interval")

    async def stop(self) -> None:
        """Stop scheduling ticks and wait for an in-flight tick."""
        if self._task is None:
            return

        self._stop_event.set()
        task, self._task = self._task, None

        # asyncio.wait leaves our own cancellation to propagate.
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Scheduler task ended with error: {task.exception()}")

        logger.info("Monitoring stopped")

    async def _wait_for_stop(self, delay: float) -> bool:
        """Wait up to delay seconds; True once stop was requested."""
        if self._stop_event.is_set():
            return True
        if delay <= 0:
            await asyncio.sleep(0)
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        return self._stop_event.is_set()

    async def _run(self) -> None:
        """Main run loop."""
        loop = asyncio.get_running_loop()
        delay = self._interval
        while True:
            if await self._wait_for_stop(delay):
                return

            started = loop.time()
            try:
                await self.run_tick()
            except Exception as e:
                logger.error(f"Monitoring tick error: {e}")

            elapsed = loop.time() - started
            if elapsed > self._interval:
                logger.warning(
                    f"Monitoring tick overran interval: {elapsed:.2f}s > {self._interval}s"
                )
            delay = max(0.0, self._interval - elapsed)

    # --------------------------------------------------------
    # TICK
    # --------------------------------------------------------

    async def run_tick(self) -> TickResult:
        """Run one pipeline pass."""
        async with self._lock:
            result = await self._tick()
        self._tick_count += 1
        self._last_tick = result
        return result

    async def _tick(self) -> TickResult:
        timestamp = utc_now()

        fetch_started = time.perf_counter()
        try:
            snapshot = await self._source.fetch_snapshot()
        except Exception as e:
            reason = e.message if isinstance(e, MetricsFetchError) else str(e)
            logger.error(f"Metrics fetch failed, skipping tick: {reason}")
            self._skipped_count += 1
            self._registry.record_health_check(HealthCheckResult(
                timestamp=timestamp,
                name=self._source.name,
                status=HealthStatus.UNHEALTHY,
                response_time=(time.perf_counter() - fetch_started) * 1000,
                details={"error": reason},
            ))
            return TickResult(timestamp=timestamp, skipped=True, error=reason)
        fetch_ms = (time.perf_counter() - fetch_started) * 1000

        updated = self._registry.update_all(snapshot, timestamp)
        self._registry.record_health_check(HealthCheckResult(
            timestamp=timestamp,
            name=self._source.name,
            status=HealthStatus.HEALTHY,
            response_time=fetch_ms,
        ))

        transitions = await self._engine.evaluate(snapshot)
        for transition in transitions:
            definition = transition.definition
            self._registry.record_alert_event(AlertEvent(
                timestamp=transition.timestamp,
                alert_name=definition.name,
                severity=definition.severity,
                message=(
                    f"Alert triggered: {definition.condition}"
                    if transition.triggered
                    else f"Alert resolved: {definition.condition}"
                ),
                resolved=transition.resolved,
            ))

        await self._notify_observer(snapshot)

        return TickResult(
            timestamp=timestamp,
            snapshot=snapshot,
            transitions=transitions,
            deployments_updated=updated,
        )

    async def _notify_observer(self, snapshot: MetricSnapshot) -> None:
        if self._observer is None:
            return
        try:
            result = self._observer(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Metrics observer error: {e}")
