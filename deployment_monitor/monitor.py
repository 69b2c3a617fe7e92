"""
Deployment Monitor - Context Object.

============================================================
PURPOSE
============================================================
The caller-facing monitor. Constructed explicitly with its
collaborators; there is no global instance.

    monitor = DeploymentMonitor(config, source, on_metrics=handle)
    await monitor.initialize()
    await monitor.start_deployment_tracking("web-42", "1.8.0")
    ...
    await monitor.destroy()

SURFACED ERRORS:
- DuplicateDeploymentError
- DeploymentNotFoundError
- BaselineViolationError

Everything else is recovered and logged.

============================================================
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .alerts import AlertEngine
from .archive import ArchivalSink
from .config import MonitoringConfig
from .errors import ConfigurationError
from .history import RingBuffer
from .models import AlertState, Deployment, DeploymentStatus, MetricSnapshot
from .notifications import NotificationDispatcher
from .registry import DeploymentRegistry
from .scheduler import MetricsObserver, MonitorScheduler, TickResult
from .sources import MetricsSource, create_metrics_source
from .validator import BaselineValidator


logger = logging.getLogger(__name__)


class DeploymentMonitor:
    """
    Tracks deployments, evaluates alerts, and validates baselines.
    """

    def __init__(
        self,
        config: Optional[MonitoringConfig] = None,
        source: Optional[MetricsSource] = None,
        on_metrics: Optional[MetricsObserver] = None,
        archive: Optional[ArchivalSink] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        """
        Initialize monitor.

        Args:
            config: Monitoring configuration (defaults if omitted)
            source: Metrics source; built from config.providers if omitted
            on_metrics: Observer called once per tick with the raw snapshot
            archive: Archival sink for deployments leaving the active set
            dispatcher: Notification dispatcher (channels built from config)
        """
        self._explicit_source = source
        self._on_metrics = on_metrics
        self._archive = archive
        self._dispatcher = dispatcher
        self._lock = asyncio.Lock()
        self._initialized = False
        self._destroyed = False

        self._configure(config or MonitoringConfig())

    def _configure(self, config: MonitoringConfig) -> None:
        """Build the pipeline components for a configuration."""
        config.validate()
        self._config = config
        self._source = self._explicit_source or create_metrics_source(config.providers)

        self._registry = DeploymentRegistry(
            source=self._source,
            archive=self._archive,
            history_capacity=config.history_capacity,
            max_health_checks=config.max_health_checks,
        )
        self._engine = AlertEngine(
            dispatcher=self._dispatcher,
            notify_on_resolve=config.notify_on_resolve,
            default_suppression_minutes=config.default_suppression_minutes,
        )
        self._validator = BaselineValidator(config.baseline_tolerance)
        self._scheduler = MonitorScheduler(
            source=self._source,
            registry=self._registry,
            engine=self._engine,
            observer=self._on_metrics,
            interval_seconds=config.poll_interval_seconds,
            lock=self._lock,
        )

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def config(self) -> MonitoringConfig:
        return self._config

    @property
    def registry(self) -> DeploymentRegistry:
        return self._registry

    @property
    def engine(self) -> AlertEngine:
        return self._engine

    @property
    def scheduler(self) -> MonitorScheduler:
        return self._scheduler

    @property
    def dashboards(self) -> List[Dict[str, Any]]:
        """Dashboard definitions, passed through untouched."""
        return self._config.dashboards

    @property
    def is_active(self) -> bool:
        return self._initialized and not self._destroyed

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def initialize(
        self,
        config: Optional[MonitoringConfig] = None,
        start_polling: bool = True,
    ) -> None:
        """
        Register alert definitions and start the poll loop.

        A config passed here replaces the one given at construction;
        this is only allowed before any deployment is tracked.
        A disabled configuration skips initialization entirely.
        """
        if self._initialized:
            return

        if config is not None and config is not self._config:
            if len(self._registry):
                raise ConfigurationError(
                    "Cannot apply a new configuration while deployments are tracked"
                )
            previous_source = self._source
            self._configure(config)
            if previous_source is not self._source:
                await previous_source.close()

        if not self._config.enabled:
            logger.info("Deployment monitoring disabled, skipping initialization")
            return

        logger.info("Initializing Deployment Monitor...")

        for name in self._config.metrics:
            logger.info(f"Tracking custom metric: {name}")

        for definition in self._config.alerts:
            self._engine.register(definition)

        for dashboard in self._config.dashboards:
            logger.info(f"Dashboard registered: {dashboard.get('name', 'unnamed')}")

        if start_polling:
            self._scheduler.start()

        self._initialized = True
        logger.info("Deployment Monitor initialized successfully")

    async def destroy(self) -> None:
        """
        Stop polling and archive every still-active deployment.

        Never raises.
        """
        if self._destroyed:
            return
        self._destroyed = True

        try:
            await self._scheduler.stop()
        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

        async with self._lock:
            archived = await self._registry.archive_all()
            self._engine.clear()

        closables = [self._engine.dispatcher, self._source]
        if self._archive is not None:
            closables.append(self._archive)
        for closable in closables:
            try:
                await closable.close()
            except Exception as e:
                logger.error(f"Error closing {type(closable).__name__}: {e}")

        logger.info(f"Deployment Monitor destroyed ({archived} deployment(s) archived)")

    async def tick(self) -> TickResult:
        """Run one poll cycle immediately."""
        return await self._scheduler.run_tick()

    # --------------------------------------------------------
    # DEPLOYMENTS
    # --------------------------------------------------------

    async def start_deployment_tracking(self, deployment_id: str, version: str) -> Deployment:
        async with self._lock:
            return await self._registry.start(deployment_id, version)

    async def stop_tracking(self, deployment_id: str) -> Deployment:
        async with self._lock:
            return await self._registry.stop(deployment_id)

    async def mark_deployment(self, deployment_id: str, status: DeploymentStatus) -> Deployment:
        """Close a deployment as failed or rolled back."""
        async with self._lock:
            return await self._registry.mark(deployment_id, status)

    def get_deployment_metrics(self, deployment_id: str) -> MetricSnapshot:
        return self._registry.get(deployment_id)

    def get_deployment(self, deployment_id: str) -> Deployment:
        return self._registry.get_deployment(deployment_id)

    def get_all_deployments(self) -> List[Dict[str, Any]]:
        return [d.summary() for d in self._registry.list_active()]

    def get_history(self, deployment_id: str) -> RingBuffer:
        return self._registry.get_history(deployment_id)

    def track_feature_flag_change(self, event: Dict[str, Any]) -> int:
        """Annotate every active deployment with a feature-flag event."""
        logger.info(f"Tracking feature flag change: {event}")
        return self._registry.annotate(event)

    # --------------------------------------------------------
    # BASELINES
    # --------------------------------------------------------

    async def get_baseline_metrics(self) -> MetricSnapshot:
        """Average of tracked baselines, or a fresh snapshot if none exist."""
        baseline = self._registry.average_baseline()
        if baseline is not None:
            return baseline
        return await self._source.fetch_snapshot()

    async def validate_performance_baselines(self, tolerance: Optional[float] = None) -> None:
        """
        Compare a fresh snapshot with the registry-wide baseline.

        Raises BaselineViolationError naming the offending field.
        """
        logger.info("Validating performance baselines...")
        current = await self._source.fetch_snapshot()
        baseline = await self.get_baseline_metrics()
        self._validator.validate(current, baseline, tolerance)

    async def validate_deployment(
        self,
        deployment_id: str,
        tolerance: Optional[float] = None,
    ) -> None:
        """Compare one deployment's current metrics with its own baseline."""
        deployment = self._registry.get_deployment(deployment_id)
        self._validator.validate(deployment.metrics, deployment.baseline, tolerance)

    # --------------------------------------------------------
    # ALERTS
    # --------------------------------------------------------

    def alert_states(self) -> List[AlertState]:
        return self._engine.states()
