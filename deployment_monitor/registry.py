"""
Deployment Monitor - Deployment Registry.

============================================================
PURPOSE
============================================================
Keyed store of tracked deployments and their lifecycle.

- start: create an active deployment and capture its baseline
- get / get_deployment: read the current state
- stop / mark: leave the active set through the archival sink
- update_all: apply a tick's snapshot to every deployment

ORDERING:
Deployments iterate in insertion order (dict order). The order
is not preserved across restarts.

============================================================
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .archive import ArchivalSink, InMemoryArchivalSink
from .errors import DeploymentNotFoundError, DuplicateDeploymentError
from .history import DEFAULT_CAPACITY, HistoryStore, RingBuffer
from .models import (
    AlertEvent,
    Deployment,
    DeploymentStatus,
    FeatureFlagEvent,
    HealthCheckResult,
    MetricSnapshot,
    average_snapshots,
    utc_now,
)
from .sources import MetricsSource


logger = logging.getLogger(__name__)


class DeploymentRegistry:
    """
    Owns every active Deployment record.

    Only the scheduler tick and the lifecycle methods mutate it.
    """

    def __init__(
        self,
        source: MetricsSource,
        archive: Optional[ArchivalSink] = None,
        history_capacity: int = DEFAULT_CAPACITY,
        max_health_checks: int = 100,
    ):
        """Initialize registry."""
        self._source = source
        self._archive = archive or InMemoryArchivalSink()
        self._history = HistoryStore(history_capacity)
        self._max_health_checks = max_health_checks
        self._deployments: Dict[str, Deployment] = {}

    @property
    def history(self) -> HistoryStore:
        return self._history

    @property
    def archive(self) -> ArchivalSink:
        return self._archive

    def __len__(self) -> int:
        return len(self._deployments)

    def __contains__(self, deployment_id: str) -> bool:
        return deployment_id in self._deployments

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def start(self, deployment_id: str, version: str) -> Deployment:
        """
        Track a new deployment.

        The baseline is read from the metrics source before the
        deployment is registered; a failed read leaves nothing behind.
        """
        if deployment_id in self._deployments:
            raise DuplicateDeploymentError(deployment_id)

        logger.info(f"Starting deployment tracking for {deployment_id}")
        baseline = await self._source.fetch_snapshot()

        # Re-check: another task may have registered the id during the fetch.
        if deployment_id in self._deployments:
            raise DuplicateDeploymentError(deployment_id)

        deployment = Deployment(
            deployment_id=deployment_id,
            version=version,
            start_time=utc_now(),
            metrics=baseline,
            baseline=baseline,
        )
        self._deployments[deployment_id] = deployment
        logger.info(f"Captured baseline metrics for {deployment_id}")
        return deployment

    def get(self, deployment_id: str) -> MetricSnapshot:
        """Current snapshot of an active deployment."""
        return self.get_deployment(deployment_id).metrics

    def get_deployment(self, deployment_id: str) -> Deployment:
        try:
            return self._deployments[deployment_id]
        except KeyError:
            raise DeploymentNotFoundError(deployment_id)

    def list_active(self) -> List[Deployment]:
        """Active deployments in insertion order."""
        return list(self._deployments.values())

    async def stop(self, deployment_id: str) -> Deployment:
        """Complete a deployment, archive it, and remove it."""
        return await self.mark(deployment_id, DeploymentStatus.COMPLETED)

    async def mark(self, deployment_id: str, status: DeploymentStatus) -> Deployment:
        """
        Close a deployment with a terminal status.

        The record is archived exactly once, then removed from the
        active set together with its history. If archival fails the
        deployment stays active and the error propagates.
        """
        if status == DeploymentStatus.ACTIVE:
            raise ValueError("Cannot mark a deployment as active")

        deployment = self.get_deployment(deployment_id)
        deployment.status = status
        deployment.end_time = utc_now()

        try:
            await self._archive.archive(deployment)
        except Exception:
            deployment.status = DeploymentStatus.ACTIVE
            deployment.end_time = None
            raise

        del self._deployments[deployment_id]
        self._history.discard(deployment_id)
        logger.info(f"Stopped tracking deployment: {deployment_id} ({status.value})")
        return deployment

    async def archive_all(self) -> int:
        """
        Archive every remaining deployment and clear the active set.

        Never raises; failures are logged per deployment.
        Returns the number archived successfully.
        """
        archived = 0
        now = utc_now()
        for deployment_id, deployment in list(self._deployments.items()):
            deployment.end_time = now
            try:
                await self._archive.archive(deployment)
                archived += 1
            except Exception as e:
                logger.error(f"Failed to archive deployment {deployment_id}: {e}")

        self._deployments.clear()
        self._history.clear()
        return archived

    # --------------------------------------------------------
    # TICK UPDATES
    # --------------------------------------------------------

    def update_all(self, snapshot: MetricSnapshot, timestamp: datetime) -> int:
        """Apply a snapshot to every active deployment."""
        for deployment_id, deployment in self._deployments.items():
            deployment.metrics = snapshot
            self._history.append(deployment_id, snapshot, timestamp)
        return len(self._deployments)

    def record_alert_event(self, event: AlertEvent) -> None:
        for deployment in self._deployments.values():
            deployment.alerts.append(event)

    def record_health_check(self, result: HealthCheckResult) -> None:
        for deployment in self._deployments.values():
            deployment.health_checks.append(result)
            if len(deployment.health_checks) > self._max_health_checks:
                del deployment.health_checks[:-self._max_health_checks]

    def annotate(self, event: Dict[str, Any], timestamp: Optional[datetime] = None) -> int:
        """Attach a feature-flag event to every active deployment."""
        flag_event = FeatureFlagEvent(timestamp=timestamp or utc_now(), event=dict(event))
        for deployment in self._deployments.values():
            deployment.feature_flag_events.append(flag_event)
        return len(self._deployments)

    # --------------------------------------------------------
    # QUERIES
    # --------------------------------------------------------

    def get_history(self, deployment_id: str) -> RingBuffer:
        """Metric history of an active deployment."""
        self.get_deployment(deployment_id)
        buffer = self._history.get(deployment_id)
        return buffer if buffer is not None else RingBuffer(self._history.capacity)

    def average_baseline(self) -> Optional[MetricSnapshot]:
        """Mean of all captured baselines, or None if there are none."""
        baselines = [d.baseline for d in self._deployments.values() if d.baseline is not None]
        if not baselines:
            return None
        return average_snapshots(baselines)
