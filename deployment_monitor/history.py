"""
Deployment Monitor - Metric History.

============================================================
PURPOSE
============================================================
Bounded, append-only time series per deployment.

- Append is O(1); the oldest point is evicted once full
- No removal API: eviction is the only removal path
- Used for diagnostics and trend queries only; the alert
  engine never reads history

============================================================
"""

import logging
from collections import deque
from datetime import datetime
from typing import Deque, Dict, Iterator, List, Optional

from .models import MetricDataPoint, MetricSnapshot


logger = logging.getLogger(__name__)


DEFAULT_CAPACITY = 1000


# ============================================================
# RING BUFFER
# ============================================================

class RingBuffer:
    """
    Fixed-capacity FIFO of metric data points.

    Length never exceeds capacity.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        """Initialize buffer."""
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._points: Deque[MetricDataPoint] = deque(maxlen=capacity)
        self._evicted = 0

    @property
    def capacity(self) -> int:
        return self._points.maxlen

    @property
    def evicted(self) -> int:
        """Number of points dropped since creation."""
        return self._evicted

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[MetricDataPoint]:
        return iter(list(self._points))

    def append(self, point: MetricDataPoint) -> None:
        """Append a point, evicting the oldest when full."""
        if len(self._points) == self._points.maxlen:
            self._evicted += 1
        self._points.append(point)

    def latest(self) -> Optional[MetricDataPoint]:
        return self._points[-1] if self._points else None

    def points(self) -> List[MetricDataPoint]:
        """All points in chronological order."""
        return list(self._points)

    def since(self, since: datetime) -> List[MetricDataPoint]:
        """Points at or after a timestamp."""
        return [p for p in self._points if p.timestamp >= since]

    def series(self, path: str) -> List[float]:
        """
        Values of one field over time.

        path is any key of MetricSnapshot.bindings(); points missing
        the field (e.g. an absent custom metric) are skipped.
        """
        values = []
        for point in self._points:
            value = point.snapshot.bindings().get(path)
            if value is not None:
                values.append(value)
        return values

    def average(self, path: str) -> Optional[float]:
        values = self.series(path)
        if not values:
            return None
        return sum(values) / len(values)


# ============================================================
# HISTORY STORE
# ============================================================

class HistoryStore:
    """
    One ring buffer per deployment id.

    Buffers are created on first append and dropped on discard.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        """Initialize store."""
        self._capacity = capacity
        self._buffers: Dict[str, RingBuffer] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(
        self,
        deployment_id: str,
        snapshot: MetricSnapshot,
        timestamp: datetime,
    ) -> MetricDataPoint:
        """Store a data point for a deployment."""
        buffer = self._buffers.get(deployment_id)
        if buffer is None:
            buffer = RingBuffer(self._capacity)
            self._buffers[deployment_id] = buffer

        point = MetricDataPoint(
            timestamp=timestamp,
            snapshot=snapshot,
            deployment_id=deployment_id,
        )
        buffer.append(point)
        return point

    def get(self, deployment_id: str) -> Optional[RingBuffer]:
        return self._buffers.get(deployment_id)

    def discard(self, deployment_id: str) -> None:
        self._buffers.pop(deployment_id, None)

    def clear(self) -> None:
        self._buffers.clear()

    def __contains__(self, deployment_id: str) -> bool:
        return deployment_id in self._buffers
