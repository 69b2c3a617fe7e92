"""
Deployment Monitor - Data Model.

============================================================
PURPOSE
============================================================
Pure data types for deployment tracking.

- MetricSnapshot is immutable once captured
- Deployment records are owned by the DeploymentRegistry
- AlertState is owned by the AlertEngine

Snapshots accept the camelCase keys emitted by browser/JS
telemetry collectors as well as snake_case keys.

============================================================
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _pick(data: Mapping[str, Any], name: str, default: Any = 0.0) -> Any:
    """Read a key in snake_case or camelCase form."""
    if name in data:
        return data[name]
    return data.get(_camel(name), default)


# ============================================================
# ENUMS
# ============================================================

class DeploymentStatus(Enum):
    """Lifecycle status of a tracked deployment."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class AlertSeverity(Enum):
    """Alert severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class HealthStatus(Enum):
    """Result of a single health check."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


# ============================================================
# METRIC BLOCKS
# ============================================================

class _MetricBlock:
    """Shared (de)serialisation for flat numeric blocks."""

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]):
        data = data or {}
        return cls(**{f.name: float(_pick(data, f.name)) for f in fields(cls)})

    def to_dict(self) -> Dict[str, float]:
        return {_camel(f.name): getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class WebVitals(_MetricBlock):
    """Core Web Vitals."""

    fcp: float = 0.0   # First Contentful Paint (ms)
    lcp: float = 0.0   # Largest Contentful Paint (ms)
    fid: float = 0.0   # First Input Delay (ms)
    cls: float = 0.0   # Cumulative Layout Shift
    ttfb: float = 0.0  # Time To First Byte (ms)
    inp: float = 0.0   # Interaction to Next Paint (ms)


@dataclass(frozen=True)
class ResourceUsage(_MetricBlock):
    """Host resource usage."""

    cpu: float = 0.0      # %
    memory: float = 0.0   # MB
    disk: float = 0.0     # %
    network: float = 0.0  # MB/s


@dataclass(frozen=True)
class MobileMetrics(_MetricBlock):
    """Mobile client metrics."""

    battery_usage: float = 0.0  # % per hour
    data_usage: float = 0.0     # MB per session
    load_time: float = 0.0      # ms
    crash_rate: float = 0.0     # %


@dataclass(frozen=True)
class PerformanceMetrics:
    """Performance block of a snapshot."""

    web_vitals: WebVitals = field(default_factory=WebVitals)
    resources: ResourceUsage = field(default_factory=ResourceUsage)
    mobile: MobileMetrics = field(default_factory=MobileMetrics)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "PerformanceMetrics":
        data = data or {}
        return cls(
            web_vitals=WebVitals.from_dict(_pick(data, "web_vitals", None)),
            resources=ResourceUsage.from_dict(_pick(data, "resources", None)),
            mobile=MobileMetrics.from_dict(_pick(data, "mobile", None)),
        )

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {
            "webVitals": self.web_vitals.to_dict(),
            "resources": self.resources.to_dict(),
            "mobile": self.mobile.to_dict(),
        }


@dataclass(frozen=True)
class BusinessMetrics(_MetricBlock):
    """Business block of a snapshot."""

    conversion_rate: float = 0.0
    revenue: float = 0.0
    user_engagement: float = 0.0
    retention: float = 0.0


# ============================================================
# METRIC SNAPSHOT
# ============================================================

@dataclass(frozen=True)
class MetricSnapshot:
    """
    Point-in-time reading from a metrics source.

    Immutable once captured. custom_metrics is exposed as a
    read-only mapping of unique names to numeric values.
    """

    error_rate: float = 0.0     # %
    response_time: float = 0.0  # ms
    throughput: float = 0.0     # req/s
    availability: float = 100.0  # %
    performance: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    business: BusinessMetrics = field(default_factory=BusinessMetrics)
    custom_metrics: Mapping[str, float] = field(default_factory=dict)
    captured_at: datetime = field(default_factory=utc_now, compare=False)

    def __post_init__(self) -> None:
        custom: Dict[str, float] = {}
        for name, value in dict(self.custom_metrics).items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(
                    f"Custom metric {name!r} must be numeric, got {type(value).__name__}"
                )
            custom[str(name)] = float(value)
        object.__setattr__(self, "custom_metrics", MappingProxyType(custom))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MetricSnapshot":
        """Build a snapshot from a camelCase or snake_case mapping."""
        captured_at = _pick(data, "captured_at", None) or _pick(data, "timestamp", None)
        if isinstance(captured_at, str):
            captured_at = datetime.fromisoformat(captured_at)

        kwargs: Dict[str, Any] = {
            "error_rate": float(_pick(data, "error_rate")),
            "response_time": float(_pick(data, "response_time")),
            "throughput": float(_pick(data, "throughput")),
            "availability": float(_pick(data, "availability", 100.0)),
            "performance": PerformanceMetrics.from_dict(_pick(data, "performance", None)),
            "business": BusinessMetrics.from_dict(_pick(data, "business", None)),
            "custom_metrics": dict(_pick(data, "custom_metrics", None) or {}),
        }
        if captured_at is not None:
            kwargs["captured_at"] = captured_at
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "errorRate": self.error_rate,
            "responseTime": self.response_time,
            "throughput": self.throughput,
            "availability": self.availability,
            "performance": self.performance.to_dict(),
            "business": self.business.to_dict(),
            "customMetrics": dict(self.custom_metrics),
            "capturedAt": self.captured_at.isoformat(),
        }

    def bindings(self) -> Dict[str, float]:
        """
        Flat map of every addressable field path to its value.

        Each path is bound in camelCase and snake_case form, e.g.
        ``errorRate`` / ``error_rate`` and
        ``performance.webVitals.lcp`` / ``performance.web_vitals.lcp``.
        Custom metrics are bound under ``custom.<name>``.
        """
        flat: Dict[str, float] = {}

        def bind(path: List[str], value: float) -> None:
            flat[".".join(path)] = value
            flat[".".join(_camel(p) for p in path)] = value

        for name in ("error_rate", "response_time", "throughput", "availability"):
            bind([name], getattr(self, name))

        for block_name in ("web_vitals", "resources", "mobile"):
            block = getattr(self.performance, block_name)
            for f in fields(block):
                bind(["performance", block_name, f.name], getattr(block, f.name))

        for f in fields(self.business):
            bind(["business", f.name], getattr(self.business, f.name))

        for name, value in self.custom_metrics.items():
            for prefix in ("custom", "customMetrics", "custom_metrics"):
                flat[f"{prefix}.{name}"] = value

        return flat


def _mean_block(cls, blocks: Sequence[Any]):
    count = len(blocks)
    return cls(**{
        f.name: sum(getattr(b, f.name) for b in blocks) / count
        for f in fields(cls)
    })


def average_snapshots(snapshots: Sequence[MetricSnapshot]) -> MetricSnapshot:
    """
    Field-wise mean of a non-empty sequence of snapshots.

    Custom metrics are averaged over the names present in every snapshot.
    """
    if not snapshots:
        raise ValueError("Cannot average an empty sequence of snapshots")

    count = len(snapshots)
    shared = set(snapshots[0].custom_metrics)
    for snapshot in snapshots[1:]:
        shared &= set(snapshot.custom_metrics)

    return MetricSnapshot(
        error_rate=sum(s.error_rate for s in snapshots) / count,
        response_time=sum(s.response_time for s in snapshots) / count,
        throughput=sum(s.throughput for s in snapshots) / count,
        availability=sum(s.availability for s in snapshots) / count,
        performance=PerformanceMetrics(
            web_vitals=_mean_block(WebVitals, [s.performance.web_vitals for s in snapshots]),
            resources=_mean_block(ResourceUsage, [s.performance.resources for s in snapshots]),
            mobile=_mean_block(MobileMetrics, [s.performance.mobile for s in snapshots]),
        ),
        business=_mean_block(BusinessMetrics, [s.business for s in snapshots]),
        custom_metrics={
            name: sum(s.custom_metrics[name] for s in snapshots) / count
            for name in sorted(shared)
        },
    )


# ============================================================
# DEPLOYMENT RECORDS
# ============================================================

@dataclass
class AlertEvent:
    """An alert edge recorded against a deployment."""

    timestamp: datetime
    alert_name: str
    severity: AlertSeverity
    message: str
    resolved: bool = False


@dataclass
class HealthCheckResult:
    """Result of a single health check."""

    timestamp: datetime
    name: str
    status: HealthStatus
    response_time: float  # ms
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FeatureFlagEvent:
    """Feature flag change annotated on a deployment."""

    timestamp: datetime
    event: Dict[str, Any]


@dataclass
class Deployment:
    """
    A tracked release instance.

    Created by DeploymentRegistry.start, mutated only by scheduler
    ticks and by stop/destroy.
    """

    deployment_id: str
    version: str
    start_time: datetime
    metrics: MetricSnapshot
    status: DeploymentStatus = DeploymentStatus.ACTIVE
    end_time: Optional[datetime] = None
    baseline: Optional[MetricSnapshot] = None
    alerts: List[AlertEvent] = field(default_factory=list)
    health_checks: List[HealthCheckResult] = field(default_factory=list)
    feature_flag_events: List[FeatureFlagEvent] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status == DeploymentStatus.ACTIVE

    def summary(self) -> Dict[str, Any]:
        """Lightweight view used by listings."""
        return {
            "deploymentId": self.deployment_id,
            "version": self.version,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "status": self.status.value,
            "metrics": self.metrics.to_dict(),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.summary()
        data.update({
            "baseline": self.baseline.to_dict() if self.baseline else None,
            "alerts": [
                {
                    "timestamp": a.timestamp.isoformat(),
                    "alertName": a.alert_name,
                    "severity": a.severity.value,
                    "message": a.message,
                    "resolved": a.resolved,
                }
                for a in self.alerts
            ],
            "healthChecks": [
                {
                    "timestamp": h.timestamp.isoformat(),
                    "name": h.name,
                    "status": h.status.value,
                    "responseTime": h.response_time,
                    "details": h.details,
                }
                for h in self.health_checks
            ],
            "featureFlagEvents": [
                {"timestamp": e.timestamp.isoformat(), "event": e.event}
                for e in self.feature_flag_events
            ],
        })
        return data


@dataclass(frozen=True)
class MetricDataPoint:
    """One entry of a deployment's metric history."""

    timestamp: datetime
    snapshot: MetricSnapshot
    deployment_id: str


# ============================================================
# ALERT STATE
# ============================================================

@dataclass
class AlertState:
    """
    Mutable state for one alert definition.

    trigger_count only increases, and only on an idle -> triggered edge.
    """

    name: str
    enabled: bool = True
    triggered: bool = False
    last_triggered: Optional[datetime] = None
    suppressed_until: Optional[datetime] = None
    trigger_count: int = 0

    def is_suppressed(self, now: datetime) -> bool:
        return self.suppressed_until is not None and now < self.suppressed_until

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "triggered": self.triggered,
            "lastTriggered": self.last_triggered.isoformat() if self.last_triggered else None,
            "suppressedUntil": self.suppressed_until.isoformat() if self.suppressed_until else None,
            "triggerCount": self.trigger_count,
        }
