"""
Deployment Monitor Package.

============================================================
PURPOSE
============================================================
Post-deployment health monitoring.

WHAT IT DOES:
1. Tracks deployments and captures a baseline at start
2. Polls a metrics source on a fixed interval
3. Keeps a bounded metric history per deployment
4. Evaluates alert conditions and notifies channels on edges
5. Validates live metrics against baselines on demand
6. Archives deployments when they leave the active set

WHAT IT DOES NOT DO:
- Execute condition text as code
- Roll back deployments
- Render dashboards

============================================================
"""

from .alerts import (
    AlertEngine,
    AlertTransition,
    Condition,
    parse_condition,
)
from .archive import (
    ArchivalSink,
    InMemoryArchivalSink,
    SqlArchivalSink,
)
from .config import (
    AlertDefinition,
    ChannelConfig,
    MonitoringConfig,
    ProviderConfig,
)
from .errors import (
    AlertNotFoundError,
    ArchivalError,
    BaselineViolationError,
    ChannelDeliveryError,
    ConditionEvaluationError,
    ConditionParseError,
    ConfigurationError,
    DeploymentMonitorError,
    DeploymentNotFoundError,
    DuplicateAlertError,
    DuplicateDeploymentError,
    MetricsFetchError,
)
from .history import HistoryStore, RingBuffer
from .models import (
    AlertEvent,
    AlertSeverity,
    AlertState,
    BusinessMetrics,
    Deployment,
    DeploymentStatus,
    FeatureFlagEvent,
    HealthCheckResult,
    HealthStatus,
    MetricDataPoint,
    MetricSnapshot,
    MobileMetrics,
    PerformanceMetrics,
    ResourceUsage,
    WebVitals,
    average_snapshots,
)
from .monitor import DeploymentMonitor
from .notifications import (
    NotificationChannel,
    NotificationDispatcher,
    format_alert_message,
)
from .registry import DeploymentRegistry
from .scheduler import MonitorScheduler, TickResult
from .sources import (
    HttpMetricsSource,
    MetricsSource,
    ReplayMetricsSource,
    create_metrics_source,
)
from .validator import BaselineValidator, BaselineViolation


__all__ = [
    # Monitor
    "DeploymentMonitor",

    # Models
    "AlertEvent",
    "AlertSeverity",
    "AlertState",
    "BusinessMetrics",
    "Deployment",
    "DeploymentStatus",
    "FeatureFlagEvent",
    "HealthCheckResult",
    "HealthStatus",
    "MetricDataPoint",
    "MetricSnapshot",
    "MobileMetrics",
    "PerformanceMetrics",
    "ResourceUsage",
    "WebVitals",
    "average_snapshots",

    # Configuration
    "AlertDefinition",
    "ChannelConfig",
    "MonitoringConfig",
    "ProviderConfig",

    # Errors
    "AlertNotFoundError",
    "ArchivalError",
    "BaselineViolationError",
    "ChannelDeliveryError",
    "ConditionEvaluationError",
    "ConditionParseError",
    "ConfigurationError",
    "DeploymentMonitorError",
    "DeploymentNotFoundError",
    "DuplicateAlertError",
    "DuplicateDeploymentError",
    "MetricsFetchError",

    # Components
    "AlertEngine",
    "AlertTransition",
    "ArchivalSink",
    "BaselineValidator",
    "BaselineViolation",
    "Condition",
    "DeploymentRegistry",
    "HistoryStore",
    "HttpMetricsSource",
    "InMemoryArchivalSink",
    "MetricsSource",
    "MonitorScheduler",
    "NotificationChannel",
    "NotificationDispatcher",
    "ReplayMetricsSource",
    "RingBuffer",
    "SqlArchivalSink",
    "TickResult",
    "create_metrics_source",
    "format_alert_message",
    "parse_condition",
]
