"""
Deployment Monitor - Error Taxonomy.

============================================================
PURPOSE
============================================================
Exception hierarchy for the deployment monitor.

SURFACED TO CALLERS:
- DuplicateDeploymentError
- DeploymentNotFoundError
- BaselineViolationError
- ConfigurationError / DuplicateAlertError (startup only)

RECOVERED LOCALLY (logged, never raised out of a tick):
- ConditionEvaluationError
- ChannelDeliveryError
- MetricsFetchError
- ArchivalError

============================================================
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class DeploymentMonitorError(Exception):
    """Base exception for all deployment monitor errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================================
# CALLER-FACING ERRORS
# ============================================================

class DuplicateDeploymentError(DeploymentMonitorError):
    """Deployment id is already tracked."""

    def __init__(self, deployment_id: str) -> None:
        super().__init__(
            f"Deployment already tracked: {deployment_id}",
            {"deployment_id": deployment_id},
        )
        self.deployment_id = deployment_id


class DeploymentNotFoundError(DeploymentMonitorError):
    """Deployment id is not in the active set."""

    def __init__(self, deployment_id: str) -> None:
        super().__init__(
            f"Deployment tracking not found: {deployment_id}",
            {"deployment_id": deployment_id},
        )
        self.deployment_id = deployment_id


class BaselineViolationError(DeploymentMonitorError):
    """Live metric is outside the tolerance band around its baseline."""

    def __init__(
        self,
        field: str,
        measured: float,
        threshold: float,
        comparison: str = ">",
    ) -> None:
        super().__init__(
            f"{field} baseline validation failed: "
            f"{measured} {comparison} {threshold}",
            {
                "field": field,
                "measured": measured,
                "threshold": threshold,
                "comparison": comparison,
            },
        )
        self.field = field
        self.measured = measured
        self.threshold = threshold
        self.comparison = comparison


class ConfigurationError(DeploymentMonitorError):
    """Invalid monitor configuration."""
    pass


class DuplicateAlertError(ConfigurationError):
    """Alert definition name is already registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Alert already registered: {name}", {"alert": name})
        self.name = name


class AlertNotFoundError(DeploymentMonitorError):
    """Alert name is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Alert not found: {name}", {"alert": name})
        self.name = name


# ============================================================
# LOCALLY RECOVERED ERRORS
# ============================================================

class ConditionEvaluationError(DeploymentMonitorError):
    """Alert condition could not be evaluated."""

    def __init__(
        self,
        message: str,
        condition: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.condition = condition


class ConditionParseError(ConditionEvaluationError):
    """Alert condition text is malformed."""

    def __init__(
        self,
        message: str,
        condition: Optional[str] = None,
        position: Optional[int] = None,
    ) -> None:
        super().__init__(message, condition, {"position": position})
        self.position = position


class ChannelDeliveryError(DeploymentMonitorError):
    """A notification channel failed to deliver a message."""

    def __init__(
        self,
        channel: str,
        reason: str,
    ) -> None:
        super().__init__(
            f"Delivery failed on channel {channel}: {reason}",
            {"channel": channel},
        )
        self.channel = channel
        self.reason = reason


class MetricsFetchError(DeploymentMonitorError):
    """Metrics source read failed."""

    def __init__(
        self,
        message: str,
        source: str = "",
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, {"source": source, "status_code": status_code})
        self.source = source
        self.status_code = status_code


class ArchivalError(DeploymentMonitorError):
    """Archival sink failed to persist a deployment."""
    pass
