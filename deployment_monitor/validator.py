"""
Deployment Monitor - Baseline Validation.

============================================================
PURPOSE
============================================================
Point-in-time comparison of live metrics against a baseline.

RULES (tolerance t, default 0.2):
- errorRate    > baseline.errorRate    * (1 + t)  -> violation
- responseTime > baseline.responseTime * (1 + t)  -> violation
- availability < baseline.availability * (1 - t)  -> violation

Values on the threshold (within float rounding) pass. Invoked on demand,
never from the poll loop.

============================================================
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

from .errors import BaselineViolationError
from .models import MetricSnapshot


logger = logging.getLogger(__name__)


DEFAULT_TOLERANCE = 0.2


@dataclass(frozen=True)
class BaselineViolation:
    """One metric outside its tolerance band."""

    field: str
    measured: float
    threshold: float
    comparison: str  # ">" or "<"

    def to_error(self) -> BaselineViolationError:
        return BaselineViolationError(
            self.field,
            self.measured,
            self.threshold,
            self.comparison,
        )


class BaselineValidator:
    """Compares a current snapshot with a baseline snapshot."""

    def __init__(self, tolerance: float = DEFAULT_TOLERANCE):
        """Initialize validator."""
        if not 0 <= tolerance < 1:
            raise ValueError("tolerance must be in [0, 1)")
        self.tolerance = tolerance

    def check(
        self,
        current: MetricSnapshot,
        baseline: MetricSnapshot,
        tolerance: Optional[float] = None,
    ) -> List[BaselineViolation]:
        """All violations, in errorRate, responseTime, availability order."""
        tolerance = self.tolerance if tolerance is None else tolerance
        violations: List[BaselineViolation] = []

        upper_bounded = (
            ("errorRate", current.error_rate, baseline.error_rate),
            ("responseTime", current.response_time, baseline.response_time),
        )
        for name, measured, reference in upper_bounded:
            threshold = reference * (1 + tolerance)
            if measured > threshold and not math.isclose(measured, threshold):
                violations.append(BaselineViolation(name, measured, threshold, ">"))

        threshold = baseline.availability * (1 - tolerance)
        if current.availability < threshold and not math.isclose(current.availability, threshold):
            violations.append(
                BaselineViolation("availability", current.availability, threshold, "<")
            )

        return violations

    def validate(
        self,
        current: MetricSnapshot,
        baseline: MetricSnapshot,
        tolerance: Optional[float] = None,
    ) -> None:
        """Raise BaselineViolationError on the first violation."""
        violations = self.check(current, baseline, tolerance)
        if violations:
            error = violations[0].to_error()
            logger.warning(error.message)
            raise error

        logger.info("Performance baselines validated successfully")


def validate(
    current: MetricSnapshot,
    baseline: MetricSnapshot,
    tolerance: float = DEFAULT_TOLERANCE,
) -> None:
    """Module-level shortcut for BaselineValidator(tolerance).validate."""
    BaselineValidator(tolerance).validate(current, baseline)
