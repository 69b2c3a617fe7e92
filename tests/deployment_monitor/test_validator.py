"""
Tests for baseline validation.
"""

import pytest

from deployment_monitor import validator
from deployment_monitor.errors import BaselineViolationError
from deployment_monitor.models import MetricSnapshot
from deployment_monitor.validator import BaselineValidator


@pytest.fixture
def checker():
    return BaselineValidator(tolerance=0.2)


def with_fields(base: MetricSnapshot, **fields) -> MetricSnapshot:
    values = {
        "error_rate": base.error_rate,
        "response_time": base.response_time,
        "throughput": base.throughput,
        "availability": base.availability,
    }
    values.update(fields)
    return MetricSnapshot(**values)


class TestBaselineValidator:
    """Tests for BaselineValidator."""

    def test_identical_metrics_pass(self, checker, baseline_snapshot):
        checker.validate(baseline_snapshot, baseline_snapshot)

    def test_error_rate_on_threshold_passes(self, checker, baseline_snapshot):
        checker.validate(with_fields(baseline_snapshot, error_rate=1.2), baseline_snapshot)

    def test_error_rate_above_threshold_fails(self, checker, baseline_snapshot):
        with pytest.raises(BaselineViolationError) as exc_info:
            checker.validate(with_fields(baseline_snapshot, error_rate=1.21), baseline_snapshot)

        error = exc_info.value
        assert error.field == "errorRate"
        assert error.measured == 1.21
        assert error.threshold == pytest.approx(1.2)
        assert error.message.endswith("1.21 > 1.2")
        assert error.comparison == ">"
        assert error.message.startswith("errorRate baseline validation failed")

    def test_inexact_threshold_boundary_passes(self, checker):
        """3.0 * 1.2 rounds to 3.5999999999999996 in binary floating point."""
        baseline = MetricSnapshot(error_rate=3.0, availability=87.5)

        checker.validate(MetricSnapshot(error_rate=3.6, availability=70.0), baseline)

        with pytest.raises(BaselineViolationError):
            checker.validate(MetricSnapshot(error_rate=3.61, availability=70.0), baseline)

    def test_response_time_regression(self, checker, baseline_snapshot):
        checker.validate(with_fields(baseline_snapshot, response_time=240.0), baseline_snapshot)

        with pytest.raises(BaselineViolationError) as exc_info:
            checker.validate(with_fields(baseline_snapshot, response_time=250.0), baseline_snapshot)

        assert exc_info.value.field == "responseTime"

    def test_availability_drop(self, checker, baseline_snapshot):
        checker.validate(with_fields(baseline_snapshot, availability=80.0), baseline_snapshot)

        with pytest.raises(BaselineViolationError) as exc_info:
            checker.validate(with_fields(baseline_snapshot, availability=79.0), baseline_snapshot)

        assert exc_info.value.field == "availability"
        assert exc_info.value.comparison == "<"

    def test_first_violation_reported(self, checker, baseline_snapshot):
        current = with_fields(
            baseline_snapshot,
            error_rate=5.0,
            response_time=900.0,
            availability=50.0,
        )

        violations = checker.check(current, baseline_snapshot)
        assert [v.field for v in violations] == ["errorRate", "responseTime", "availability"]

        with pytest.raises(BaselineViolationError) as exc_info:
            checker.validate(current, baseline_snapshot)
        assert exc_info.value.field == "errorRate"

    def test_tolerance_override(self, checker, baseline_snapshot):
        current = with_fields(baseline_snapshot, error_rate=1.4)

        with pytest.raises(BaselineViolationError):
            checker.validate(current, baseline_snapshot)

        checker.validate(current, baseline_snapshot, tolerance=0.5)

    def test_zero_baseline_has_no_headroom(self, checker):
        baseline = MetricSnapshot(error_rate=0.0)

        with pytest.raises(BaselineViolationError):
            checker.validate(MetricSnapshot(error_rate=0.1), baseline)

    def test_improvements_pass(self, checker, baseline_snapshot):
        current = with_fields(
            baseline_snapshot,
            error_rate=0.1,
            response_time=50.0,
            availability=100.0,
        )

        assert checker.check(current, baseline_snapshot) == []

    @pytest.mark.parametrize("tolerance", [-0.1, 1.0, 1.5])
    def test_invalid_tolerance(self, tolerance):
        with pytest.raises(ValueError):
            BaselineValidator(tolerance)


class TestModuleValidate:
    """Tests for the module-level validate shortcut."""

    def test_default_tolerance(self, baseline_snapshot):
        validator.validate(with_fields(baseline_snapshot, error_rate=1.2), baseline_snapshot)

        with pytest.raises(BaselineViolationError):
            validator.validate(with_fields(baseline_snapshot, error_rate=1.21), baseline_snapshot)

    def test_violation_to_error(self, checker, baseline_snapshot):
        violation = checker.check(
            with_fields(baseline_snapshot, error_rate=3.0),
            baseline_snapshot,
        )[0]
        error = violation.to_error()

        assert isinstance(error, BaselineViolationError)
        assert error.threshold == violation.threshold
