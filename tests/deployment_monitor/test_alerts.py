"""
Tests for the alert engine.

============================================================
PURPOSE
============================================================
Verify the per-alert state machine:
- Notifications fire on the idle -> triggered edge only
- trigger_count only grows on that edge
- A bad definition never stops the others
- Cooldown windows withhold re-triggering

============================================================
"""

import logging
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from deployment_monitor.alerts import AlertEngine
from deployment_monitor.config import AlertDefinition, ChannelConfig
from deployment_monitor.errors import AlertNotFoundError, DuplicateAlertError
from deployment_monitor.models import AlertSeverity, MetricSnapshot
from deployment_monitor.notifications import NotificationDispatcher


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def dispatcher():
    """Dispatcher double that records dispatch calls."""
    mock = MagicMock()
    mock.dispatch = AsyncMock(return_value={"log": True})
    return mock


@pytest.fixture
def clock(base_time):
    """Controllable clock: set clock.now to move time."""
    fake = MagicMock()
    fake.now = base_time
    fake.side_effect = lambda: fake.now
    return fake


@pytest.fixture
def high_error_rate():
    return AlertDefinition(
        name="High Error Rate",
        condition="errorRate > 5",
        severity=AlertSeverity.CRITICAL,
        channels=(ChannelConfig("log"),),
    )


def error_rate(value: float) -> MetricSnapshot:
    return MetricSnapshot(error_rate=value)


# ============================================================
# REGISTRATION TESTS
# ============================================================

class TestRegistration:
    """Tests for AlertEngine.register."""

    def test_register_creates_idle_state(self, dispatcher, high_error_rate):
        engine = AlertEngine(dispatcher=dispatcher)
        state = engine.register(high_error_rate)

        assert state.name == "High Error Rate"
        assert state.enabled
        assert not state.triggered
        assert state.trigger_count == 0
        assert engine.definitions == [high_error_rate]

    def test_duplicate_name_rejected(self, dispatcher, high_error_rate):
        engine = AlertEngine(dispatcher=dispatcher)
        engine.register(high_error_rate)

        with pytest.raises(DuplicateAlertError):
            engine.register(high_error_rate)

    def test_malformed_condition_is_kept(self, dispatcher):
        engine = AlertEngine(dispatcher=dispatcher)
        state = engine.register(AlertDefinition(name="bad", condition="errorRate >"))

        assert engine.get_state("bad") is state

    def test_unknown_field_warns(self, dispatcher, caplog):
        engine = AlertEngine(dispatcher=dispatcher)

        with caplog.at_level(logging.WARNING, logger="deployment_monitor.alerts.engine"):
            engine.register(AlertDefinition(name="typo", condition="errorRat > 5"))
            engine.register(AlertDefinition(name="custom", condition="custom.queue > 5"))

        assert "errorRat" in caplog.text
        assert "custom.queue" not in caplog.text

    def test_unknown_alert_name(self, dispatcher):
        engine = AlertEngine(dispatcher=dispatcher)

        with pytest.raises(AlertNotFoundError) as exc_info:
            engine.get_state("nope")

        assert exc_info.value.name == "nope"
        assert exc_info.value.details == {"alert": "nope"}

    @pytest.mark.parametrize("operation", ["enable", "disable"])
    def test_operator_controls_on_unknown_alert(self, dispatcher, operation):
        engine = AlertEngine(dispatcher=dispatcher)

        with pytest.raises(AlertNotFoundError):
            getattr(engine, operation)("nope")


# ============================================================
# STATE MACHINE TESTS
# ============================================================

class TestEvaluate:
    """Tests for AlertEngine.evaluate."""

    @pytest.mark.asyncio
    async def test_trigger_resolve_retrigger(self, dispatcher, high_error_rate):
        """6 -> 4 -> 7 gives two triggers and one resolution."""
        engine = AlertEngine(dispatcher=dispatcher)
        engine.register(high_error_rate)

        transitions = await engine.evaluate(error_rate(6.0))
        state = engine.get_state("High Error Rate")
        assert len(transitions) == 1
        assert transitions[0].triggered
        assert transitions[0].deliveries == {"log": True}
        assert state.triggered
        assert state.trigger_count == 1
        assert state.last_triggered is not None
        assert dispatcher.dispatch.await_count == 1

        transitions = await engine.evaluate(error_rate(4.0))
        assert len(transitions) == 1
        assert transitions[0].resolved
        assert not state.triggered
        assert state.trigger_count == 1
        assert dispatcher.dispatch.await_count == 1

        transitions = await engine.evaluate(error_rate(7.0))
        assert transitions[0].triggered
        assert state.trigger_count == 2
        assert dispatcher.dispatch.await_count == 2

    @pytest.mark.asyncio
    async def test_no_repeat_while_triggered(self, dispatcher, high_error_rate):
        engine = AlertEngine(dispatcher=dispatcher)
        engine.register(high_error_rate)

        await engine.evaluate(error_rate(6.0))
        transitions = await engine.evaluate(error_rate(8.0))

        assert transitions == []
        assert engine.get_state("High Error Rate").trigger_count == 1
        assert dispatcher.dispatch.await_count == 1

    @pytest.mark.asyncio
    async def test_idle_stays_idle(self, dispatcher, high_error_rate):
        engine = AlertEngine(dispatcher=dispatcher)
        engine.register(high_error_rate)

        assert await engine.evaluate(error_rate(1.0)) == []
        dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notify_on_resolve(self, dispatcher, high_error_rate):
        engine = AlertEngine(dispatcher=dispatcher, notify_on_resolve=True)
        engine.register(high_error_rate)

        await engine.evaluate(error_rate(6.0))
        await engine.evaluate(error_rate(4.0))

        assert dispatcher.dispatch.await_count == 2
        _, kwargs = dispatcher.dispatch.call_args
        assert kwargs == {"resolved": True}

    @pytest.mark.asyncio
    async def test_malformed_definition_isolated(self, dispatcher, high_error_rate):
        engine = AlertEngine(dispatcher=dispatcher)
        engine.register(AlertDefinition(name="bad", condition="errorRate >"))
        engine.register(high_error_rate)

        transitions = await engine.evaluate(error_rate(6.0))

        assert [t.name for t in transitions] == ["High Error Rate"]
        assert not engine.get_state("bad").triggered

    @pytest.mark.asyncio
    async def test_missing_field_evaluates_false(self, dispatcher, high_error_rate):
        engine = AlertEngine(dispatcher=dispatcher)
        engine.register(AlertDefinition(name="queue", condition="custom.queue_depth > 10"))
        engine.register(high_error_rate)

        transitions = await engine.evaluate(error_rate(6.0))

        assert [t.name for t in transitions] == ["High Error Rate"]

        snapshot = MetricSnapshot(error_rate=6.0, custom_metrics={"queue_depth": 11})
        transitions = await engine.evaluate(snapshot)
        assert [t.name for t in transitions] == ["queue"]

    @pytest.mark.asyncio
    async def test_snake_case_condition(self, dispatcher):
        engine = AlertEngine(dispatcher=dispatcher)
        engine.register(AlertDefinition(name="slow", condition="response_time > 1000"))

        transitions = await engine.evaluate(MetricSnapshot(response_time=1500.0))

        assert transitions[0].triggered

    @pytest.mark.asyncio
    async def test_registration_order(self, dispatcher):
        engine = AlertEngine(dispatcher=dispatcher)
        for name in ("z", "a", "m"):
            engine.register(AlertDefinition(name=name, condition="errorRate > 1"))

        transitions = await engine.evaluate(error_rate(2.0))

        assert [t.name for t in transitions] == ["z", "a", "m"]

    @pytest.mark.asyncio
    async def test_channel_failure_does_not_propagate(self, failing_channel, high_error_rate):
        real_dispatcher = NotificationDispatcher()
        real_dispatcher.register_channel("log", failing_channel)
        engine = AlertEngine(dispatcher=real_dispatcher)
        engine.register(high_error_rate)

        transitions = await engine.evaluate(error_rate(6.0))

        assert transitions[0].deliveries == {"log": False}
        assert engine.get_state("High Error Rate").triggered
        assert failing_channel.attempts == 1


# ============================================================
# OPERATOR CONTROL TESTS
# ============================================================

class TestOperatorControls:
    """Tests for enable / disable / suppress."""

    @pytest.mark.asyncio
    async def test_disabled_alert_not_evaluated(self, dispatcher, high_error_rate):
        engine = AlertEngine(dispatcher=dispatcher)
        engine.register(high_error_rate)
        engine.disable("High Error Rate")

        assert await engine.evaluate(error_rate(9.0)) == []

        engine.enable("High Error Rate")
        transitions = await engine.evaluate(error_rate(9.0))
        assert len(transitions) == 1

    @pytest.mark.asyncio
    async def test_disable_returns_to_idle(self, dispatcher, high_error_rate):
        engine = AlertEngine(dispatcher=dispatcher)
        engine.register(high_error_rate)
        await engine.evaluate(error_rate(6.0))

        engine.disable("High Error Rate")

        state = engine.get_state("High Error Rate")
        assert not state.triggered
        assert state.trigger_count == 1

    @pytest.mark.asyncio
    async def test_manual_suppression(self, dispatcher, clock, high_error_rate, base_time):
        engine = AlertEngine(dispatcher=dispatcher, clock=clock)
        engine.register(high_error_rate)
        engine.suppress("High Error Rate", base_time + timedelta(minutes=5))

        assert await engine.evaluate(error_rate(6.0)) == []

        clock.now = base_time + timedelta(minutes=5)
        transitions = await engine.evaluate(error_rate(6.0))
        assert len(transitions) == 1

    @pytest.mark.asyncio
    async def test_cooldown_after_trigger(self, dispatcher, clock, base_time):
        engine = AlertEngine(dispatcher=dispatcher, clock=clock)
        engine.register(AlertDefinition(
            name="High Error Rate",
            condition="errorRate > 5",
            suppression_minutes=10,
        ))
        state = engine.get_state("High Error Rate")

        await engine.evaluate(error_rate(6.0))
        assert state.suppressed_until == base_time + timedelta(minutes=10)

        clock.now = base_time + timedelta(minutes=1)
        await engine.evaluate(error_rate(4.0))
        assert not state.triggered

        clock.now = base_time + timedelta(minutes=2)
        assert await engine.evaluate(error_rate(6.0)) == []
        assert state.trigger_count == 1

        clock.now = base_time + timedelta(minutes=11)
        transitions = await engine.evaluate(error_rate(6.0))
        assert len(transitions) == 1
        assert state.trigger_count == 2
        assert dispatcher.dispatch.await_count == 2

    @pytest.mark.asyncio
    async def test_default_cooldown(self, dispatcher, clock, high_error_rate, base_time):
        engine = AlertEngine(
            dispatcher=dispatcher,
            clock=clock,
            default_suppression_minutes=30,
        )
        engine.register(high_error_rate)

        await engine.evaluate(error_rate(6.0))

        state = engine.get_state("High Error Rate")
        assert state.suppressed_until == base_time + timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_no_cooldown_by_default(self, dispatcher, high_error_rate):
        engine = AlertEngine(dispatcher=dispatcher)
        engine.register(high_error_rate)

        await engine.evaluate(error_rate(6.0))

        assert engine.get_state("High Error Rate").suppressed_until is None

    def test_clear(self, dispatcher, high_error_rate):
        engine = AlertEngine(dispatcher=dispatcher)
        engine.register(high_error_rate)
        engine.clear()

        assert engine.states() == []
        engine.register(high_error_rate)

    @pytest.mark.asyncio
    async def test_naive_suppression_time_taken_as_utc(self, dispatcher, clock, high_error_rate, base_time):
        engine = AlertEngine(dispatcher=dispatcher, clock=clock)
        engine.register(high_error_rate)
        naive_until = (base_time + timedelta(minutes=5)).replace(tzinfo=None)

        engine.suppress("High Error Rate", naive_until)

        state = engine.get_state("High Error Rate")
        assert state.suppressed_until == base_time + timedelta(minutes=5)
        assert await engine.evaluate(error_rate(6.0)) == []

        clock.now = base_time + timedelta(minutes=6)
        assert len(await engine.evaluate(error_rate(6.0))) == 1

    @pytest.mark.asyncio
    async def test_broken_suppression_window_isolated(self, dispatcher, base_time):
        """An unusable suppression time on one alert leaves the others running."""
        engine = AlertEngine(dispatcher=dispatcher)
        engine.register(AlertDefinition(name="a", condition="errorRate > 5"))
        engine.register(AlertDefinition(name="b", condition="errorRate > 5"))
        engine.get_state("a").suppressed_until = base_time.replace(tzinfo=None)

        transitions = await engine.evaluate(error_rate(6.0))

        assert [t.name for t in transitions] == ["b"]
        assert engine.get_state("b").triggered
        assert not engine.get_state("a").triggered
