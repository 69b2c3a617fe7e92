"""
Alert Engine.

============================================================
PURPOSE
============================================================
Owns alert definitions and their state, evaluates them against
each new snapshot, and drives the trigger/resolve lifecycle.

STATE MACHINE (per alert):
- idle -> triggered: condition true and not suppressed.
  triggered=True, last_triggered=now, trigger_count += 1,
  notify every enabled channel, start the cooldown window.
- triggered -> idle: condition false. Notify only when
  notify_on_resolve is set.
- idle -> idle, triggered -> triggered: no side effects.

A condition that fails to parse or evaluate counts as false
for that tick. One bad definition never stops the others.

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from ..config import AlertDefinition
from ..errors import (
    AlertNotFoundError,
    ConditionEvaluationError,
    ConditionParseError,
    DuplicateAlertError,
)
from ..models import AlertState, MetricSnapshot, utc_now
from ..notifications import NotificationDispatcher
from .conditions import Condition


logger = logging.getLogger(__name__)


# Field paths every snapshot binds; anything else must be a custom metric.
KNOWN_FIELDS = frozenset(MetricSnapshot().bindings())
CUSTOM_PREFIXES = ("custom.", "customMetrics.", "custom_metrics.")


# ============================================================
# TRANSITIONS
# ============================================================

@dataclass
class AlertTransition:
    """An edge taken by one alert during an evaluation."""

    definition: AlertDefinition
    triggered: bool
    """True for idle -> triggered, False for triggered -> idle."""

    timestamp: datetime
    snapshot: MetricSnapshot
    deliveries: Dict[str, bool] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def resolved(self) -> bool:
        return not self.triggered


@dataclass
class _RegisteredAlert:
    definition: AlertDefinition
    condition: Optional[Condition]
    state: AlertState
    parse_error: Optional[str] = None


# ============================================================
# ALERT ENGINE
# ============================================================

class AlertEngine:
    """
    Evaluates alert definitions and manages their state.

    Definitions are evaluated in registration order.
    """

    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher] = None,
        notify_on_resolve: bool = False,
        default_suppression_minutes: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize alert engine."""
        self._dispatcher = dispatcher or NotificationDispatcher()
        self._notify_on_resolve = notify_on_resolve
        self._default_suppression = default_suppression_minutes
        self._clock = clock
        self._alerts: Dict[str, _RegisteredAlert] = {}

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @property
    def definitions(self) -> List[AlertDefinition]:
        return [a.definition for a in self._alerts.values()]

    # --------------------------------------------------------
    # REGISTRATION
    # --------------------------------------------------------

    def register(self, definition: AlertDefinition) -> AlertState:
        """
        Register a definition and compile its condition.

        A malformed condition is logged and the alert is kept,
        evaluating as false on every tick.
        """
        if definition.name in self._alerts:
            raise DuplicateAlertError(definition.name)

        condition: Optional[Condition] = None
        parse_error: Optional[str] = None
        try:
            condition = Condition(definition.condition)
        except ConditionParseError as e:
            parse_error = e.message
            logger.error(f"Alert {definition.name} has malformed condition: {e.message}")

        if condition is not None:
            unknown = sorted(
                f for f in condition.fields
                if f not in KNOWN_FIELDS and not f.startswith(CUSTOM_PREFIXES)
            )
            if unknown:
                logger.warning(
                    f"Alert {definition.name} references unknown fields: {', '.join(unknown)}"
                )

        state = AlertState(name=definition.name)
        self._alerts[definition.name] = _RegisteredAlert(
            definition=definition,
            condition=condition,
            state=state,
            parse_error=parse_error,
        )
        logger.info(f"Alert configured: {definition.name}")
        return state

    def clear(self) -> None:
        """Drop all definitions and state."""
        self._alerts.clear()

    # --------------------------------------------------------
    # OPERATOR CONTROLS
    # --------------------------------------------------------

    def _get(self, name: str) -> _RegisteredAlert:
        try:
            return self._alerts[name]
        except KeyError:
            raise AlertNotFoundError(name) from None

    def enable(self, name: str) -> None:
        self._get(name).state.enabled = True

    def disable(self, name: str) -> None:
        """Disable an alert; a triggered alert returns to idle silently."""
        state = self._get(name).state
        state.enabled = False
        state.triggered = False

    def suppress(self, name: str, until: Optional[datetime]) -> None:
        """
        Withhold triggering until a time. None lifts suppression.

        A naive datetime is taken to be UTC.
        """
        if until is not None and until.tzinfo is None:
            until = until.replace(tzinfo=timezone.utc)
        self._get(name).state.suppressed_until = until

    def get_state(self, name: str) -> AlertState:
        return self._get(name).state

    def states(self) -> List[AlertState]:
        return [a.state for a in self._alerts.values()]

    # --------------------------------------------------------
    # EVALUATION
    # --------------------------------------------------------

    def _condition_holds(self, alert: _RegisteredAlert, bindings: Dict[str, float]) -> bool:
        if alert.condition is None:
            raise ConditionEvaluationError(
                f"Condition failed to parse: {alert.parse_error}",
                condition=alert.definition.condition,
            )
        return alert.condition.evaluate(bindings)

    def _cooldown(self, definition: AlertDefinition) -> Optional[timedelta]:
        minutes = definition.suppression_minutes
        if minutes is None:
            minutes = self._default_suppression
        if not minutes:
            return None
        return timedelta(minutes=minutes)

    async def evaluate(self, snapshot: MetricSnapshot) -> List[AlertTransition]:
        """
        Evaluate every enabled alert against a snapshot.

        Returns the transitions taken. Never raises for a single
        alert's evaluation or delivery failure.
        """
        bindings = snapshot.bindings()
        now = self._clock()
        transitions: List[AlertTransition] = []

        for alert in list(self._alerts.values()):
            if not alert.state.enabled:
                continue

            try:
                transition = await self._evaluate_alert(alert, bindings, snapshot, now)
            except Exception as e:
                logger.error(f"Error processing alert {alert.definition.name}: {e}")
                continue

            if transition is not None:
                transitions.append(transition)

        return transitions

    async def _evaluate_alert(
        self,
        alert: _RegisteredAlert,
        bindings: Dict[str, float],
        snapshot: MetricSnapshot,
        now: datetime,
    ) -> Optional[AlertTransition]:
        state = alert.state

        try:
            should_trigger = self._condition_holds(alert, bindings)
        except ConditionEvaluationError as e:
            logger.error(
                f"Error evaluating alert condition {alert.definition.condition!r} "
                f"({alert.definition.name}): {e.message}"
            )
            should_trigger = False
        except Exception as e:
            logger.error(f"Error evaluating alert {alert.definition.name}: {e}")
            should_trigger = False

        if should_trigger and not state.triggered:
            if state.is_suppressed(now):
                logger.debug(
                    f"Alert {state.name} suppressed until {state.suppressed_until.isoformat()}"
                )
                return None
            return await self._trigger(alert, snapshot, now)
        if not should_trigger and state.triggered:
            return await self._resolve(alert, snapshot, now)
        return None

    async def _trigger(
        self,
        alert: _RegisteredAlert,
        snapshot: MetricSnapshot,
        now: datetime,
    ) -> AlertTransition:
        state = alert.state
        definition = alert.definition

        state.triggered = True
        state.last_triggered = now
        state.trigger_count += 1

        cooldown = self._cooldown(definition)
        if cooldown is not None:
            state.suppressed_until = now + cooldown

        logger.warning(f"Alert triggered: {definition.name} ({definition.severity.value})")

        deliveries = await self._dispatcher.dispatch(definition, snapshot)
        return AlertTransition(
            definition=definition,
            triggered=True,
            timestamp=now,
            snapshot=snapshot,
            deliveries=deliveries,
        )

    async def _resolve(
        self,
        alert: _RegisteredAlert,
        snapshot: MetricSnapshot,
        now: datetime,
    ) -> AlertTransition:
        alert.state.triggered = False
        logger.info(f"Alert resolved: {alert.definition.name}")

        deliveries: Dict[str, bool] = {}
        if self._notify_on_resolve:
            deliveries = await self._dispatcher.dispatch(
                alert.definition, snapshot, resolved=True
            )

        return AlertTransition(
            definition=alert.definition,
            triggered=False,
            timestamp=now,
            snapshot=snapshot,
            deliveries=deliveries,
        )
