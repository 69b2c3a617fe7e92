"""
Notification Dispatch.

============================================================
PURPOSE
============================================================
Fan-out of alert notifications to channel capabilities.

PRINCIPLES:
- One human-readable message per alert edge
- Channels are sent to concurrently; the dispatcher awaits
  every send before returning
- One channel's failure never blocks the others and never
  propagates to the caller

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from ..config import AlertDefinition, ChannelConfig
from ..errors import ChannelDeliveryError
from ..models import MetricSnapshot, utc_now


logger = logging.getLogger(__name__)


# ============================================================
# CHANNEL CAPABILITY
# ============================================================

class NotificationChannel(ABC):
    """
    Base class for notification channels.

    send() returns True on delivery. It may return False or raise
    on failure; the dispatcher handles both.
    """

    name: str = "channel"

    @abstractmethod
    async def send(self, message: str) -> bool:
        """Deliver a message."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None


# ============================================================
# MESSAGE FORMATTING
# ============================================================

SEVERITY_ICONS = {
    "low": "ℹ️",
    "medium": "⚠️",
    "high": "🔥",
    "critical": "🚨",
}


def format_alert_message(
    definition: AlertDefinition,
    snapshot: MetricSnapshot,
    resolved: bool = False,
    timestamp: Optional[datetime] = None,
) -> str:
    """Format an alert edge as plain text."""
    timestamp = timestamp or utc_now()
    if resolved:
        header = f"✅ RESOLVED: {definition.name}"
    else:
        icon = SEVERITY_ICONS.get(definition.severity.value, "🚨")
        header = f"{icon} ALERT: {definition.name}"

    lines = [
        header,
        f"Severity: {definition.severity.value}",
        f"Condition: {definition.condition}",
        "Current Metrics:",
        f"- Error Rate: {snapshot.error_rate:.2f}%",
        f"- Response Time: {snapshot.response_time:.0f}ms",
        f"- Availability: {snapshot.availability:.2f}%",
        f"- Throughput: {snapshot.throughput:.0f} RPS",
        f"Time: {timestamp.isoformat()}",
    ]
    if definition.description:
        lines.insert(1, definition.description)
    return "\n".join(lines)


# ============================================================
# DISPATCHER
# ============================================================

ChannelFactory = Callable[[ChannelConfig], Optional[NotificationChannel]]


class NotificationDispatcher:
    """
    Sends alert messages to every enabled channel of a definition.

    Channel instances are resolved from explicitly registered
    channels first (by channel key, then by type), and otherwise
    built once by the channel factory and cached.
    """

    def __init__(
        self,
        channel_factory: Optional[ChannelFactory] = None,
    ):
        """Initialize dispatcher."""
        if channel_factory is None:
            from .channels import create_channel
            channel_factory = create_channel
        self._factory = channel_factory
        self._registered: Dict[str, NotificationChannel] = {}
        self._cache: Dict[str, Optional[NotificationChannel]] = {}
        self._delivered = 0
        self._failed = 0

    @property
    def stats(self) -> Dict[str, int]:
        return {"delivered": self._delivered, "failed": self._failed}

    def register_channel(self, key: str, channel: NotificationChannel) -> None:
        """Bind a channel instance to a channel key or type."""
        self._registered[key] = channel

    def resolve(self, config: ChannelConfig) -> Optional[NotificationChannel]:
        """Channel instance for a config, or None if unsupported."""
        channel = self._registered.get(config.key) or self._registered.get(config.type)
        if channel is not None:
            return channel

        if config.key not in self._cache:
            try:
                self._cache[config.key] = self._factory(config)
            except Exception as e:
                logger.error(f"Failed to create channel {config.key}: {e}")
                self._cache[config.key] = None
        return self._cache[config.key]

    async def dispatch(
        self,
        definition: AlertDefinition,
        snapshot: MetricSnapshot,
        resolved: bool = False,
    ) -> Dict[str, bool]:
        """
        Send one message to every enabled channel.

        Returns delivery result per channel key. Never raises.
        """
        message = format_alert_message(definition, snapshot, resolved=resolved)

        targets: List[Tuple[str, NotificationChannel]] = []
        results: Dict[str, bool] = {}
        for config in definition.channels:
            if not config.enabled:
                continue
            channel = self.resolve(config)
            if channel is None:
                logger.warning(f"Unknown notification channel: {config.type}")
                results[config.key] = False
                continue
            targets.append((config.key, channel))

        outcomes = await asyncio.gather(
            *(self._send(key, channel, message) for key, channel in targets)
        )
        for (key, _), delivered in zip(targets, outcomes):
            results[key] = delivered

        return results

    async def _send(
        self,
        key: str,
        channel: NotificationChannel,
        message: str,
    ) -> bool:
        try:
            delivered = await channel.send(message)
            if not delivered:
                raise ChannelDeliveryError(key, "channel reported failure")
        except Exception as e:
            self._failed += 1
            error = e if isinstance(e, ChannelDeliveryError) else ChannelDeliveryError(key, str(e))
            logger.error(error.message)
            return False

        self._delivered += 1
        return True

    async def close(self) -> None:
        """Close every channel instance the dispatcher knows about."""
        channels = {id(c): c for c in self._registered.values()}
        channels.update({id(c): c for c in self._cache.values() if c is not None})
        for channel in channels.values():
            try:
                await channel.close()
            except Exception as e:
                logger.error(f"Error closing channel {channel.name}: {e}")
