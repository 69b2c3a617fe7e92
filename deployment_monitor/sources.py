"""
Deployment Monitor - Metrics Sources.

============================================================
PURPOSE
============================================================
The MetricsSource capability and its adapters.

- MetricsSource: abstract async fetch_snapshot()
- HttpMetricsSource: GETs a JSON snapshot over HTTP
- ReplayMetricsSource: deterministic replay of fixed snapshots

A failed fetch raises MetricsFetchError. The scheduler treats
that as a skipped tick.

============================================================
USAGE
============================================================
```python
source = HttpMetricsSource("http://metrics.internal/snapshot")
snapshot = await source.fetch_snapshot()

source = create_metrics_source(config.providers)
```

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence

import aiohttp

from .config import ProviderConfig
from .errors import ConfigurationError, MetricsFetchError
from .models import MetricSnapshot


logger = logging.getLogger(__name__)


# ============================================================
# CAPABILITY
# ============================================================

class MetricsSource(ABC):
    """
    Base class for metrics sources.

    Implementations MUST raise MetricsFetchError on transient failure.
    """

    name: str = "metrics_source"

    @abstractmethod
    async def fetch_snapshot(self) -> MetricSnapshot:
        """Read the current metrics."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None


# ============================================================
# HTTP SOURCE
# ============================================================

class HttpMetricsSource(MetricsSource):
    """
    Reads a JSON snapshot from an HTTP endpoint.

    The endpoint returns a MetricSnapshot-shaped document in
    camelCase or snake_case.
    """

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout_seconds: float = 10.0,
        name: str = "http",
    ):
        """Initialize HTTP source."""
        self.url = url
        self.name = name
        self._headers = headers or {}
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def fetch_snapshot(self) -> MetricSnapshot:
        try:
            session = await self._get_session()
            async with session.get(self.url, headers=self._headers) as response:
                if response.status != 200:
                    body = await response.text()
                    raise MetricsFetchError(
                        f"Metrics endpoint returned {response.status}: {body[:200]}",
                        source=self.name,
                        status_code=response.status,
                    )
                payload = await response.json()
        except MetricsFetchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise MetricsFetchError(
                f"Error fetching metrics from {self.url}: {e}",
                source=self.name,
            ) from e
        except ValueError as e:
            raise MetricsFetchError(
                f"Invalid JSON from {self.url}: {e}",
                source=self.name,
            ) from e

        if not isinstance(payload, dict):
            raise MetricsFetchError(
                f"Malformed metrics payload from {self.url}: "
                f"expected an object, got {type(payload).__name__}",
                source=self.name,
            )

        try:
            return MetricSnapshot.from_dict(payload)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise MetricsFetchError(
                f"Malformed metrics payload from {self.url}: {e}",
                source=self.name,
            ) from e


# ============================================================
# REPLAY SOURCE
# ============================================================

class ReplayMetricsSource(MetricsSource):
    """
    Returns a fixed sequence of snapshots, one per fetch.

    After the sequence is exhausted the last snapshot repeats,
    unless cycle=True. Entries that are exceptions are raised
    instead of returned, which lets callers script fetch failures.
    """

    def __init__(
        self,
        snapshots: Sequence[Any],
        cycle: bool = False,
        name: str = "replay",
    ):
        """Initialize replay source."""
        if not snapshots:
            raise ValueError("ReplayMetricsSource needs at least one snapshot")
        self.name = name
        self._snapshots: List[Any] = list(snapshots)
        self._cycle = cycle
        self._index = 0
        self.fetch_count = 0

    async def fetch_snapshot(self) -> MetricSnapshot:
        self.fetch_count += 1
        if self._index < len(self._snapshots):
            item = self._snapshots[self._index]
            self._index += 1
        elif self._cycle:
            self._index = 1
            item = self._snapshots[0]
        else:
            item = self._snapshots[-1]

        if isinstance(item, BaseException):
            raise item
        if isinstance(item, dict):
            return MetricSnapshot.from_dict(item)
        return item


# ============================================================
# FACTORY
# ============================================================

# Provider types served by a JSON snapshot endpoint.
HTTP_PROVIDER_TYPES = {"http", "custom", "prometheus", "datadog", "new_relic", "grafana"}


def create_metrics_source(providers: Iterable[ProviderConfig]) -> MetricsSource:
    """
    Create a metrics source from the first usable enabled provider.

    Backend-specific providers are expected to expose a snapshot
    endpoint through the "url" option. Unknown types are skipped
    with a warning.
    """
    for provider in providers:
        if not provider.enabled:
            continue

        logger.info(f"Initializing monitoring provider: {provider.name}")

        if provider.type in HTTP_PROVIDER_TYPES:
            url = provider.options.get("url")
            if not url:
                logger.warning(f"Provider {provider.name} has no 'url' option, skipping")
                continue
            return HttpMetricsSource(
                url=url,
                headers=provider.options.get("headers"),
                timeout_seconds=float(provider.options.get("timeout_seconds", 10.0)),
                name=provider.name,
            )

        if provider.type == "replay":
            snapshots = provider.options.get("snapshots") or []
            return ReplayMetricsSource(
                snapshots,
                cycle=bool(provider.options.get("cycle", False)),
                name=provider.name,
            )

        logger.warning(f"Unknown provider type: {provider.type}")

    raise ConfigurationError("No enabled metrics provider could be created")
