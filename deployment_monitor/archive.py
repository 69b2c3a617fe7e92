"""
Deployment Monitor - Archival Sinks.

============================================================
PURPOSE
============================================================
Persistence of deployments leaving the active set.

- ArchivalSink: abstract async archive(deployment)
- InMemoryArchivalSink: keeps archived records in a list
- SqlArchivalSink: SQLAlchemy (asyncio) table of JSON documents

Archive is invoked on stop_tracking and for every remaining
deployment on destroy. Failures raise ArchivalError; callers
on the teardown path log and continue.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import JSON, Column, DateTime, Integer, String, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from .errors import ArchivalError
from .models import Deployment, utc_now


logger = logging.getLogger(__name__)


# ============================================================
# CAPABILITY
# ============================================================

class ArchivalSink(ABC):
    """Receives deployments leaving the active set."""

    @abstractmethod
    async def archive(self, deployment: Deployment) -> None:
        """Persist a deployment record."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None


class InMemoryArchivalSink(ArchivalSink):
    """Keeps archived deployment documents in memory."""

    def __init__(self):
        self.records: List[Dict[str, Any]] = []

    async def archive(self, deployment: Deployment) -> None:
        self.records.append(deployment.to_dict())
        logger.info(f"Archiving deployment data for: {deployment.deployment_id}")


# ============================================================
# SQL SINK
# ============================================================

Base = declarative_base()


# Sync driver URL prefixes and their asyncio counterparts.
ASYNC_DRIVERS = {
    "sqlite://": "sqlite+aiosqlite://",
    "postgresql://": "postgresql+asyncpg://",
    "postgresql+psycopg2://": "postgresql+asyncpg://",
}


def to_async_url(url: str) -> str:
    """Map a sync database URL onto its asyncio driver."""
    for prefix, replacement in ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


class DeploymentArchive(Base):
    """
    Archived deployment.

    The full deployment document is stored as JSON; the lookup
    columns are denormalised from it.
    """

    __tablename__ = "deployment_archive"

    id = Column(Integer, primary_key=True, autoincrement=True)
    deployment_id = Column(String(255), nullable=False, index=True)
    version = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    archived_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    document = Column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<DeploymentArchive {self.deployment_id} {self.status}>"


class SqlArchivalSink(ArchivalSink):
    """
    Writes archived deployments through an SQLAlchemy AsyncSession.

    Usage:
        sink = SqlArchivalSink("sqlite:///archive.db")
        await sink.create_schema()
    """

    def __init__(
        self,
        url: Optional[str] = None,
        engine: Optional[AsyncEngine] = None,
        echo: bool = False,
    ):
        """Initialize with a database URL or an existing async engine."""
        if engine is None:
            if not url:
                raise ValueError("SqlArchivalSink needs a url or an engine")
            engine = create_async_engine(to_async_url(url), echo=echo)
        self._engine = engine
        self._session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async def create_schema(self) -> None:
        """Create the archive table if it does not exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Transactional session scope."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def archive(self, deployment: Deployment) -> None:
        record = DeploymentArchive(
            deployment_id=deployment.deployment_id,
            version=deployment.version,
            status=deployment.status.value,
            started_at=deployment.start_time,
            ended_at=deployment.end_time,
            document=deployment.to_dict(),
        )
        try:
            async with self.session() as session:
                session.add(record)
        except SQLAlchemyError as e:
            raise ArchivalError(
                f"Failed to archive deployment {deployment.deployment_id}: {e}",
                {"deployment_id": deployment.deployment_id},
            ) from e

        logger.info(f"Archived deployment {deployment.deployment_id} ({deployment.status.value})")

    async def list_archived(self, deployment_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Archived documents, oldest first."""
        query = select(DeploymentArchive).order_by(DeploymentArchive.id)
        if deployment_id is not None:
            query = query.where(DeploymentArchive.deployment_id == deployment_id)
        async with self.session() as session:
            result = await session.execute(query)
            return [row.document for row in result.scalars().all()]

    async def close(self) -> None:
        await self._engine.dispose()
