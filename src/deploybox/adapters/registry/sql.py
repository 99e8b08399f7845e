"""SQL-backed instance registry.

Every call opens its own session from the factory, so concurrent deploys
and the reaper never share a connection.
"""

import logging
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import col

from deploybox.core.errors import RecordPersistFailureError
from deploybox.core.interfaces import InstanceRegistry
from deploybox.core.logging_schema import LogEvent
from deploybox.core.models import Instance

logger = logging.getLogger(__name__)


class SQLInstanceRegistry(InstanceRegistry):
    """Instance registry over SQLModel + async SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, instance: Instance) -> Instance:
        try:
            async with self._session_factory() as session:
                session.add(instance)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to persist instance %s",
                instance.id,
                extra={"event": LogEvent.DB_ERROR, "instance_id": instance.id, "error": str(e)},
            )
            raise RecordPersistFailureError() from e
        return instance

    async def get(self, instance_id: str) -> Instance | None:
        async with self._session_factory() as session:
            return await session.get(Instance, instance_id)

    async def list_by_owner(self, owner_id: str) -> list[Instance]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Instance)
                .where(col(Instance.owner_id) == owner_id)
                .order_by(col(Instance.created_at).desc(), col(Instance.id).desc())
            )
            return list(result.scalars().all())

    async def list_expired(self, now: datetime) -> list[Instance]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Instance)
                .where(col(Instance.expires_at) < now)
                .order_by(col(Instance.expires_at))
            )
            return list(result.scalars().all())

    async def list_all(self) -> list[Instance]:
        async with self._session_factory() as session:
            result = await session.execute(select(Instance))
            return list(result.scalars().all())

    async def delete_by_id(self, instance_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(Instance).where(col(Instance.id) == instance_id))
            await session.commit()
