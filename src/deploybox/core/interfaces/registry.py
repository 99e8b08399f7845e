"""Instance registry interface."""

from abc import ABC, abstractmethod
from datetime import datetime

from deploybox.core.models import Instance


class InstanceRegistry(ABC):
    """Durable store of Instance records.

    Implementations: SQLInstanceRegistry
    """

    @abstractmethod
    async def create(self, instance: Instance) -> Instance:
        """Persist a new record.

        Raises:
            RecordPersistFailureError: If the record could not be stored
        """
        ...

    @abstractmethod
    async def get(self, instance_id: str) -> Instance | None:
        ...

    @abstractmethod
    async def list_by_owner(self, owner_id: str) -> list[Instance]:
        """List an owner's instances, newest first."""
        ...

    @abstractmethod
    async def list_expired(self, now: datetime) -> list[Instance]:
        """List instances with expires_at < now."""
        ...

    @abstractmethod
    async def list_all(self) -> list[Instance]:
        ...

    @abstractmethod
    async def delete_by_id(self, instance_id: str) -> None:
        """Delete a record. A missing record is a no-op."""
        ...
