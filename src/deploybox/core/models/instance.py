"""Instance model.

Models are defined using SQLModel (SQLAlchemy + Pydantic).
"""

from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel
from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


class InstanceStatus(StrEnum):
    RUNNING = "running"
    STOPPED = "stopped"


class Instance(SQLModel, table=True):
    """A deployed, time-boxed container instance."""

    __tablename__ = "instances"

    id: str = Field(default_factory=generate_ulid, primary_key=True)
    name: str
    owner_id: str = Field(index=True)
    container_id: str
    image_ref: str
    port: int = Field(unique=True)
    project_kind: str
    archetype: str
    status: str = Field(default=InstanceStatus.RUNNING.value)
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True))
    )
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False)
    )
