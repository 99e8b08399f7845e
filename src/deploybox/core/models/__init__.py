"""Database models for deploybox.

Models are defined using SQLModel (SQLAlchemy + Pydantic).
"""

from deploybox.core.models.instance import (
    Instance,
    InstanceStatus,
    generate_ulid,
    utc_now,
)

__all__ = [
    "Instance",
    "InstanceStatus",
    "generate_ulid",
    "utc_now",
]
