"""Shared FastAPI dependencies for v1 endpoints."""

from typing import Annotated

from fastapi import Depends, Header, Request

from deploybox.core.errors import UnauthorizedError
from deploybox.services.lifecycle import LifecycleManager


def get_lifecycle(request: Request) -> LifecycleManager:
    """LifecycleManager created by the application lifespan."""
    lifecycle = getattr(request.app.state, "lifecycle", None)
    if lifecycle is None:
        raise RuntimeError("Lifecycle manager not initialized")
    return lifecycle


def get_owner_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str:
    """Caller identity, set by the upstream gateway after authentication."""
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError()
    return x_user_id.strip()


Lifecycle = Annotated[LifecycleManager, Depends(get_lifecycle)]
OwnerId = Annotated[str, Depends(get_owner_id)]
