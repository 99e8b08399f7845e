"""API v1 module."""

from deploybox.app.api.v1.instances import router as instances_router

__all__ = ["instances_router"]
