"""HTTP middleware."""

from deploybox.app.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
