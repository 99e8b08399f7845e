"""Instance registry adapters."""

from deploybox.adapters.registry.sql import SQLInstanceRegistry

__all__ = ["SQLInstanceRegistry"]
