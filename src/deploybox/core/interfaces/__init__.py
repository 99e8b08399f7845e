"""Core interfaces for the deploy engine."""

from deploybox.core.interfaces.engine import EngineDriver
from deploybox.core.interfaces.registry import InstanceRegistry

__all__ = [
    "EngineDriver",
    "InstanceRegistry",
]
