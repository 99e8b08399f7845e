"""Container engine adapters."""

from deploybox.adapters.engine.docker import DockerEngineDriver

__all__ = ["DockerEngineDriver"]
