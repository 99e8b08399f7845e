"""Container engine interface for image builds and instance containers."""

from abc import ABC, abstractmethod
from pathlib import Path

from deploybox.core.domain import ResourceLimits


class EngineDriver(ABC):
    """Interface for the container engine.

    Implementations: DockerEngineDriver

    Connection failures and timeouts raise EngineUnavailableError.
    Build failures raise BuildFailureError.
    """

    @abstractmethod
    async def build_image(
        self, context: Path, tag: str, dockerfile: str = "Dockerfile"
    ) -> str:
        """Build an image from a build context.

        Args:
            context: Build context directory
            tag: Image tag to apply
            dockerfile: Dockerfile path relative to context

        Returns:
            Built image ID
        """
        ...

    @abstractmethod
    async def create_container(
        self,
        image: str,
        exposed_port: int,
        host_port: int,
        limits: ResourceLimits,
        labels: dict[str, str] | None = None,
    ) -> str:
        """Create a container binding host_port to exposed_port.

        Returns:
            Container ID
        """
        ...

    @abstractmethod
    async def start(self, container_id: str) -> None:
        ...

    @abstractmethod
    async def stop_and_remove(self, container_id: str) -> None:
        """Force-remove a container. A missing container is a no-op."""
        ...

    @abstractmethod
    async def remove_image(self, ref: str) -> None:
        """Remove an image. A missing image is a no-op."""
        ...

    @abstractmethod
    async def ping(self) -> None:
        ...
