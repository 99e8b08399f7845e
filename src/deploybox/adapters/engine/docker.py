"""Docker engine driver.

Wraps synchronous docker-py calls in worker threads bounded by
asyncio.wait_for. A thread that outlives its timeout keeps running; callers
clean up by image tag and container ID afterwards.
"""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import docker
import requests
from docker.errors import APIError, BuildError, DockerException, ImageNotFound, NotFound

from deploybox.app.config import get_settings
from deploybox.core.domain import ResourceLimits
from deploybox.core.errors import BuildFailureError, EngineUnavailableError
from deploybox.core.interfaces import EngineDriver
from deploybox.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DockerEngineDriver(EngineDriver):
    """Engine driver using the local Docker daemon via docker-py."""

    def __init__(
        self,
        client: docker.DockerClient | None = None,
        docker_host: str | None = None,
        api_timeout: float | None = None,
        build_timeout: float | None = None,
    ) -> None:
        """Initialize with an optional client or Docker host.

        Args:
            client: Pre-built DockerClient. Created lazily when None.
            docker_host: Docker host URL (e.g., 'tcp://docker-proxy:2375').
                        If None, uses DOCKER_HOST env var or default socket.
        """
        settings = get_settings().docker
        self._client = client
        self._docker_host = docker_host or settings.host_url
        self._api_timeout = api_timeout or settings.api_timeout
        self._build_timeout = build_timeout or settings.build_timeout

    def _get_client(self) -> docker.DockerClient:
        if self._client is None:
            if self._docker_host:
                self._client = docker.DockerClient(base_url=self._docker_host)
            else:
                self._client = docker.from_env()
        return self._client

    async def _run(
        self, op: str, fn: Callable[..., T], *args: Any, timeout: float | None = None
    ) -> T:
        """Run a sync docker call in a thread with a timeout.

        Connection failures and timeouts surface as EngineUnavailableError.
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args), timeout or self._api_timeout
            )
        except TimeoutError as e:
            logger.warning(
                "Docker %s timed out",
                op,
                extra={"event": LogEvent.ENGINE_ERROR, "operation": op},
            )
            raise EngineUnavailableError(f"Docker {op} timed out") from e
        except (requests.exceptions.ConnectionError, DockerException) as e:
            logger.warning(
                "Docker %s failed: %s",
                op,
                e,
                extra={"event": LogEvent.ENGINE_ERROR, "operation": op, "error": str(e)},
            )
            raise EngineUnavailableError(f"Docker {op} failed: {e}") from e

    # =================================================================
    # Build
    # =================================================================

    def _build_image_sync(self, context: Path, tag: str, dockerfile: str) -> str:
        """Drain the build stream and return the image ID (sync)."""
        client = self._get_client()
        image_id: str | None = None
        try:
            stream = client.api.build(
                path=str(context),
                tag=tag,
                dockerfile=dockerfile,
                rm=True,
                forcerm=True,
                decode=True,
            )
            for chunk in stream:
                if "error" in chunk:
                    detail = chunk.get("errorDetail", {}).get("message") or chunk["error"]
                    raise BuildFailureError(f"Image build failed: {str(detail).strip()}")
                if "stream" in chunk:
                    line = chunk["stream"].rstrip()
                    if line:
                        logger.debug("build %s: %s", tag, line)
                aux = chunk.get("aux")
                if isinstance(aux, dict) and "ID" in aux:
                    image_id = aux["ID"]
            if image_id is None:
                image_id = client.images.get(tag).id
        except (APIError, BuildError) as e:
            raise BuildFailureError(f"Image build failed: {e}") from e
        return image_id

    async def build_image(
        self, context: Path, tag: str, dockerfile: str = "Dockerfile"
    ) -> str:
        try:
            image_id = await self._run(
                "build",
                self._build_image_sync,
                context,
                tag,
                dockerfile,
                timeout=self._build_timeout,
            )
        except EngineUnavailableError as e:
            if isinstance(e.__cause__, TimeoutError):
                raise BuildFailureError(
                    f"Image build timed out after {self._build_timeout:.0f}s"
                ) from e
            raise
        logger.info(
            "Built image %s",
            tag,
            extra={"event": LogEvent.IMAGE_BUILT, "image": tag, "image_id": image_id},
        )
        return image_id

    # =================================================================
    # Containers
    # =================================================================

    def _create_container_sync(
        self,
        image: str,
        exposed_port: int,
        host_port: int,
        limits: ResourceLimits,
        labels: dict[str, str],
    ) -> str:
        container = self._get_client().containers.create(
            image,
            detach=True,
            ports={f"{exposed_port}/tcp": host_port},
            mem_limit=limits.memory_bytes,
            cpu_shares=limits.cpu_shares,
            labels=labels,
        )
        return container.id

    async def create_container(
        self,
        image: str,
        exposed_port: int,
        host_port: int,
        limits: ResourceLimits,
        labels: dict[str, str] | None = None,
    ) -> str:
        container_id = await self._run(
            "create",
            self._create_container_sync,
            image,
            exposed_port,
            host_port,
            limits,
            labels or {},
        )
        logger.info(
            "Created container %s",
            container_id[:12],
            extra={
                "event": LogEvent.CONTAINER_CREATED,
                "container_id": container_id,
                "port": host_port,
            },
        )
        return container_id

    def _start_sync(self, container_id: str) -> None:
        self._get_client().containers.get(container_id).start()

    async def start(self, container_id: str) -> None:
        await self._run("start", self._start_sync, container_id)
        logger.info(
            "Started container %s",
            container_id[:12],
            extra={"event": LogEvent.CONTAINER_STARTED, "container_id": container_id},
        )

    def _stop_and_remove_sync(self, container_id: str) -> bool:
        """Force-remove container (sync). Returns False if it was already gone."""
        try:
            container = self._get_client().containers.get(container_id)
        except NotFound:
            return False
        try:
            container.remove(force=True)
        except NotFound:
            return False
        return True

    async def stop_and_remove(self, container_id: str) -> None:
        removed = await self._run("remove", self._stop_and_remove_sync, container_id)
        if removed:
            logger.info(
                "Removed container %s",
                container_id[:12],
                extra={"event": LogEvent.CONTAINER_REMOVED, "container_id": container_id},
            )
        else:
            logger.info("Container not found (no-op): %s", container_id[:12])

    # =================================================================
    # Images
    # =================================================================

    def _remove_image_sync(self, ref: str) -> bool:
        try:
            self._get_client().images.remove(ref, force=True)
        except (ImageNotFound, NotFound):
            return False
        return True

    async def remove_image(self, ref: str) -> None:
        removed = await self._run("remove_image", self._remove_image_sync, ref)
        if removed:
            logger.info(
                "Removed image %s",
                ref,
                extra={"event": LogEvent.IMAGE_REMOVED, "image": ref},
            )

    async def ping(self) -> None:
        await self._run("ping", lambda: self._get_client().ping())
