"""Instance lifecycle: deploy transaction, teardown, user stop.

deploy() is a transaction over five resources: workspace, port lease, image,
container, record. Any failure after the lease rolls back what was acquired.
The workspace and the uploaded artifact are removed in every outcome.

Deploy order:
    1. ingest        -> Workspace          (InvalidBundle, EmptyArchive)
    2. classify      -> ProjectStructure
    3. synthesize    -> BuildSpec, files written into the context
    4. lease port                          (PoolExhausted)
    5. build/create/start                  (BuildFailure, EngineUnavailable)
    6. expires_at = now + TTL
    7. persist record                      (RecordPersistFailure)
"""

import asyncio
import logging
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path

from deploybox.app.config import get_settings
from deploybox.app.metrics.collector import (
    DEPLOY_DURATION,
    DEPLOYS_TOTAL,
    PORTS_LEASED,
    TEARDOWNS_TOTAL,
)
from deploybox.core.domain import BuildSpec, ProjectStructure
from deploybox.core.errors import (
    DeployBoxError,
    InstanceNotFoundError,
    InternalError,
)
from deploybox.core.interfaces import EngineDriver, InstanceRegistry
from deploybox.core.logging_schema import LogEvent
from deploybox.core.models import Instance, InstanceStatus, generate_ulid, utc_now
from deploybox.core.naming import ResourceNaming
from deploybox.services.classifier import classify
from deploybox.services.ingest import BundleIngestor, Workspace
from deploybox.services.ports import PortAllocator
from deploybox.services.synthesizer import DOCKERFILE_NAME, BuildSpecSynthesizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Artifact:
    """An uploaded file as stored by the HTTP layer."""

    filename: str
    path: Path


@dataclass(frozen=True)
class DeployResult:
    instance: Instance
    url: str
    structure: ProjectStructure
    spec: BuildSpec


@dataclass
class DeployAttempt:
    """Resources acquired so far by one deploy; drives rollback."""

    instance_id: str
    workspace: Workspace | None = None
    structure: ProjectStructure | None = None
    spec: BuildSpec | None = None
    port: int | None = None
    image_ref: str | None = None
    container_id: str | None = None
    rollback_errors: list[str] = field(default_factory=list)


class LifecycleManager:
    """Owns the deploy transaction and the teardown path."""

    def __init__(
        self,
        ports: PortAllocator,
        engine: EngineDriver,
        registry: InstanceRegistry,
        ingestor: BundleIngestor | None = None,
        synthesizer: BuildSpecSynthesizer | None = None,
        naming: ResourceNaming | None = None,
        ttl_seconds: int | None = None,
        public_base_url: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = get_settings()
        self._ports = ports
        self._engine = engine
        self._registry = registry
        self._ingestor = ingestor or BundleIngestor()
        self._synthesizer = synthesizer or BuildSpecSynthesizer()
        self._naming = naming or ResourceNaming(settings.docker.resource_prefix)
        self._ttl = timedelta(seconds=ttl_seconds or settings.ttl.instance_seconds)
        self._public_base_url = public_base_url or settings.server.public_base_url
        self._clock = clock

    @property
    def ports_available(self) -> int:
        return self._ports.available

    def url_for(self, port: int) -> str:
        return f"{self._public_base_url}:{port}"

    # =================================================================
    # Deploy
    # =================================================================

    async def deploy(self, name: str, artifact: Artifact, owner: str) -> DeployResult:
        """Deploy an uploaded artifact as a new time-boxed instance.

        Raises:
            DeployBoxError: Always a typed error on failure
        """
        attempt = DeployAttempt(instance_id=generate_ulid())
        start = time.monotonic()
        logger.info(
            "Deploy started: %s",
            name,
            extra={
                "event": LogEvent.DEPLOY_STARTED,
                "instance_id": attempt.instance_id,
                "owner_id": owner,
                "upload": artifact.filename,
            },
        )

        try:
            result = await self._deploy(name, artifact, owner, attempt)
        except asyncio.CancelledError:
            if attempt.port is not None:
                await asyncio.shield(self._rollback(attempt))
            DEPLOYS_TOTAL.labels(outcome="cancelled").inc()
            logger.warning(
                "Deploy cancelled: %s",
                name,
                extra={
                    "event": LogEvent.DEPLOY_FAILED,
                    "instance_id": attempt.instance_id,
                    "owner_id": owner,
                    "error_code": "CANCELLED",
                },
            )
            raise
        except Exception as e:
            if attempt.port is not None:
                await self._rollback(attempt)
            error = e if isinstance(e, DeployBoxError) else InternalError(f"Deploy failed: {e}")
            DEPLOYS_TOTAL.labels(outcome=error.code.value).inc()
            logger.warning(
                "Deploy failed: %s",
                error.message,
                extra={
                    "event": LogEvent.DEPLOY_FAILED,
                    "instance_id": attempt.instance_id,
                    "owner_id": owner,
                    "error_code": error.code.value,
                },
                exc_info=not isinstance(e, DeployBoxError),
            )
            if error is e:
                raise
            raise error from e
        finally:
            await self._cleanup(attempt, artifact)

        duration = time.monotonic() - start
        DEPLOYS_TOTAL.labels(outcome="success").inc()
        DEPLOY_DURATION.labels(archetype=result.spec.archetype.value).observe(duration)
        logger.info(
            "Deploy succeeded: %s at %s",
            name,
            result.url,
            extra={
                "event": LogEvent.DEPLOY_SUCCEEDED,
                "instance_id": result.instance.id,
                "owner_id": owner,
                "port": result.instance.port,
                "archetype": result.spec.archetype.value,
                "duration_ms": duration * 1000,
            },
        )
        return result

    async def _deploy(
        self, name: str, artifact: Artifact, owner: str, attempt: DeployAttempt
    ) -> DeployResult:
        attempt.workspace = await asyncio.to_thread(
            self._ingestor.ingest, artifact.filename, artifact.path
        )
        context = attempt.workspace.context

        attempt.structure = await asyncio.to_thread(classify, context)
        attempt.spec = await asyncio.to_thread(
            self._synthesizer.synthesize, attempt.structure, context
        )
        await asyncio.to_thread(self._write_build_files, context, attempt.spec)

        attempt.port = self._ports.allocate(attempt.instance_id)
        PORTS_LEASED.set(len(self._ports.leased()))

        # Set before building so a timed-out build is still cleaned up by tag
        attempt.image_ref = self._naming.image_tag(name, attempt.instance_id)
        await self._engine.build_image(context, attempt.image_ref, DOCKERFILE_NAME)

        attempt.container_id = await self._engine.create_container(
            attempt.image_ref,
            attempt.spec.port,
            attempt.port,
            attempt.spec.limits,
            self._naming.labels(name, owner),
        )
        await self._engine.start(attempt.container_id)

        now = self._clock()
        instance = Instance(
            id=attempt.instance_id,
            name=name,
            owner_id=owner,
            container_id=attempt.container_id,
            image_ref=attempt.image_ref,
            port=attempt.port,
            project_kind=attempt.structure.kind.value,
            archetype=attempt.spec.archetype.value,
            status=InstanceStatus.RUNNING.value,
            created_at=now,
            expires_at=now + self._ttl,
        )
        instance = await self._registry.create(instance)

        return DeployResult(
            instance=instance,
            url=self.url_for(instance.port),
            structure=attempt.structure,
            spec=attempt.spec,
        )

    @staticmethod
    def _write_build_files(context: Path, spec: BuildSpec) -> None:
        (context / DOCKERFILE_NAME).write_text(spec.dockerfile, encoding="utf-8")
        for relative, content in spec.files.items():
            target = context / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

    async def _rollback(self, attempt: DeployAttempt) -> None:
        """Release what a failed deploy acquired. Never raises."""
        if attempt.container_id is not None:
            try:
                await self._engine.stop_and_remove(attempt.container_id)
            except Exception as e:
                attempt.rollback_errors.append(f"container: {e}")
        if attempt.image_ref is not None:
            try:
                await self._engine.remove_image(attempt.image_ref)
            except Exception as e:
                attempt.rollback_errors.append(f"image: {e}")
        if attempt.port is not None:
            self._ports.release(attempt.port, attempt.instance_id)
            PORTS_LEASED.set(len(self._ports.leased()))

        for error in attempt.rollback_errors:
            logger.warning(
                "Rollback step failed: %s",
                error,
                extra={"event": LogEvent.ROLLBACK_STEP_FAILED, "instance_id": attempt.instance_id},
            )
        logger.info(
            "Rolled back deploy %s",
            attempt.instance_id,
            extra={
                "event": LogEvent.ROLLBACK_COMPLETED,
                "instance_id": attempt.instance_id,
                "port": attempt.port,
                "container_id": attempt.container_id,
                "image": attempt.image_ref,
            },
        )

    async def _cleanup(self, attempt: DeployAttempt, artifact: Artifact) -> None:
        """Remove the workspace and the uploaded file."""

        def remove() -> None:
            if attempt.workspace is not None:
                shutil.rmtree(attempt.workspace.root, ignore_errors=True)
            artifact.path.unlink(missing_ok=True)

        try:
            await asyncio.to_thread(remove)
        except OSError as e:
            logger.warning(
                "Cleanup failed: %s",
                e,
                extra={"event": LogEvent.CLEANUP_FAILED, "instance_id": attempt.instance_id},
            )

    # =================================================================
    # Teardown
    # =================================================================

    async def teardown(self, instance: Instance, reason: str = "user") -> None:
        """Reclaim an instance's container, image, port and record.

        Engine failures are logged and never stop the port release or the
        record delete. Safe to call more than once.
        """
        failed = False
        try:
            await self._engine.stop_and_remove(instance.container_id)
        except Exception as e:
            failed = True
            logger.warning(
                "Failed to remove container %s: %s",
                instance.container_id[:12],
                e,
                extra={"event": LogEvent.TEARDOWN_FAILED, "instance_id": instance.id},
            )
        try:
            await self._engine.remove_image(instance.image_ref)
        except Exception as e:
            logger.warning(
                "Failed to remove image %s: %s",
                instance.image_ref,
                e,
                extra={"event": LogEvent.TEARDOWN_FAILED, "instance_id": instance.id},
            )

        self._ports.release(instance.port, instance.id)
        PORTS_LEASED.set(len(self._ports.leased()))
        await self._registry.delete_by_id(instance.id)

        TEARDOWNS_TOTAL.labels(reason=reason).inc()
        logger.info(
            "Tore down instance %s",
            instance.id,
            extra={
                "event": LogEvent.TEARDOWN_COMPLETED,
                "instance_id": instance.id,
                "owner_id": instance.owner_id,
                "port": instance.port,
                "reason": reason,
                "container_removed": not failed,
            },
        )

    async def stop(self, owner: str, instance_id: str) -> None:
        """User-initiated stop of one of the owner's instances.

        Raises:
            InstanceNotFoundError: No such instance for this owner
        """
        instance = await self._registry.get(instance_id)
        if instance is None or instance.owner_id != owner:
            raise InstanceNotFoundError()
        await self.teardown(instance, reason="user")

    async def list_instances(self, owner: str) -> list[Instance]:
        return await self._registry.list_by_owner(owner)
