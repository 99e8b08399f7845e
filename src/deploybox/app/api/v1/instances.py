"""Instance API endpoints."""

import asyncio
import shutil
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Annotated, BinaryIO

from fastapi import APIRouter, File, Form, UploadFile
from pydantic import BaseModel

from deploybox.app.api.v1.dependencies import Lifecycle, OwnerId
from deploybox.app.config import get_settings
from deploybox.core.models import Instance, generate_ulid
from deploybox.services.lifecycle import Artifact

router = APIRouter(prefix="/instances", tags=["instances"])


# =============================================================================
# Response Models
# =============================================================================


class InstanceResponse(BaseModel):
    """Instance response."""

    id: str
    name: str
    owner_id: str
    container_id: str
    image_ref: str
    port: int
    project_kind: str
    archetype: str
    status: str
    url: str
    created_at: datetime
    expires_at: datetime


class StructureResponse(BaseModel):
    kind: str
    frontend_dir: str | None
    frontend_framework: str | None
    backend_dir: str | None
    backend_runtime: str | None
    exposed_port: int


class DeployResponse(BaseModel):
    """Deploy response: the new instance plus what was detected."""

    instance: InstanceResponse
    url: str
    structure: StructureResponse
    entry_point: str | None


class InstanceListResponse(BaseModel):
    items: list[InstanceResponse]
    total: int


# =============================================================================
# Helper
# =============================================================================


def _to_response(instance: Instance, url: str) -> InstanceResponse:
    return InstanceResponse(
        id=instance.id,
        name=instance.name,
        owner_id=instance.owner_id,
        container_id=instance.container_id,
        image_ref=instance.image_ref,
        port=instance.port,
        project_kind=instance.project_kind,
        archetype=instance.archetype,
        status=instance.status,
        url=url,
        created_at=instance.created_at,
        expires_at=instance.expires_at,
    )


def _store_upload(source: BinaryIO, filename: str) -> Path:
    """Copy an upload stream to the uploads directory (sync)."""
    uploads = Path(get_settings().storage.uploads_dir)
    uploads.mkdir(parents=True, exist_ok=True)
    suffix = PurePosixPath(filename.replace("\\", "/")).suffix.lower()
    target = uploads / f"{generate_ulid().lower()}{suffix}"
    with target.open("wb") as out:
        shutil.copyfileobj(source, out)
    return target


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", response_model=DeployResponse, status_code=201)
async def create_instance(
    lifecycle: Lifecycle,
    owner_id: OwnerId,
    name: Annotated[str, Form(min_length=1, max_length=255)],
    file: Annotated[UploadFile, File()],
) -> DeployResponse:
    """Deploy an uploaded bundle (.zip or single source file).

    The instance runs for a fixed lifetime and is then reclaimed.
    """
    filename = file.filename or ""
    path = await asyncio.to_thread(_store_upload, file.file, filename)
    await file.close()

    result = await lifecycle.deploy(name, Artifact(filename=filename, path=path), owner_id)

    structure = result.structure
    return DeployResponse(
        instance=_to_response(result.instance, result.url),
        url=result.url,
        structure=StructureResponse(
            kind=structure.kind,
            frontend_dir=structure.frontend_dir,
            frontend_framework=structure.frontend_framework,
            backend_dir=structure.backend_dir,
            backend_runtime=structure.backend_runtime,
            exposed_port=structure.exposed_port,
        ),
        entry_point=result.spec.entry_point,
    )


@router.get("", response_model=InstanceListResponse)
async def list_instances(lifecycle: Lifecycle, owner_id: OwnerId) -> InstanceListResponse:
    """List the caller's instances, newest first."""
    instances = await lifecycle.list_instances(owner_id)
    return InstanceListResponse(
        items=[_to_response(i, lifecycle.url_for(i.port)) for i in instances],
        total=len(instances),
    )


@router.delete("/{instance_id}", status_code=204)
async def delete_instance(instance_id: str, lifecycle: Lifecycle, owner_id: OwnerId) -> None:
    """Stop an instance and reclaim its resources."""
    await lifecycle.stop(owner_id, instance_id)
