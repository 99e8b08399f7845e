"""Shared fixtures for deploybox unit tests."""

import io
import zipfile
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from deploybox.adapters.registry import SQLInstanceRegistry
from deploybox.core.interfaces import EngineDriver
from deploybox.core.naming import ResourceNaming
from deploybox.services.ingest import BundleIngestor
from deploybox.services.lifecycle import Artifact, LifecycleManager
from deploybox.services.ports import PortAllocator
from deploybox.services.synthesizer import BuildSpecSynthesizer

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


@pytest.fixture
def ports() -> PortAllocator:
    """Small pool: 3001-3005."""
    return PortAllocator(3001, 3005)


@pytest.fixture
def mock_engine() -> AsyncMock:
    """EngineDriver mock that succeeds."""
    engine = AsyncMock(spec=EngineDriver)
    engine.build_image = AsyncMock(return_value="sha256:abc")
    engine.create_container = AsyncMock(return_value="c0ffee1234567890")
    engine.start = AsyncMock()
    engine.stop_and_remove = AsyncMock()
    engine.remove_image = AsyncMock()
    engine.ping = AsyncMock()
    return engine


@pytest.fixture
async def session_factory(tmp_path: Path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """SQLite-backed session factory with the schema created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'registry.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def registry(session_factory: async_sessionmaker[AsyncSession]) -> SQLInstanceRegistry:
    return SQLInstanceRegistry(session_factory)


@pytest.fixture
def builds_dir(tmp_path: Path) -> Path:
    path = tmp_path / "builds"
    path.mkdir()
    return path


@pytest.fixture
def uploads_dir(tmp_path: Path) -> Path:
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def now() -> datetime:
    """Fixed clock value used by the lifecycle fixture."""
    return FIXED_NOW


@pytest.fixture
def lifecycle(
    ports: PortAllocator,
    mock_engine: AsyncMock,
    registry: SQLInstanceRegistry,
    builds_dir: Path,
    now: datetime,
) -> LifecycleManager:
    return LifecycleManager(
        ports,
        mock_engine,
        registry,
        ingestor=BundleIngestor(builds_dir),
        synthesizer=BuildSpecSynthesizer(),
        naming=ResourceNaming("test-"),
        ttl_seconds=3600,
        public_base_url="http://localhost",
        clock=lambda: now,
    )


@pytest.fixture
def make_zip(uploads_dir: Path) -> Callable[..., Path]:
    """Write a zip from {archive path: content} into the uploads dir."""

    def _make(files: dict[str, str], name: str = "bundle.zip") -> Path:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            for arcname, content in files.items():
                zf.writestr(arcname, content)
        path = uploads_dir / name
        path.write_bytes(buffer.getvalue())
        return path

    return _make


@pytest.fixture
def make_artifact(uploads_dir: Path, make_zip: Callable[..., Path]) -> Callable[..., Artifact]:
    """Build an Artifact from a zip file map or a single file body."""

    def _make(
        files: dict[str, str] | None = None,
        filename: str = "bundle.zip",
        body: str = "",
    ) -> Artifact:
        if files is not None:
            path = make_zip(files, name=f"upload-{filename}")
        else:
            path = uploads_dir / f"upload-{filename}"
            path.write_text(body)
        return Artifact(filename=filename, path=path)

    return _make


@pytest.fixture
def write_tree() -> Callable[[Path, dict[str, str]], Path]:
    """Materialize {relative path: content} under a root directory."""

    def _write(root: Path, files: dict[str, str]) -> Path:
        for relative, content in files.items():
            target = root / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        return root

    return _write
