"""Bundle ingestion: turn an uploaded artifact into a build workspace.

Accepted artifacts:
- .zip archive, extracted into a fresh workspace directory
- a single source file (.js, .mjs, .cjs), copied in under its basename

A zip holding exactly one top-level directory uses that directory as the
build context.
"""

import logging
import shutil
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from ulid import ULID

from deploybox.app.config import get_settings
from deploybox.core.errors import EmptyArchiveError, InvalidBundleError
from deploybox.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSIONS = frozenset({".zip"})
SOURCE_EXTENSIONS = frozenset({".js", ".mjs", ".cjs"})


@dataclass(frozen=True)
class Workspace:
    """Per-attempt build directory.

    root is owned by the deploy attempt and removed when it ends.
    context is root or the single directory wrapped inside it.
    """

    root: Path
    context: Path


class BundleIngestor:
    """Extracts or copies uploads into fresh workspace directories."""

    def __init__(self, builds_dir: Path | str | None = None) -> None:
        self._builds_dir = Path(builds_dir or get_settings().storage.builds_dir)

    def ingest(self, declared_filename: str, upload_path: Path) -> Workspace:
        """Materialize an upload as a Workspace.

        Args:
            declared_filename: Filename as sent by the client
            upload_path: Where the upload bytes were stored

        Raises:
            InvalidBundleError: Unsupported extension, corrupt archive, or
                an archive entry escaping the workspace
            EmptyArchiveError: Archive with no entries
        """
        basename = PurePosixPath(declared_filename.replace("\\", "/")).name
        extension = PurePosixPath(basename).suffix.lower()
        if extension not in ARCHIVE_EXTENSIONS | SOURCE_EXTENSIONS or not basename:
            raise InvalidBundleError()

        root = self._builds_dir / str(ULID()).lower()
        root.mkdir(parents=True, exist_ok=False)

        try:
            if extension in ARCHIVE_EXTENSIONS:
                context = self._extract(upload_path, root)
            else:
                shutil.copyfile(upload_path, root / basename)
                context = root
        except Exception:
            shutil.rmtree(root, ignore_errors=True)
            raise

        logger.info(
            "Ingested bundle %s",
            basename,
            extra={
                "event": LogEvent.BUNDLE_INGESTED,
                "workspace": str(root),
                "nested": context != root,
            },
        )
        return Workspace(root=root, context=context)

    def _extract(self, archive: Path, root: Path) -> Path:
        try:
            with zipfile.ZipFile(archive) as zf:
                resolved_root = root.resolve()
                for member in zf.namelist():
                    target = (root / member).resolve()
                    if not target.is_relative_to(resolved_root):
                        raise InvalidBundleError(f"Archive entry escapes workspace: {member}")
                zf.extractall(root)
        except zipfile.BadZipFile as e:
            raise InvalidBundleError(f"Corrupt archive: {e}") from e
        except (NotImplementedError, RuntimeError, zipfile.LargeZipFile) as e:
            # unsupported compression, encrypted entries, zip64 without support
            raise InvalidBundleError(f"Unsupported archive: {e}") from e

        entries = list(root.iterdir())
        if not entries:
            raise EmptyArchiveError()

        if len(entries) == 1 and entries[0].is_dir():
            return entries[0]
        return root
