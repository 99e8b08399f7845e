"""Project structure classification.

The policy is a set of ordered rule tables evaluated top-down, first match
wins. Rules work on RootListing snapshots so they can be exercised without
touching the filesystem; classify() is the only function that does I/O.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from deploybox.core.domain import Framework, ProjectKind, ProjectStructure, Runtime
from deploybox.core.logging_schema import LogEvent
from deploybox.services.synthesizer import archetype_port, select_archetype

logger = logging.getLogger(__name__)

FRONTEND_DIRS = ("client", "frontend", "web", "ui", "app")
BACKEND_DIRS = ("server", "backend", "api")
MANIFEST = "package.json"


@dataclass(frozen=True)
class RootListing:
    """Names of the regular files and directories directly under a path."""

    files: frozenset[str] = frozenset()
    dirs: frozenset[str] = frozenset()

    @classmethod
    def of(cls, files: set[str] | None = None, dirs: set[str] | None = None) -> "RootListing":
        return cls(files=frozenset(files or ()), dirs=frozenset(dirs or ()))

    @classmethod
    def scan(cls, path: Path) -> "RootListing":
        """Snapshot a directory. A missing or unreadable directory is empty."""
        files: set[str] = set()
        dirs: set[str] = set()
        try:
            for entry in path.iterdir():
                if entry.is_dir():
                    dirs.add(entry.name)
                elif entry.is_file():
                    files.add(entry.name)
        except OSError:
            pass
        return cls(files=frozenset(files), dirs=frozenset(dirs))

    def has_file(self, name: str) -> bool:
        return name in self.files

    def has_dir(self, name: str) -> bool:
        return name in self.dirs


# (predicate, kind) evaluated in order when no frontend/backend dir matched
ROOT_RULES: list[tuple[Callable[[RootListing], bool], ProjectKind]] = [
    (
        lambda r: r.has_file(MANIFEST) and r.has_dir("public") and r.has_dir("src"),
        ProjectKind.FULLSTACK_MONOREPO,
    ),
    (lambda r: r.has_file(MANIFEST), ProjectKind.NODE_ONLY),
    (
        lambda r: r.has_file("requirements.txt") or r.has_file("manage.py"),
        ProjectKind.PYTHON_ONLY,
    ),
]

# (dependency names, framework); any listed dependency matches
FRAMEWORK_RULES: list[tuple[tuple[str, ...], Framework]] = [
    (("react", "react-dom"), Framework.REACT),
    (("vue", "@vue/cli"), Framework.VUE),
    (("@angular/core",), Framework.ANGULAR),
    (("svelte",), Framework.SVELTE),
    (("next",), Framework.NEXTJS),
]
DEFAULT_FRAMEWORK = Framework.REACT

RUNTIME_RULES: list[tuple[Callable[[RootListing], bool], Runtime]] = [
    (lambda r: r.has_file("manage.py"), Runtime.DJANGO),
    (lambda r: r.has_file("app.py") and r.has_file("requirements.txt"), Runtime.FLASK),
    (lambda r: r.has_file(MANIFEST), Runtime.NODE),
]


def match_dir(listing: RootListing, candidates: tuple[str, ...]) -> str | None:
    """First candidate that exists as a directory."""
    for name in candidates:
        if listing.has_dir(name):
            return name
    return None


def root_kind(listing: RootListing) -> ProjectKind:
    for predicate, kind in ROOT_RULES:
        if predicate(listing):
            return kind
    return ProjectKind.UNKNOWN


def framework_from_dependencies(dependencies: dict[str, Any] | None) -> Framework:
    """Map merged dependencies to a framework.

    None (unreadable manifest) and no match fall back to the first rule.
    """
    if dependencies:
        for names, framework in FRAMEWORK_RULES:
            if any(name in dependencies for name in names):
                return framework
    return DEFAULT_FRAMEWORK


def runtime_from_listing(listing: RootListing, default: Runtime = Runtime.NODE) -> Runtime:
    for predicate, runtime in RUNTIME_RULES:
        if predicate(listing):
            return runtime
    return default


def read_dependencies(manifest: Path) -> dict[str, Any] | None:
    """Merged dependencies + devDependencies, or None if unreadable."""
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
        deps = data.get("dependencies") or {}
        dev_deps = data.get("devDependencies") or {}
        if not isinstance(deps, dict) or not isinstance(dev_deps, dict):
            return None
        return {**deps, **dev_deps}
    except (OSError, ValueError, AttributeError) as e:
        logger.warning("Unreadable manifest %s: %s", manifest, e)
        return None


def detect_framework(frontend_path: Path) -> Framework:
    listing = RootListing.scan(frontend_path)
    if not listing.has_file(MANIFEST):
        return Framework.STATIC
    return framework_from_dependencies(read_dependencies(frontend_path / MANIFEST))


def build_structure(
    kind: ProjectKind,
    frontend_dir: str | None = None,
    frontend_framework: Framework | None = None,
    backend_dir: str | None = None,
    backend_runtime: Runtime | None = None,
) -> ProjectStructure:
    """Assemble a structure with the exposed port of its archetype."""
    archetype = select_archetype(kind, backend_runtime)
    return ProjectStructure(
        kind=kind,
        exposed_port=archetype_port(archetype),
        frontend_dir=frontend_dir,
        frontend_framework=frontend_framework,
        backend_dir=backend_dir,
        backend_runtime=backend_runtime,
    )


def classify(path: Path) -> ProjectStructure:
    """Classify the build context at path. Never raises."""
    root = RootListing.scan(path)
    frontend_dir = match_dir(root, FRONTEND_DIRS)
    backend_dir = match_dir(root, BACKEND_DIRS)

    if frontend_dir is None and backend_dir is None:
        kind = root_kind(root)
        if kind == ProjectKind.FULLSTACK_MONOREPO:
            structure = build_structure(
                kind,
                frontend_dir=".",
                frontend_framework=Framework.REACT,
                backend_dir=".",
                backend_runtime=Runtime.NODE,
            )
        elif kind == ProjectKind.NODE_ONLY:
            structure = build_structure(kind, backend_dir=".", backend_runtime=Runtime.NODE)
        elif kind == ProjectKind.PYTHON_ONLY:
            structure = build_structure(
                kind,
                backend_dir=".",
                backend_runtime=runtime_from_listing(root, default=Runtime.PYTHON),
            )
        else:
            structure = build_structure(kind)
    else:
        framework = detect_framework(path / frontend_dir) if frontend_dir else None
        runtime = (
            runtime_from_listing(RootListing.scan(path / backend_dir)) if backend_dir else None
        )
        if frontend_dir and backend_dir:
            kind = ProjectKind.FULLSTACK_SEPARATE
        elif frontend_dir:
            kind = ProjectKind.CLIENT_ONLY
        else:
            kind = ProjectKind.SERVER_ONLY
        structure = build_structure(
            kind,
            frontend_dir=frontend_dir,
            frontend_framework=framework,
            backend_dir=backend_dir,
            backend_runtime=runtime,
        )

    logger.info(
        "Classified project as %s",
        structure.kind,
        extra={
            "event": LogEvent.STRUCTURE_CLASSIFIED,
            "kind": structure.kind,
            "frontend": structure.frontend_framework,
            "backend": structure.backend_runtime,
        },
    )
    return structure
