"""Project structure and build spec value types.

ProjectStructure is computed once per deploy attempt by the classifier.
BuildSpec is derived from it by the synthesizer. Both are immutable.
"""

from dataclasses import dataclass, field
from enum import StrEnum


class ProjectKind(StrEnum):
    """Runtime shape of an uploaded project."""

    FULLSTACK_SEPARATE = "fullstack-separate"
    FULLSTACK_MONOREPO = "fullstack-monorepo"
    CLIENT_ONLY = "client-only"
    SERVER_ONLY = "server-only"
    NODE_ONLY = "node-only"
    PYTHON_ONLY = "python-only"
    UNKNOWN = "unknown"


class Framework(StrEnum):
    """Frontend framework."""

    REACT = "react"
    VUE = "vue"
    ANGULAR = "angular"
    SVELTE = "svelte"
    NEXTJS = "nextjs"
    STATIC = "static"


class Runtime(StrEnum):
    """Backend runtime."""

    NODE = "node"
    DJANGO = "django"
    FLASK = "flask"
    PYTHON = "python"


class Archetype(StrEnum):
    """Build template family selected for a structure."""

    NODE_SEPARATE = "node-separate"
    DJANGO_SEPARATE = "django-separate"
    FLASK_SEPARATE = "flask-separate"
    MONOREPO = "monorepo"
    NODE_BACKEND = "node-backend"
    PYTHON_BACKEND = "python-backend"
    GENERIC = "generic"


FULLSTACK_ARCHETYPES = frozenset({
    Archetype.NODE_SEPARATE,
    Archetype.DJANGO_SEPARATE,
    Archetype.FLASK_SEPARATE,
    Archetype.MONOREPO,
})

# Build output directory per framework (relative to the frontend dir)
FRAMEWORK_BUILD_DIRS: dict[Framework, str] = {
    Framework.REACT: "build",
    Framework.VUE: "dist",
    Framework.ANGULAR: "dist",
    Framework.SVELTE: "dist",
    Framework.NEXTJS: "out",
}


@dataclass(frozen=True)
class ProjectStructure:
    """Classified shape of a build context.

    Directory fields are relative to the build context ("." for the root).
    """

    kind: ProjectKind
    exposed_port: int
    frontend_dir: str | None = None
    frontend_framework: Framework | None = None
    backend_dir: str | None = None
    backend_runtime: Runtime | None = None


@dataclass(frozen=True)
class ResourceLimits:
    """Container resource ceilings."""

    memory_bytes: int
    cpu_shares: int


@dataclass(frozen=True)
class BuildSpec:
    """Build description for one deploy attempt.

    files holds extra files (relative path -> content) to write into the
    build context next to the Dockerfile.
    """

    archetype: Archetype
    dockerfile: str
    port: int
    limits: ResourceLimits
    entry_point: str | None = None
    files: dict[str, str] = field(default_factory=dict)
