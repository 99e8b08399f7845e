"""Build spec synthesis: ProjectStructure -> Dockerfile.

Archetype selection is an ordered rule table, first match wins. Each
archetype has a fixed container port; the Dockerfile sets ENV PORT and
EXPOSE to it and the start command binds it.

Output is deterministic for a given structure and build context.
"""

import json
import logging
from collections.abc import Callable
from pathlib import Path

from deploybox.app.config import get_settings
from deploybox.core.domain import (
    FRAMEWORK_BUILD_DIRS,
    FULLSTACK_ARCHETYPES,
    Archetype,
    BuildSpec,
    Framework,
    ProjectKind,
    ProjectStructure,
    ResourceLimits,
    Runtime,
)
from deploybox.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)

DOCKERFILE_NAME = "Dockerfile"

ARCHETYPE_PORTS: dict[Archetype, int] = {
    Archetype.NODE_SEPARATE: 5000,
    Archetype.DJANGO_SEPARATE: 8000,
    Archetype.FLASK_SEPARATE: 5000,
    Archetype.MONOREPO: 3000,
    Archetype.NODE_BACKEND: 5000,
    Archetype.PYTHON_BACKEND: 8000,
    Archetype.GENERIC: 3000,
}

_PYTHON_RUNTIMES = (Runtime.DJANGO, Runtime.FLASK, Runtime.PYTHON)

# (predicate(kind, runtime), archetype) evaluated in order
ARCHETYPE_RULES: list[tuple[Callable[[ProjectKind, Runtime | None], bool], Archetype]] = [
    (
        lambda k, r: k == ProjectKind.FULLSTACK_SEPARATE and r == Runtime.NODE,
        Archetype.NODE_SEPARATE,
    ),
    (
        lambda k, r: k == ProjectKind.FULLSTACK_SEPARATE and r == Runtime.DJANGO,
        Archetype.DJANGO_SEPARATE,
    ),
    (
        lambda k, r: k == ProjectKind.FULLSTACK_SEPARATE and r == Runtime.FLASK,
        Archetype.FLASK_SEPARATE,
    ),
    (lambda k, r: k == ProjectKind.FULLSTACK_MONOREPO, Archetype.MONOREPO),
    (
        lambda k, r: k == ProjectKind.NODE_ONLY
        or (k == ProjectKind.SERVER_ONLY and r == Runtime.NODE),
        Archetype.NODE_BACKEND,
    ),
    (
        lambda k, r: k == ProjectKind.PYTHON_ONLY
        or (k == ProjectKind.SERVER_ONLY and r in _PYTHON_RUNTIMES),
        Archetype.PYTHON_BACKEND,
    ),
]
FALLBACK_ARCHETYPE = Archetype.GENERIC

NODE_ENTRY_CANDIDATES = ("server.js", "index.js", "app.js", "main.js")
PYTHON_ENTRY_CANDIDATES = ("app.py", "main.py", "server.py")
DEFAULT_NODE_ENTRY = "index.js"

DEFAULT_NODE_SERVER = """\
const http = require('http');

const port = process.env.PORT || 3000;

http
  .createServer((req, res) => {
    res.writeHead(200, { 'Content-Type': 'text/plain' });
    res.end('Deployed with deploybox\\n');
  })
  .listen(port, '0.0.0.0', () => {
    console.log(`Listening on ${port}`);
  });
"""


def select_archetype(kind: ProjectKind, backend_runtime: Runtime | None) -> Archetype:
    for predicate, archetype in ARCHETYPE_RULES:
        if predicate(kind, backend_runtime):
            return archetype
    return FALLBACK_ARCHETYPE


def archetype_port(archetype: Archetype) -> int:
    return ARCHETYPE_PORTS[archetype]


def _prefix(directory: str | None) -> str:
    """COPY source prefix for a context-relative directory."""
    if directory in (None, "", "."):
        return ""
    return f"{directory}/"


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        return False


def _first_script(directory: Path, suffix: str) -> str | None:
    """Lexicographically first file with suffix in directory, if any."""
    try:
        scripts = sorted(p.name for p in directory.iterdir() if p.is_file() and p.suffix == suffix)
    except OSError:
        return None
    return scripts[0] if scripts else None


def resolve_node_entry(directory: Path) -> tuple[str, bool]:
    """Find the Node entry point in directory.

    Order: manifest "main" if the file exists, the conventional names, the
    lexicographically first .js file.

    Returns:
        (entry file name, found). found is False when a default server
        has to be synthesized.
    """
    manifest = directory / "package.json"
    if _is_file(manifest):
        try:
            main = json.loads(manifest.read_text(encoding="utf-8")).get("main")
        except (OSError, ValueError, AttributeError):
            main = None
        if isinstance(main, str) and main and _is_file(directory / main):
            return main.removeprefix("./"), True

    for name in NODE_ENTRY_CANDIDATES:
        if _is_file(directory / name):
            return name, True

    script = _first_script(directory, ".js")
    if script is not None:
        return script, True

    return DEFAULT_NODE_ENTRY, False


def resolve_python_entry(directory: Path) -> str:
    for name in PYTHON_ENTRY_CANDIDATES:
        if _is_file(directory / name):
            return name
    return _first_script(directory, ".py") or PYTHON_ENTRY_CANDIDATES[0]


class BuildSpecSynthesizer:
    """Produces a BuildSpec (Dockerfile + extra files) for a structure."""

    def __init__(
        self,
        node_image: str | None = None,
        python_image: str | None = None,
        memory_bytes: int | None = None,
        fullstack_memory_bytes: int | None = None,
        cpu_shares: int | None = None,
    ) -> None:
        settings = get_settings()
        self._node_image = node_image or settings.docker.node_image
        self._python_image = python_image or settings.docker.python_image
        self._memory = memory_bytes or settings.limits.memory_bytes
        self._fullstack_memory = fullstack_memory_bytes or settings.limits.fullstack_memory_bytes
        self._cpu_shares = cpu_shares or settings.limits.cpu_shares

    def synthesize(self, structure: ProjectStructure, context: Path) -> BuildSpec:
        """Build the spec for structure in the build context. Never raises."""
        archetype = select_archetype(structure.kind, structure.backend_runtime)
        port = archetype_port(archetype)
        files: dict[str, str] = {}
        entry_point: str | None = None

        if archetype in (Archetype.NODE_SEPARATE, Archetype.NODE_BACKEND, Archetype.GENERIC):
            backend_dir = structure.backend_dir if archetype != Archetype.GENERIC else None
            entry_point, found = resolve_node_entry(context / _prefix(backend_dir))
            if not found:
                files[f"{_prefix(backend_dir)}{entry_point}"] = DEFAULT_NODE_SERVER
        elif archetype == Archetype.PYTHON_BACKEND and structure.backend_runtime == Runtime.PYTHON:
            entry_point = resolve_python_entry(context / _prefix(structure.backend_dir))
        elif archetype in (Archetype.DJANGO_SEPARATE, Archetype.PYTHON_BACKEND):
            entry_point = "manage.py" if structure.backend_runtime == Runtime.DJANGO else "app.py"
        elif archetype == Archetype.FLASK_SEPARATE:
            entry_point = "app.py"

        dockerfile = self._render(archetype, structure, port, entry_point)
        memory = self._fullstack_memory if archetype in FULLSTACK_ARCHETYPES else self._memory

        logger.info(
            "Synthesized %s build spec",
            archetype,
            extra={
                "event": LogEvent.SPEC_SYNTHESIZED,
                "archetype": archetype,
                "port": port,
                "entry_point": entry_point,
            },
        )
        return BuildSpec(
            archetype=archetype,
            dockerfile=dockerfile,
            port=port,
            limits=ResourceLimits(memory_bytes=memory, cpu_shares=self._cpu_shares),
            entry_point=entry_point,
            files=files,
        )

    # =================================================================
    # Templates
    # =================================================================

    def _render(
        self,
        archetype: Archetype,
        structure: ProjectStructure,
        port: int,
        entry_point: str | None,
    ) -> str:
        backend = _prefix(structure.backend_dir)

        if archetype == Archetype.NODE_SEPARATE:
            lines = self._frontend_stage(structure)
            lines += [
                f"FROM {self._node_image}",
                "WORKDIR /app",
                f"COPY {backend or '.'} ./",
                *self._npm_install(),
                *self._frontend_copy(structure, "./public"),
            ]
            cmd = ["node", entry_point]
        elif archetype == Archetype.DJANGO_SEPARATE:
            lines = self._frontend_stage(structure)
            lines += [
                f"FROM {self._python_image}",
                "WORKDIR /app",
                f"COPY {backend or '.'} ./",
                *self._pip_install(),
                *self._frontend_copy(structure, "./static"),
            ]
            cmd = ["python", "manage.py", "runserver", f"0.0.0.0:{port}"]
        elif archetype == Archetype.FLASK_SEPARATE:
            lines = self._frontend_stage(structure)
            lines += [
                f"FROM {self._python_image}",
                "WORKDIR /app",
                f"COPY {backend or '.'} ./",
                *self._pip_install(),
                *self._frontend_copy(structure, "./static"),
            ]
            cmd = ["python", "-m", "flask", "run", "--host", "0.0.0.0", "--port", str(port)]
        elif archetype == Archetype.MONOREPO:
            lines = [
                f"FROM {self._node_image}",
                "WORKDIR /app",
                "COPY . ./",
                *self._npm_install(production=False),
                "RUN npm run build --if-present",
            ]
            cmd = ["npm", "start"]
        elif archetype == Archetype.NODE_BACKEND:
            lines = [
                f"FROM {self._node_image}",
                "WORKDIR /app",
                f"COPY {backend or '.'} ./",
                *self._npm_install(),
            ]
            cmd = ["node", entry_point]
        elif archetype == Archetype.PYTHON_BACKEND:
            lines = [
                f"FROM {self._python_image}",
                "WORKDIR /app",
                f"COPY {backend or '.'} ./",
                *self._pip_install(),
            ]
            if structure.backend_runtime == Runtime.DJANGO:
                cmd = ["python", "manage.py", "runserver", f"0.0.0.0:{port}"]
            elif structure.backend_runtime == Runtime.FLASK:
                cmd = ["python", "-m", "flask", "run", "--host", "0.0.0.0", "--port", str(port)]
            else:
                cmd = ["python", entry_point]
        else:
            lines = [
                f"FROM {self._node_image}",
                "WORKDIR /app",
                "COPY . ./",
                *self._npm_install(),
            ]
            cmd = ["node", entry_point]

        lines += [
            f"ENV PORT={port}",
            f"EXPOSE {port}",
            f"CMD {json.dumps(cmd)}",
        ]
        return "\n".join(lines) + "\n"

    def _frontend_stage(self, structure: ProjectStructure) -> list[str]:
        if structure.frontend_framework in (None, Framework.STATIC):
            return []
        frontend = _prefix(structure.frontend_dir)
        return [
            f"FROM {self._node_image} AS frontend-build",
            "WORKDIR /app/frontend",
            f"COPY {frontend or '.'} ./",
            *self._npm_install(production=False),
            "RUN npm run build",
            "",
        ]

    def _frontend_copy(self, structure: ProjectStructure, target: str) -> list[str]:
        framework = structure.frontend_framework
        if framework is None:
            return []
        if framework == Framework.STATIC:
            return [f"COPY {_prefix(structure.frontend_dir) or '.'} {target}"]
        build_dir = FRAMEWORK_BUILD_DIRS[framework]
        return [f"COPY --from=frontend-build /app/frontend/{build_dir} {target}"]

    @staticmethod
    def _npm_install(production: bool = True) -> list[str]:
        flags = " --omit=dev" if production else ""
        return [f"RUN if [ -f package.json ]; then npm install{flags}; fi"]

    @staticmethod
    def _pip_install() -> list[str]:
        return [
            "RUN if [ -f requirements.txt ]; then "
            "pip install --no-cache-dir -r requirements.txt; fi"
        ]
