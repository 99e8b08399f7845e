"""Domain models and enums."""

from deploybox.core.domain.structure import (
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

__all__ = [
    "Archetype",
    "BuildSpec",
    "Framework",
    "ProjectKind",
    "ProjectStructure",
    "ResourceLimits",
    "Runtime",
    "FRAMEWORK_BUILD_DIRS",
    "FULLSTACK_ARCHETYPES",
]
