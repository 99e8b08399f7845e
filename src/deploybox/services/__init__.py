"""Deploy engine services."""

from deploybox.services.ingest import BundleIngestor, Workspace
from deploybox.services.lifecycle import Artifact, DeployResult, LifecycleManager
from deploybox.services.ports import PortAllocator
from deploybox.services.synthesizer import BuildSpecSynthesizer

__all__ = [
    "Artifact",
    "BuildSpecSynthesizer",
    "BundleIngestor",
    "DeployResult",
    "LifecycleManager",
    "PortAllocator",
    "Workspace",
]
