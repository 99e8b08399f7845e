"""Resource naming utilities for Docker resources."""

import re

from ulid import ULID

# One hyphen per separator run keeps tags inside the registry path grammar
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")
_SLUG_MAX = 40


def slugify(name: str) -> str:
    """Lowercase a user-supplied name into a Docker-reference-safe slug."""
    slug = _SLUG_INVALID.sub("-", name.lower()).strip("-")
    return slug[:_SLUG_MAX].rstrip("-") or "app"


class ResourceNaming:
    """Centralized naming conventions for instance images and containers."""

    LABEL_MANAGED = "deploybox.managed"
    LABEL_OWNER = "deploybox.owner"
    LABEL_NAME = "deploybox.name"

    def __init__(self, prefix: str) -> None:
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def image_tag(self, name: str, attempt_id: str | None = None) -> str:
        """Unique per deploy attempt so concurrent and retried deploys never collide."""
        suffix = (attempt_id or str(ULID())).lower()
        return f"{self._prefix}{slugify(name)}-{suffix}"

    def labels(self, name: str, owner_id: str) -> dict[str, str]:
        return {
            self.LABEL_MANAGED: "true",
            self.LABEL_OWNER: owner_id,
            self.LABEL_NAME: name,
        }
