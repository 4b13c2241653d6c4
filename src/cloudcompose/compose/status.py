"""Recorded project status.

The status file remembers which remote resources a project created or adopted
the last time it was brought up. It is a hint, never the truth: every read
path refreshes it against live listings first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..shared.logging import get_logger
from ..shared.paths import PROJECTS_DIR

logger = get_logger(__name__)


@dataclass
class ResourceMeta:
    """Name and UUID of a remote resource."""

    name: str
    uuid: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "uuid": self.uuid}


def _metas(items: list[dict[str, Any]] | None) -> list[ResourceMeta]:
    return [ResourceMeta(name=i["name"], uuid=i.get("uuid", "")) for i in items or []]


@dataclass
class ProjectStatus:
    """Last known remote resources of a project."""

    name: str
    workdir: str = ""
    compose_file: str = ""
    instances: list[ResourceMeta] = field(default_factory=list)
    networks: list[ResourceMeta] = field(default_factory=list)
    volumes: list[ResourceMeta] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "workdir": self.workdir,
            "compose_file": self.compose_file,
            "instances": [m.to_dict() for m in self.instances],
            "networks": [m.to_dict() for m in self.networks],
            "volumes": [m.to_dict() for m in self.volumes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectStatus:
        return cls(
            name=data["name"],
            workdir=data.get("workdir", ""),
            compose_file=data.get("compose_file", ""),
            instances=_metas(data.get("instances")),
            networks=_metas(data.get("networks")),
            volumes=_metas(data.get("volumes")),
        )

    def merge(self, other: ProjectStatus) -> ProjectStatus:
        """Union of two statuses of the same project, other's entries winning."""

        def union(ours: list[ResourceMeta], theirs: list[ResourceMeta]) -> list[ResourceMeta]:
            merged = {m.name: m for m in ours}
            merged.update({m.name: m for m in theirs})
            return list(merged.values())

        return ProjectStatus(
            name=self.name,
            workdir=other.workdir or self.workdir,
            compose_file=other.compose_file or self.compose_file,
            instances=union(self.instances, other.instances),
            networks=union(self.networks, other.networks),
            volumes=union(self.volumes, other.volumes),
        )


class StatusStore:
    """YAML files under ~/.cloudcompose/projects, one per project."""

    def __init__(self, base_dir: Path | None = None):
        """Initialize store.

        Args:
            base_dir: Directory holding status files (default: ~/.cloudcompose/projects)
        """
        self.base_dir = base_dir or PROJECTS_DIR

    def path(self, project: str) -> Path:
        return self.base_dir / f"{project}.yaml"

    def save(self, status: ProjectStatus) -> Path:
        """Write a project's status, replacing any previous one."""
        self.base_dir.mkdir(parents=True, exist_ok=True)
        path = self.path(status.name)
        with open(path, "w") as f:
            yaml.safe_dump(status.to_dict(), f, default_flow_style=False, sort_keys=False)
        return path

    def load(self, project: str) -> ProjectStatus | None:
        """Read a project's status.

        Returns:
            The recorded status, or None if the project has none or it is unreadable
        """
        path = self.path(project)
        if not path.exists():
            return None
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            return ProjectStatus.from_dict(data)
        except (OSError, yaml.YAMLError, KeyError, TypeError) as e:
            logger.warning("ignoring unreadable status file", path=str(path), error=str(e))
            return None

    def delete(self, project: str) -> bool:
        """Remove a project's status.

        Returns:
            True if a status file was removed
        """
        path = self.path(project)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list(self) -> list[ProjectStatus]:
        """All recorded project statuses, ordered by project name."""
        if not self.base_dir.is_dir():
            return []
        statuses = []
        for path in sorted(self.base_dir.glob("*.yaml")):
            status = self.load(path.stem)
            if status is not None:
                statuses.append(status)
        return statuses
