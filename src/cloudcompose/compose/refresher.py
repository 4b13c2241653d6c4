"""Recorded status revalidation.

A recorded status can go stale: instances get deleted out of band, names get
reused by other projects, the compose file changes. The refresher compares the
record with live listings and reports drift as warnings. It never changes
remote state.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..client import PlatformClient
from ..shared.logging import get_logger
from .naming import expand_private, network_name, sanitize, service_instance_names, volume_name
from .project import Project
from .status import ProjectStatus, ResourceMeta

logger = get_logger(__name__)


@dataclass
class RefreshResult:
    """Corrected status and the drift found on the way."""

    status: ProjectStatus
    warnings: list[str] = field(default_factory=list)
    orphans: list[str] = field(default_factory=list)
    collisions: list[str] = field(default_factory=list)


class FleetRefresher:
    """Reconciles a recorded project status with live platform listings."""

    def __init__(self, client: PlatformClient, project: Project):
        self.client = client
        self.project = project

    def _service_names(self) -> set[str]:
        return set(service_instance_names(self.project).values())

    def _recorded_name(self, name: str) -> str:
        return sanitize(expand_private(self.project.name, name))

    async def refresh(self, status: ProjectStatus) -> RefreshResult:
        """Produce a corrected copy of a recorded status.

        Raises:
            PlatformError: If a live listing fails
        """
        result = RefreshResult(
            status=ProjectStatus(
                name=status.name,
                workdir=status.workdir,
                compose_file=status.compose_file,
            )
        )

        await self._refresh_instances(status, result)
        await self._refresh_networks(status, result)
        await self._refresh_volumes(status, result)

        for warning in result.warnings:
            logger.warning(warning, project=self.project.name)
        return result

    async def _refresh_instances(self, status: ProjectStatus, result: RefreshResult) -> None:
        live = {i.name: i for i in await self.client.instances.list()}
        services = self._service_names()

        retained: list[ResourceMeta] = []
        for recorded in status.instances:
            instance = live.get(recorded.name)
            if instance is None:
                continue
            retained.append(ResourceMeta(instance.name, instance.uuid))
            if instance.is_running and instance.name not in services:
                result.orphans.append(instance.name)
                result.warnings.append(
                    f"orphan machine '{instance.name}' is running but no longer part of the project"
                )

        retained_names = {m.name for m in retained}
        for name in sorted(live):
            instance = live[name]
            if instance.is_running and name in services and name not in retained_names:
                result.collisions.append(name)
                result.warnings.append(
                    f"machine '{name}' already running but not linked to project"
                )

        result.status.instances = retained

    async def _refresh_networks(self, status: ProjectStatus, result: RefreshResult) -> None:
        live = {g.name: g for g in await self.client.services.list()}

        retained: list[ResourceMeta] = []
        for recorded in status.networks:
            group = live.get(self._recorded_name(recorded.name))
            if group is not None:
                retained.append(ResourceMeta(group.name, group.uuid))
        result.status.networks = retained

        retained_names = {m.name for m in retained}
        for alias in sorted(self.project.networks):
            network = self.project.networks[alias]
            if network.external:
                continue
            name = network_name(self.project.name, alias, network)
            if name not in retained_names and name in live:
                result.warnings.append(
                    f"network '{name}' already exists but does not belong to project"
                )

    async def _refresh_volumes(self, status: ProjectStatus, result: RefreshResult) -> None:
        live = {v.name: v for v in await self.client.volumes.list()}

        retained: list[ResourceMeta] = []
        for recorded in status.volumes:
            volume = live.get(self._recorded_name(recorded.name))
            if volume is not None:
                retained.append(ResourceMeta(volume.name, volume.uuid))
        result.status.volumes = retained

        retained_names = {m.name for m in retained}
        for alias in sorted(self.project.volumes):
            volume = self.project.volumes[alias]
            if volume.external:
                continue
            name = volume_name(self.project.name, alias, volume)
            if name not in retained_names and name in live:
                result.warnings.append(
                    f"volume '{name}' already exists but does not belong to project"
                )
