"""Project reconciliation.

Brings the remote platform in line with a project: service groups first,
then volumes, then one instance per requested service. Existing resources
with the derived names are adopted, never modified, so running the same
project twice performs no creates the second time.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field

from ..client import PlatformClient
from ..config import CloudConfig
from ..errors import PlatformError, reconcile_error
from ..models import (
    InstanceCreateRequest,
    RemoteInstance,
    RemoteServiceGroup,
    RemoteVolume,
    ResourceRef,
    VolumeAttachment,
)
from ..shared.logging import get_logger
from ..utils import bytes_to_mb
from .builder import Builder
from .images import ImageResolver
from .naming import service_instance_names
from .planner import ServiceGroupPlanner, network_alias, plan_service_groups
from .project import Project
from .status import ProjectStatus, ResourceMeta
from .volumes import VolumeProvisioner, plan_volumes

logger = get_logger(__name__)

KIND = "instance"


@dataclass
class ReconcileResult:
    """Remote resources backing a project after reconciliation.

    ``created`` and ``adopted`` hold ``(kind, name)`` pairs.
    """

    instances: dict[str, RemoteInstance] = field(default_factory=dict)
    service_groups: dict[str, RemoteServiceGroup] = field(default_factory=dict)
    volumes: dict[str, RemoteVolume] = field(default_factory=dict)
    created: list[tuple[str, str]] = field(default_factory=list)
    adopted: list[tuple[str, str]] = field(default_factory=list)

    @property
    def instance_names(self) -> list[str]:
        return [self.instances[alias].name for alias in sorted(self.instances)]

    def to_status(self, project: Project) -> ProjectStatus:
        """Snapshot for the status store."""
        compose_file = str(project.compose_files[0]) if project.compose_files else ""
        return ProjectStatus(
            name=project.name,
            workdir=str(project.workdir),
            compose_file=compose_file,
            instances=[ResourceMeta(i.name, i.uuid) for i in self.instances.values()],
            networks=[ResourceMeta(g.name, g.uuid) for g in self.service_groups.values()],
            volumes=[ResourceMeta(v.name, v.uuid) for v in self.volumes.values()],
        )


def memory_mb(limit: int | None, reservation: int | None) -> int | None:
    """Instance memory: the limit if set, otherwise the reservation."""
    value = limit or reservation
    if not value:
        return None
    return bytes_to_mb(value) or None


def resolve_environment(environment: dict[str, str | None]) -> dict[str, str]:
    """Fill in empty values from the local environment."""
    return {
        key: value if value else os.environ.get(key, "")
        for key, value in environment.items()
    }


def instance_request(
    project: Project,
    alias: str,
    name: str,
    service_groups: dict[str, RemoteServiceGroup],
    volumes: dict[str, RemoteVolume],
) -> InstanceCreateRequest:
    """Build the create request for one service.

    The service image must already be resolved. Mounts of volumes that are
    not provisioned (bind mounts, undeclared aliases) are left out.
    """
    service = project.services[alias]

    attachments = []
    for mount in service.volumes:
        volume = volumes.get(mount.source)
        if volume is None:
            continue
        attachments.append(VolumeAttachment(volume.uuid, mount.target, mount.read_only))

    group = service_groups.get(network_alias(service))

    return InstanceCreateRequest(
        name=name,
        image=service.image or "",
        args=service.args,
        env=resolve_environment(service.environment),
        memory_mb=memory_mb(service.mem_limit, service.mem_reservation),
        service_group=group.uuid if group else None,
        volumes=attachments,
        autostart=False,
    )


class Reconciler:
    """Creates or adopts the remote resources of a project."""

    def __init__(
        self,
        client: PlatformClient,
        config: CloudConfig,
        builder: Builder | None = None,
        *,
        build: bool = True,
        push: bool = True,
        runtimes: dict[str, str] | None = None,
    ):
        """Initialize reconciler.

        Args:
            client: Platform client, shared with other reconcilers so they
                share its per-name locks
            config: Configuration (registry, user, max_parallel)
            builder: Build collaborator for services without a catalog image
            build: Whether building is allowed
            push: Whether built images are pushed
            runtimes: Image overrides keyed by service alias
        """
        self.client = client
        self.config = config
        self.resolver = ImageResolver(
            client, config, builder, build=build, push=push, runtimes=runtimes
        )

    async def reconcile(self, project: Project, aliases: list[str] | None = None) -> ReconcileResult:
        """Reconcile the requested services.

        Args:
            project: Loaded project; resolved images are written back to it
            aliases: Services to reconcile (all, sorted, when empty)

        Returns:
            ReconcileResult with the backing resources

        Raises:
            ConfigurationError: Before any remote call, if the project cannot be
                deployed as written (unknown alias, several networks, bad port
                or volume size)
            ReconcileError: On the first remote failure; nothing is rolled back
        """
        names = service_instance_names(project, aliases)
        requested = list(names)

        group_plans = plan_service_groups(project, requested)
        volume_plans = plan_volumes(project)

        groups = ServiceGroupPlanner(self.client)
        provisioner = VolumeProvisioner(self.client)
        result = ReconcileResult()

        try:
            result.service_groups = await groups.apply(group_plans)
            result.volumes = await provisioner.apply(volume_plans)
        finally:
            result.created += [("service group", n) for n in groups.created]
            result.created += [("volume", n) for n in provisioner.created]
            result.adopted += [("service group", n) for n in groups.adopted]
            result.adopted += [("volume", n) for n in provisioner.adopted]

        semaphore = asyncio.Semaphore(max(1, self.config.max_parallel))

        async def reconcile_one(alias: str) -> RemoteInstance:
            async with semaphore:
                return await self._reconcile_service(project, alias, names[alias], result)

        if self.config.max_parallel <= 1:
            for alias in requested:
                result.instances[alias] = await reconcile_one(alias)
            return result

        tasks = [asyncio.create_task(reconcile_one(alias)) for alias in requested]
        try:
            instances = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        result.instances = dict(zip(requested, instances, strict=True))
        return result

    async def _reconcile_service(
        self,
        project: Project,
        alias: str,
        name: str,
        result: ReconcileResult,
    ) -> RemoteInstance:
        async with self.client.name_lock(KIND, name):
            try:
                existing = await self.client.instances.find(ResourceRef.by_name(name))
            except PlatformError as e:
                raise reconcile_error(KIND, name, "getting", e) from e

            if existing is not None:
                logger.warning("instance already exists", service=alias, name=name)
                if existing.image:
                    project.services[alias].image = existing.image
                result.adopted.append((KIND, name))
                return existing

            await self.resolver.resolve(project, alias, name)
            request = instance_request(project, alias, name, result.service_groups, result.volumes)

            logger.info("creating instance", service=alias, name=name, image=request.image)
            try:
                instance = await self.client.instances.create(request)
            except PlatformError as e:
                raise reconcile_error(KIND, name, "creating", e) from e

            result.created.append((KIND, name))
            return instance
