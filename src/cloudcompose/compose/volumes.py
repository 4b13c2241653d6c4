"""Create-or-adopt for persistent volumes."""

from __future__ import annotations

from dataclasses import dataclass

from ..client import PlatformClient
from ..errors import InvalidVolumeSizeError, PlatformError, ReconcileError, reconcile_error
from ..models import RemoteVolume, ResourceRef, VolumeCreateRequest
from ..shared.logging import get_logger
from ..utils import bytes_to_mb, parse_bytes
from .naming import volume_name
from .project import Project

logger = get_logger(__name__)

KIND = "volume"
DEFAULT_SIZE_MB = 64


def parse_size(value: str | None) -> int:
    """Volume size in megabytes from a human-readable ``size`` option.

    Args:
        value: Size string such as ``512MB`` or ``1Gi``; None means default

    Returns:
        Whole megabytes, at least 1

    Raises:
        InvalidVolumeSizeError: If the string is not a size
    """
    if value is None or value == "":
        return DEFAULT_SIZE_MB
    try:
        size = bytes_to_mb(parse_bytes(value))
    except ValueError as e:
        raise InvalidVolumeSizeError(message=f"invalid volume size '{value}'") from e
    return max(size, 1)


@dataclass
class VolumePlan:
    """A declared volume with its remote name and size."""

    alias: str
    name: str
    size_mb: int
    external: bool = False


def plan_volumes(project: Project) -> dict[str, VolumePlan]:
    """Name and size every declared volume.

    Pure, so a bad size option fails before any remote call.

    Raises:
        InvalidVolumeSizeError: If a size option cannot be parsed
    """
    plans: dict[str, VolumePlan] = {}
    for alias, volume in project.volumes.items():
        plans[alias] = VolumePlan(
            alias=alias,
            name=volume_name(project.name, alias, volume),
            size_mb=parse_size(volume.driver_opts.get("size")),
            external=volume.external,
        )
    return plans


class VolumeProvisioner:
    """Ensures the declared volumes of a project exist."""

    def __init__(self, client: PlatformClient):
        self.client = client
        self.created: list[str] = []
        self.adopted: list[str] = []

    async def apply(self, plans: dict[str, VolumePlan]) -> dict[str, RemoteVolume]:
        """Create or adopt every planned volume.

        Volumes are provisioned for the whole project, not just the requested
        services, so a later partial run finds them in place.

        Returns:
            Remote volumes keyed by volume alias

        Raises:
            ReconcileError: On the first lookup or create failure
        """
        volumes: dict[str, RemoteVolume] = {}
        for alias in sorted(plans):
            volumes[alias] = await self._ensure(plans[alias])
        return volumes

    async def _ensure(self, plan: VolumePlan) -> RemoteVolume:
        async with self.client.name_lock(KIND, plan.name):
            try:
                existing = await self.client.volumes.find(ResourceRef.by_name(plan.name))
            except PlatformError as e:
                raise reconcile_error(KIND, plan.name, "getting", e) from e

            if existing is not None:
                if not plan.external:
                    logger.warning("volume already exists", volume=plan.alias, name=plan.name)
                    self.adopted.append(plan.name)
                return existing

            if plan.external:
                raise ReconcileError(
                    message=f"external volume '{plan.alias}' not found as '{plan.name}'",
                    kind=KIND,
                    name=plan.name,
                )

            logger.info("creating volume", volume=plan.alias, name=plan.name, size_mb=plan.size_mb)
            try:
                created = await self.client.volumes.create(
                    VolumeCreateRequest(name=plan.name, size_mb=plan.size_mb)
                )
                remote = await self.client.volumes.get(ResourceRef.by_uuid(created.uuid))
            except PlatformError as e:
                raise reconcile_error(KIND, plan.name, "creating", e) from e

            self.created.append(plan.name)
            return remote
