"""Remote resource names derived from project identity.

The platform rejects underscores in names, so every derived name has them
replaced with hyphens. All functions here are pure: the same project always
maps to the same names, which is what makes re-runs adopt instead of
duplicate.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..errors import ServiceNotFoundError

if TYPE_CHECKING:
    from .project import Network, Project, Service, Volume

# Network and volume names starting with this belong to the project
PRIVATE_PREFIX = "_"


def sanitize(name: str) -> str:
    """Make a name acceptable to the platform."""
    return name.replace("_", "-")


def resource_name(project_name: str, alias: str) -> str:
    """Canonical remote name for a project resource alias."""
    return sanitize(f"{project_name}-{alias}")


def expand_private(project_name: str, name: str) -> str:
    """Rewrite a project-private name (``_suffix``) to ``<project>_suffix``."""
    if name.startswith(PRIVATE_PREFIX):
        return f"{project_name}{name}"
    return name


def instance_name(project_name: str, alias: str, service: Service | None = None) -> str:
    """Remote instance name for a service.

    A container_name override always wins over the derived name.
    """
    if service is not None and service.container_name:
        return service.container_name
    return resource_name(project_name, alias)


def network_name(project_name: str, alias: str, network: Network | None = None) -> str:
    """Remote service group name for a network alias.

    External resources without an explicit name are known by their alias.
    """
    if network is not None and network.name:
        return sanitize(expand_private(project_name, network.name))
    if network is not None and network.external:
        return sanitize(alias)
    return resource_name(project_name, alias)


def volume_name(project_name: str, alias: str, volume: Volume | None = None) -> str:
    """Remote volume name for a volume alias."""
    if volume is not None and volume.name:
        return sanitize(expand_private(project_name, volume.name))
    if volume is not None and volume.external:
        return sanitize(alias)
    return resource_name(project_name, alias)


def service_instance_names(project: Project, aliases: list[str] | None = None) -> dict[str, str]:
    """Map service aliases to instance names.

    Args:
        project: The project
        aliases: Services to include (all when empty)

    Raises:
        ServiceNotFoundError: If an alias is not declared
    """
    names: dict[str, str] = {}
    for alias in aliases or sorted(project.services):
        service = project.services.get(alias)
        if service is None:
            raise ServiceNotFoundError(service=alias)
        names[alias] = instance_name(project.name, alias, service)
    return names
