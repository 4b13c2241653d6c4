"""Port and network planning.

Each network a requested service is attached to becomes one service group on
the platform. The published ports of the services in that network become the
group's listeners. Planning is pure and happens before any remote call, so
configuration mistakes fail without side effects.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..client import PlatformClient
from ..errors import (
    InvalidPortError,
    MultipleNetworksError,
    PlatformError,
    ReconcileError,
    UnsupportedProtocolError,
    reconcile_error,
)
from ..models import Handler, Listener, RemoteServiceGroup, ResourceRef, ServiceGroupCreateRequest
from ..shared.logging import get_logger
from .naming import network_name
from .project import PortMapping, Project, Service

logger = get_logger(__name__)

KIND = "service group"
DEFAULT_NETWORK = "default"
HTTPS_PORT = 443
HTTP_PORT = 80
SUPPORTED_PROTOCOLS = ("", "tls", "tcp")


@dataclass
class ServiceGroupPlan:
    """What one service group should look like."""

    alias: str
    name: str
    listeners: list[Listener] = field(default_factory=list)
    domains: list[str] = field(default_factory=list)
    services: list[str] = field(default_factory=list)
    external: bool = False

    def add_listeners(self, listeners: list[Listener]) -> None:
        for listener in listeners:
            if listener not in self.listeners:
                self.listeners.append(listener)

    def add_domain(self, domain: str) -> None:
        if domain and domain not in self.domains:
            self.domains.append(domain)


def network_alias(service: Service) -> str:
    """The network a service belongs to; services without one join the default."""
    if service.networks:
        return service.networks[0]
    return DEFAULT_NETWORK


def listeners_for_port(port: PortMapping) -> list[Listener]:
    """Translate a published port into service group listeners.

    Port 443 terminates TLS and serves HTTP, with plain HTTP on port 80
    redirected to it. Every other port gets TLS only.

    Raises:
        UnsupportedProtocolError: If the protocol is not tls or tcp
        InvalidPortError: If the published port is not a number
    """
    if port.protocol not in SUPPORTED_PROTOCOLS:
        raise UnsupportedProtocolError(protocol=port.protocol)

    try:
        published = int(port.published)
    except ValueError as e:
        raise InvalidPortError(message=f"invalid published port '{port.published}'") from e

    if published == HTTPS_PORT:
        return [
            Listener(HTTPS_PORT, port.target, frozenset({Handler.HTTP, Handler.TLS})),
            Listener(HTTP_PORT, HTTPS_PORT, frozenset({Handler.HTTP, Handler.REDIRECT})),
        ]
    return [Listener(published, port.target, frozenset({Handler.TLS}))]


def normalize_domain(domain: str) -> str:
    """Qualify a dotted domain with a trailing dot."""
    if "." in domain and not domain.endswith("."):
        return domain + "."
    return domain


def plan_service_groups(project: Project, aliases: list[str]) -> dict[str, ServiceGroupPlan]:
    """Plan the service groups needed by the requested services.

    Args:
        project: Loaded project
        aliases: Requested service aliases (already validated)

    Returns:
        Plans keyed by network alias

    Raises:
        MultipleNetworksError: If a service declares more than one network
        UnsupportedProtocolError: If a port protocol cannot be served
        InvalidPortError: If a published port is not a number
    """
    for alias in aliases:
        if len(project.services[alias].networks) > 1:
            raise MultipleNetworksError(service=alias)

    plans: dict[str, ServiceGroupPlan] = {}
    for alias in aliases:
        service = project.services[alias]
        net_alias = network_alias(service)

        plan = plans.get(net_alias)
        if plan is None:
            network = project.networks.get(net_alias)
            plan = ServiceGroupPlan(
                alias=net_alias,
                name=network_name(project.name, net_alias, network),
                external=bool(network and network.external),
            )
            plans[net_alias] = plan

        plan.services.append(alias)
        for port in service.ports:
            plan.add_listeners(listeners_for_port(port))
        if service.domainname:
            plan.add_domain(normalize_domain(service.domainname))

    return plans


class ServiceGroupPlanner:
    """Creates or adopts the service groups of a plan."""

    def __init__(self, client: PlatformClient):
        self.client = client
        self.created: list[str] = []
        self.adopted: list[str] = []

    async def apply(self, plans: dict[str, ServiceGroupPlan]) -> dict[str, RemoteServiceGroup]:
        """Ensure every planned group exists.

        Returns:
            Remote service groups keyed by network alias. Groups skipped for
            having no listeners are absent.

        Raises:
            ReconcileError: If a lookup or create fails
        """
        groups: dict[str, RemoteServiceGroup] = {}
        for alias in sorted(plans):
            group = await self._ensure(plans[alias])
            if group is not None:
                groups[alias] = group
        return groups

    async def _ensure(self, plan: ServiceGroupPlan) -> RemoteServiceGroup | None:
        async with self.client.name_lock(KIND, plan.name):
            try:
                existing = await self.client.services.find(ResourceRef.by_name(plan.name))
            except PlatformError as e:
                raise reconcile_error(KIND, plan.name, "getting", e) from e

            if existing is not None:
                logger.warning(
                    "service group already exists", network=plan.alias, service_group=plan.name
                )
                self.adopted.append(plan.name)
                return existing

            if plan.external:
                raise ReconcileError(
                    message=f"external network '{plan.alias}' not found as '{plan.name}'",
                    kind=KIND,
                    name=plan.name,
                )

            if not plan.listeners:
                logger.warning(
                    "no exposed ports: skipping service group creation", network=plan.alias
                )
                return None

            logger.info("creating service group", network=plan.alias, service_group=plan.name)
            request = ServiceGroupCreateRequest(
                name=plan.name,
                listeners=list(plan.listeners),
                domains=list(plan.domains),
            )
            try:
                created = await self.client.services.create(request)
                group = await self.client.services.get(ResourceRef.by_uuid(created.uuid))
            except PlatformError as e:
                raise reconcile_error(KIND, plan.name, "creating", e) from e

            self.created.append(plan.name)
            return group
