"""Image resolution against the platform catalog."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from ..client import PlatformClient
from ..config import CloudConfig
from ..errors import NotBuildableError, PlatformError, reconcile_error
from ..models import RemoteImage
from ..shared.logging import get_logger
from .builder import Builder
from .naming import sanitize
from .project import Project, Service

logger = get_logger(__name__)

KIND = "image"
DEFAULT_TAG = "latest"
# Prefixes the catalog may or may not report
CATALOG_PREFIXES = ("index.unikraft.io/", "official/")


@dataclass
class ImageResolution:
    """Result of image resolution."""

    image: str
    source: str  # catalog, build or fallback
    candidates: list[str]


def with_default_tag(ref: str) -> str:
    """Add the ``latest`` tag to a reference that has neither tag nor digest."""
    if "@" in ref:
        return ref
    if ":" in ref.rsplit("/", 1)[-1]:
        return ref
    return f"{ref}:{DEFAULT_TAG}"


def strip_catalog_prefixes(ref: str) -> str:
    """Drop registry prefixes so references compare by repository and tag."""
    for prefix in CATALOG_PREFIXES:
        if ref.startswith(prefix):
            ref = ref[len(prefix) :]
    return ref


def image_matches(candidate: str, image: RemoteImage) -> bool:
    """Check whether a catalog image satisfies a candidate reference.

    Digest references match on digest, everything else on tags.
    """
    candidate = strip_catalog_prefixes(candidate)
    if "@" in candidate:
        return candidate.split("@", 1)[1] == image.digest
    return any(strip_catalog_prefixes(tag) == candidate for tag in image.tags)


def package_name(config: CloudConfig, service: Service, instance_name: str) -> str:
    """Registry reference a service's build is packaged under.

    The service image is used when set, otherwise the instance name, both
    placed under the registry user unless they already name a namespace.
    """
    name = service.image or sanitize(instance_name)
    if name.startswith("unikraft.io/"):
        name = "index." + name
    if name.startswith(config.registry + "/"):
        return with_default_tag(name)

    user = config.registry_user
    if "/" in name:
        user, name = name.split("/", 1)
    return with_default_tag(f"{config.registry}/{user}/{name}")


class ImageResolver:
    """Resolve the deployable image of each service.

    Candidates are tried in order: a runtime override for the service, its
    explicit image (tag defaulted to ``latest``), then a name synthesized from
    the registry, the registry user and the instance name. The first
    candidate present in the catalog wins. When nothing matches the service
    is built, if it can be, and otherwise the first candidate is used as is.
    """

    def __init__(
        self,
        client: PlatformClient,
        config: CloudConfig,
        builder: Builder | None = None,
        build: bool = True,
        push: bool = True,
        runtimes: dict[str, str] | None = None,
    ):
        """Initialize resolver.

        Args:
            client: Platform client
            config: Configuration (registry and user)
            builder: Build collaborator, used when the catalog has no match
            build: Whether building is allowed
            push: Whether built images are pushed
            runtimes: Image overrides keyed by service alias
        """
        self.client = client
        self.config = config
        self.builder = builder
        self.build = build
        self.push = push
        self.runtimes = runtimes or {}
        self._catalog: list[RemoteImage] | None = None
        self._catalog_lock = asyncio.Lock()

    def candidates(self, alias: str, service: Service, instance_name: str) -> list[str]:
        """Image references to try, most specific first."""
        refs: list[str] = []
        if alias in self.runtimes:
            refs.append(self.runtimes[alias])
        if service.image:
            refs.append(with_default_tag(service.image))
        synthesized = (
            f"{self.config.registry}/{self.config.registry_user}/"
            f"{sanitize(instance_name)}:{DEFAULT_TAG}"
        )
        if synthesized not in refs:
            refs.append(synthesized)
        return refs

    async def catalog(self) -> list[RemoteImage]:
        """List the image catalog once per resolver."""
        async with self._catalog_lock:
            if self._catalog is None:
                try:
                    self._catalog = await self.client.images.list()
                except PlatformError as e:
                    raise reconcile_error(KIND, "catalog", "listing", e) from e
        return self._catalog

    async def resolve(
        self, project: Project, alias: str, instance_name: str
    ) -> ImageResolution:
        """Resolve and record the image of one service.

        The chosen reference is written back to the service's ``image``.

        Raises:
            ReconcileError: If the catalog cannot be listed
            BuildError: If the build collaborator fails
        """
        service = project.services[alias]
        candidates = self.candidates(alias, service, instance_name)
        resolution = await self._resolve(alias, service, instance_name, candidates)
        service.image = resolution.image
        logger.info("resolved image", service=alias, image=resolution.image, source=resolution.source)
        return resolution

    async def _resolve(
        self,
        alias: str,
        service: Service,
        instance_name: str,
        candidates: list[str],
    ) -> ImageResolution:
        catalog = await self.catalog()
        for candidate in candidates:
            if any(image_matches(candidate, image) for image in catalog):
                return ImageResolution(candidate, "catalog", candidates)

        if self.build and self.builder is not None and service.build is not None:
            try:
                built = await self.builder.build(
                    service.build.context,
                    service.build.dockerfile,
                    name=package_name(self.config, service, instance_name),
                    push=self.push,
                )
            except NotBuildableError as e:
                logger.warning("build context not buildable", service=alias, reason=str(e))
                built = None
            if built:
                return ImageResolution(built, "build", candidates)

        logger.warning(
            "image not found in catalog, using first candidate",
            service=alias,
            image=candidates[0],
        )
        return ImageResolution(candidates[0], "fallback", candidates)
