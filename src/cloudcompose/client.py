"""HTTP client for the remote compute platform.

Resources are grouped by kind: instances, service groups (``services``),
volumes and images. Every call either returns parsed models or raises a
PlatformError subclass; a missing resource is always NotFoundError so callers
can choose between create and adopt.
"""

from __future__ import annotations

import asyncio
import base64
from collections.abc import Callable, Iterable
from typing import Any, Generic, TypeVar

import httpx

from .config import CloudConfig
from .errors import NotFoundError, PlatformError, map_connection_error, map_http_error
from .models import (
    InstanceCreateRequest,
    LogChunk,
    RemoteImage,
    RemoteInstance,
    RemoteServiceGroup,
    RemoteVolume,
    ResourceRef,
    ServiceGroupCreateRequest,
    VolumeCreateRequest,
)

T = TypeVar("T")


class PlatformClient:
    """Async HTTP client for the platform API.

    Use as an async context manager::

        async with PlatformClient(config) as client:
            instance = await client.instances.get(ResourceRef.by_name("web"))
    """

    def __init__(
        self,
        config: CloudConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize client.

        Args:
            config: Platform configuration (URL, metro, token, timeout)
            transport: Optional httpx transport (tests mount an ASGI app here)
        """
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.timeout = config.timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

        self.instances = InstancesAPI(self)
        self.services = ServiceGroupsAPI(self)
        self.volumes = VolumesAPI(self)
        self.images = ImagesAPI(self)

    async def __aenter__(self) -> PlatformClient:
        """Enter async context."""
        headers = {"Content-Type": "application/json"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure client is initialized."""
        if not self._client:
            raise PlatformError(message="Client not initialized. Use 'async with' context.")
        return self._client

    def name_lock(self, kind: str, name: str) -> asyncio.Lock:
        """Lock guarding lookup-then-create for one remote name."""
        key = (kind, name)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make HTTP request to the platform.

        Args:
            method: HTTP method
            path: API path (e.g., /v1/instances)
            json: JSON body for POST/DELETE
            params: Query parameters

        Returns:
            The ``data`` member of the response envelope, or the whole body

        Raises:
            PlatformError: On connection or HTTP errors
        """
        client = self._ensure_client()
        try:
            response = await client.request(method, path, json=json, params=params)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise map_connection_error(str(e), self.base_url, is_timeout=True) from e
        except httpx.ConnectError as e:
            raise map_connection_error(str(e), self.base_url) from e
        except httpx.HTTPStatusError as e:
            # Try to extract error message from response
            try:
                error_data = e.response.json()
                message = error_data.get("message") or error_data.get("detail") or str(e)
            except ValueError:
                message = e.response.text or str(e)
            raise map_http_error(e.response.status_code, message) from e

        if not response.content:
            return None
        body = response.json()
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body


class ResourceAPI(Generic[T]):
    """Common get/list/create/delete calls for one resource kind."""

    kind: str = ""
    path: str = ""
    parse: Callable[[dict[str, Any]], Any]

    def __init__(self, client: PlatformClient):
        self._client = client

    def _ref_path(self, ref: ResourceRef) -> str:
        return f"{self.path}/{ref.kind.value}/{ref.value}"

    async def get(self, ref: ResourceRef) -> T:
        """Get one resource.

        Raises:
            NotFoundError: If no resource matches the reference
        """
        data = await self._client.request("GET", self._ref_path(ref))
        if not data:
            raise NotFoundError(message=f"{self.kind} '{ref}' not found", status_code=404)
        return type(self).parse(data)

    async def find(self, ref: ResourceRef) -> T | None:
        """Get one resource, or None when it does not exist."""
        try:
            return await self.get(ref)
        except NotFoundError:
            return None

    async def list(self) -> list[T]:
        """List all resources of this kind."""
        data = await self._client.request("GET", self.path)
        items = data.get(self.path.rsplit("/", 1)[-1], []) if isinstance(data, dict) else data
        return [type(self).parse(item) for item in items or []]

    async def _create(self, body: dict[str, Any]) -> T:
        data = await self._client.request("POST", self.path, json=body)
        return type(self).parse(data)

    async def delete(self, refs: Iterable[ResourceRef]) -> list[dict[str, Any]]:
        """Delete resources in one batched call.

        Returns:
            Per-entry results; failed entries carry an ``error`` member
        """
        body = [ref.to_dict() for ref in refs]
        data = await self._client.request("DELETE", self.path, json=body)
        return list(data or [])


class InstancesAPI(ResourceAPI[RemoteInstance]):
    """Instance calls."""

    kind = "instance"
    path = "/v1/instances"
    parse = RemoteInstance.from_dict

    async def create(self, request: InstanceCreateRequest) -> RemoteInstance:
        return await self._create(request.to_dict())

    async def start(self, ref: ResourceRef, timeout_ms: int = 0) -> RemoteInstance:
        """Start one instance.

        Args:
            ref: Instance reference
            timeout_ms: How long the platform holds the call waiting for the
                instance to run (0 returns immediately)
        """
        params = {"timeout_ms": timeout_ms} if timeout_ms else None
        data = await self._client.request("POST", f"{self._ref_path(ref)}/start", params=params)
        return RemoteInstance.from_dict(data)

    async def stop(
        self,
        refs: Iterable[ResourceRef],
        drain_timeout_ms: int = 0,
        force: bool = False,
    ) -> list[dict[str, Any]]:
        """Stop instances in one batched call.

        Returns:
            Per-entry results; failed entries carry an ``error`` member
        """
        body = {
            "instances": [ref.to_dict() for ref in refs],
            "drain_timeout_ms": drain_timeout_ms,
            "force": force,
        }
        data = await self._client.request("POST", f"{self.path}/stop", json=body)
        return list(data or [])

    async def log(self, ref: ResourceRef, offset: int, limit: int) -> LogChunk:
        """Fetch a page of console output.

        Args:
            ref: Instance reference
            offset: Byte offset; negative values count from the end
            limit: Maximum number of bytes
        """
        data = await self._client.request(
            "GET",
            f"{self._ref_path(ref)}/log",
            params={"offset": offset, "limit": limit},
        )
        return LogChunk(
            output=base64.b64decode(data.get("output", "")),
            start=data["range"]["start"],
            end=data["range"]["end"],
            available_start=data["available"]["start"],
            available_end=data["available"]["end"],
        )


class ServiceGroupsAPI(ResourceAPI[RemoteServiceGroup]):
    """Service group calls."""

    kind = "service group"
    path = "/v1/services"
    parse = RemoteServiceGroup.from_dict

    async def create(self, request: ServiceGroupCreateRequest) -> RemoteServiceGroup:
        return await self._create(request.to_dict())


class VolumesAPI(ResourceAPI[RemoteVolume]):
    """Volume calls."""

    kind = "volume"
    path = "/v1/volumes"
    parse = RemoteVolume.from_dict

    async def create(self, request: VolumeCreateRequest) -> RemoteVolume:
        return await self._create(request.to_dict())


class ImagesAPI(ResourceAPI[RemoteImage]):
    """Image catalog calls. Images are listed only."""

    kind = "image"
    path = "/v1/images"
    parse = RemoteImage.from_dict
