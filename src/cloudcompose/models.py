"""Remote platform resource models.

These are read-only views of what the platform reports. The core observes
them and requests transitions; it never edits them in place.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class RefKind(Enum):
    """How a resource reference identifies its target."""

    UUID = "uuid"
    NAME = "name"


@dataclass(frozen=True)
class ResourceRef:
    """A reference to a remote resource, either by UUID or by name."""

    kind: RefKind
    value: str

    @classmethod
    def by_name(cls, name: str) -> ResourceRef:
        return cls(RefKind.NAME, name)

    @classmethod
    def by_uuid(cls, uuid: str) -> ResourceRef:
        return cls(RefKind.UUID, uuid)

    @classmethod
    def parse(cls, value: str) -> ResourceRef:
        """Build a reference from user input, deciding its kind once."""
        if UUID_PATTERN.match(value):
            return cls.by_uuid(value)
        return cls.by_name(value)

    def to_dict(self) -> dict[str, str]:
        return {self.kind.value: self.value}

    def __str__(self) -> str:
        return self.value


class InstanceState(Enum):
    """State of a remote instance."""

    RUNNING = "running"
    STARTING = "starting"
    STANDBY = "standby"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


class Handler(Enum):
    """Connection handlers of a service group listener."""

    HTTP = "http"
    TLS = "tls"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class Listener:
    """A port exposed by a service group."""

    port: int
    destination_port: int
    handlers: frozenset[Handler]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Listener:
        return cls(
            port=int(data["port"]),
            destination_port=int(data.get("destination_port", data["port"])),
            handlers=frozenset(Handler(h) for h in data.get("handlers", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "port": self.port,
            "destination_port": self.destination_port,
            # Sorted so the request body is stable across runs
            "handlers": sorted(h.value for h in self.handlers),
        }


@dataclass
class RemoteInstance:
    """An instance as reported by the platform."""

    uuid: str
    name: str
    state: InstanceState
    image: str | None = None
    service_group: str | None = None
    memory_mb: int | None = None

    @property
    def is_running(self) -> bool:
        return self.state == InstanceState.RUNNING

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteInstance:
        group = data.get("service_group")
        if isinstance(group, dict):
            group = group.get("uuid")
        return cls(
            uuid=data["uuid"],
            name=data["name"],
            state=InstanceState(data.get("state", "stopped")),
            image=data.get("image"),
            service_group=group,
            memory_mb=data.get("memory_mb"),
        )


@dataclass
class RemoteServiceGroup:
    """A service group as reported by the platform."""

    uuid: str
    name: str
    listeners: list[Listener] = field(default_factory=list)
    domains: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteServiceGroup:
        domains = []
        for domain in data.get("domains", []):
            domains.append(domain["name"] if isinstance(domain, dict) else domain)
        return cls(
            uuid=data["uuid"],
            name=data["name"],
            listeners=[Listener.from_dict(s) for s in data.get("services", [])],
            domains=domains,
        )


@dataclass
class RemoteVolume:
    """A persistent volume as reported by the platform."""

    uuid: str
    name: str
    size_mb: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteVolume:
        return cls(uuid=data["uuid"], name=data["name"], size_mb=int(data.get("size_mb", 0)))


@dataclass
class RemoteImage:
    """An image in the platform catalog."""

    digest: str
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteImage:
        return cls(digest=data["digest"], tags=list(data.get("tags", [])))


@dataclass
class LogChunk:
    """A page of instance console output."""

    output: bytes
    start: int
    end: int
    available_start: int
    available_end: int

    @property
    def at_beginning(self) -> bool:
        """Whether this page reaches the oldest retained byte."""
        return self.start <= self.available_start


# -----------------------------------------------------------------------------
# Create requests
# -----------------------------------------------------------------------------


@dataclass
class ServiceGroupCreateRequest:
    """Request body for creating a service group."""

    name: str
    listeners: list[Listener] = field(default_factory=list)
    domains: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "name": self.name,
            "services": [listener.to_dict() for listener in self.listeners],
        }
        if self.domains:
            body["domains"] = [{"name": d} for d in self.domains]
        return body


@dataclass
class VolumeCreateRequest:
    """Request body for creating a volume."""

    name: str
    size_mb: int

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "size_mb": self.size_mb}


@dataclass
class VolumeAttachment:
    """A volume bound to an instance at a mount path."""

    uuid: str
    at: str
    read_only: bool = False

    def __str__(self) -> str:
        return f"{self.uuid}:{self.at}"

    def to_dict(self) -> dict[str, Any]:
        return {"uuid": self.uuid, "at": self.at, "readonly": self.read_only}


@dataclass
class InstanceCreateRequest:
    """Request body for creating an instance."""

    name: str
    image: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    memory_mb: int | None = None
    service_group: str | None = None
    volumes: list[VolumeAttachment] = field(default_factory=list)
    autostart: bool = False

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "name": self.name,
            "image": self.image,
            "autostart": self.autostart,
        }
        if self.args:
            body["args"] = self.args
        if self.env:
            body["env"] = self.env
        if self.memory_mb:
            body["memory_mb"] = self.memory_mb
        if self.service_group:
            body["service_group"] = {"uuid": self.service_group}
        if self.volumes:
            body["volumes"] = [v.to_dict() for v in self.volumes]
        return body
