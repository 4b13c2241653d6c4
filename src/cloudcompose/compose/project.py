"""Project model and compose file loader.

The loader reads the subset of the Compose format that maps onto the
platform: services with an image or build context, published ports, a single
network, named volumes, environment and memory limits. Variable interpolation
is not performed.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..errors import ConfigurationError, ProjectFileError
from ..utils import parse_bytes

DEFAULT_FILE_NAMES = (
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
    "Composefile",
)


@dataclass
class BuildContext:
    """Where and how a service image is built."""

    context: Path
    dockerfile: str = "Dockerfile"


@dataclass
class PortMapping:
    """A published port.

    ``published`` stays a string because the file may hold anything there;
    the planner rejects values that are not numbers.
    """

    published: str
    target: int
    protocol: str = ""

    @classmethod
    def parse(cls, value: str | int | dict[str, Any]) -> PortMapping:
        """Parse short (``[ip:]published:target[/proto]``) or long syntax."""
        if isinstance(value, dict):
            try:
                target = int(value["target"])
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(message=f"invalid target port in {value}") from e
            published = value.get("published", target)
            return cls(
                published=str(published),
                target=target,
                protocol=str(value.get("protocol") or ""),
            )

        spec = str(value)
        protocol = ""
        if "/" in spec:
            spec, protocol = spec.rsplit("/", 1)

        parts = spec.split(":")
        if len(parts) == 1:
            published = target = parts[0]
        else:
            # Host IP prefix, if any, is ignored
            published, target = parts[-2], parts[-1]

        try:
            target_port = int(target)
        except ValueError as e:
            raise ConfigurationError(message=f"invalid target port in '{value}'") from e

        return cls(published=published, target=target_port, protocol=protocol)


@dataclass
class VolumeMount:
    """A volume mounted into a service."""

    source: str
    target: str
    read_only: bool = False

    @classmethod
    def parse(cls, value: str | dict[str, Any]) -> VolumeMount:
        """Parse short (``source:target[:ro]``) or long syntax."""
        if isinstance(value, dict):
            return cls(
                source=str(value.get("source", "")),
                target=str(value["target"]),
                read_only=bool(value.get("read_only", False)),
            )

        parts = str(value).split(":")
        if len(parts) == 1:
            return cls(source="", target=parts[0])
        read_only = len(parts) > 2 and "ro" in parts[2].split(",")
        return cls(source=parts[0], target=parts[1], read_only=read_only)


@dataclass
class Network:
    """A top-level network declaration."""

    name: str | None = None
    external: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Network:
        data = data or {}
        return cls(name=data.get("name"), external=bool(data.get("external", False)))


@dataclass
class Volume:
    """A top-level volume declaration."""

    name: str | None = None
    driver_opts: dict[str, str] = field(default_factory=dict)
    external: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Volume:
        data = data or {}
        return cls(
            name=data.get("name"),
            driver_opts={k: str(v) for k, v in (data.get("driver_opts") or {}).items()},
            external=bool(data.get("external", False)),
        )


def _as_args(value: str | list[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    return [str(v) for v in value]


def _as_environment(value: list[str] | dict[str, Any] | None) -> dict[str, str | None]:
    if not value:
        return {}
    if isinstance(value, dict):
        return {k: None if v is None else str(v) for k, v in value.items()}

    env: dict[str, str | None] = {}
    for item in value:
        key, sep, val = str(item).partition("=")
        env[key] = val if sep else None
    return env


def _as_bytes(value: str | int | None, service: str, key: str) -> int | None:
    if value is None:
        return None
    try:
        return parse_bytes(value)
    except ValueError as e:
        raise ConfigurationError(message=f"service '{service}': invalid {key} '{value}'") from e


@dataclass
class Service:
    """A declared service."""

    name: str
    image: str | None = None
    build: BuildContext | None = None
    container_name: str | None = None
    command: list[str] = field(default_factory=list)
    entrypoint: list[str] = field(default_factory=list)
    environment: dict[str, str | None] = field(default_factory=dict)
    mem_limit: int | None = None
    mem_reservation: int | None = None
    ports: list[PortMapping] = field(default_factory=list)
    domainname: str = ""
    volumes: list[VolumeMount] = field(default_factory=list)
    networks: list[str] = field(default_factory=list)

    @property
    def args(self) -> list[str]:
        """Arguments passed to the instance: entrypoint then command."""
        return self.entrypoint + self.command

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any], workdir: Path) -> Service:
        data = data or {}

        build = None
        raw_build = data.get("build")
        if isinstance(raw_build, str):
            build = BuildContext(context=(workdir / raw_build).resolve())
        elif isinstance(raw_build, dict):
            build = BuildContext(
                context=(workdir / raw_build.get("context", ".")).resolve(),
                dockerfile=raw_build.get("dockerfile", "Dockerfile"),
            )

        resources = (data.get("deploy") or {}).get("resources") or {}
        mem_limit = data.get("mem_limit") or (resources.get("limits") or {}).get("memory")
        mem_reservation = data.get("mem_reservation") or (
            resources.get("reservations") or {}
        ).get("memory")

        networks = data.get("networks") or []
        if isinstance(networks, dict):
            networks = list(networks)

        return cls(
            name=name,
            image=data.get("image"),
            build=build,
            container_name=data.get("container_name"),
            command=_as_args(data.get("command")),
            entrypoint=_as_args(data.get("entrypoint")),
            environment=_as_environment(data.get("environment")),
            mem_limit=_as_bytes(mem_limit, name, "mem_limit"),
            mem_reservation=_as_bytes(mem_reservation, name, "mem_reservation"),
            ports=[PortMapping.parse(p) for p in data.get("ports") or []],
            domainname=data.get("domainname") or "",
            volumes=[VolumeMount.parse(v) for v in data.get("volumes") or []],
            networks=[str(n) for n in networks],
        )


@dataclass
class Project:
    """A loaded deployment description."""

    name: str
    services: dict[str, Service] = field(default_factory=dict)
    networks: dict[str, Network] = field(default_factory=dict)
    volumes: dict[str, Volume] = field(default_factory=dict)
    workdir: Path = field(default_factory=Path.cwd)
    compose_files: list[Path] = field(default_factory=list)

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        workdir: Path | None = None,
        name: str | None = None,
    ) -> Project:
        """Build a project from parsed compose data.

        Args:
            data: Parsed compose document
            workdir: Directory relative paths resolve against
            name: Project name override (defaults to the document's ``name``)
        """
        workdir = (workdir or Path.cwd()).resolve()
        if not isinstance(data, dict):
            raise ProjectFileError(message="compose document must be a mapping")

        services = {
            alias: Service.from_dict(alias, body or {}, workdir)
            for alias, body in (data.get("services") or {}).items()
        }
        networks = {
            alias: Network.from_dict(body) for alias, body in (data.get("networks") or {}).items()
        }
        volumes = {
            alias: Volume.from_dict(body) for alias, body in (data.get("volumes") or {}).items()
        }

        return cls(
            name=name or data.get("name") or "",
            services=services,
            networks=networks,
            volumes=volumes,
            workdir=workdir,
        )

    def validate(self) -> None:
        """Check the project can be deployed and fill in defaults.

        Raises:
            ConfigurationError: If a service has neither image nor build
        """
        if not self.name:
            self.name = self.workdir.name.lower()

        if not self.services:
            raise ConfigurationError(message="project declares no services")

        for alias, service in self.services.items():
            if not service.image and service.build is None:
                raise ConfigurationError(
                    message=f"service '{alias}' has neither an image nor a build context"
                )


def find_compose_file(workdir: Path) -> Path:
    """Find the compose file in a directory.

    Raises:
        ProjectFileError: If none of the default file names exist
    """
    for file_name in DEFAULT_FILE_NAMES:
        candidate = workdir / file_name
        if candidate.is_file():
            return candidate
    raise ProjectFileError(
        message=f"no compose file found in {workdir} (looked for {', '.join(DEFAULT_FILE_NAMES)})"
    )


def load_project(
    workdir: str | Path | None = None,
    file: str | Path | None = None,
    name: str | None = None,
) -> Project:
    """Load and validate a project.

    Args:
        workdir: Project directory (default: current directory)
        file: Explicit compose file; relative paths resolve against workdir
        name: Project name override

    Returns:
        Validated Project

    Raises:
        ProjectFileError: If the file is missing or is not valid YAML
        ConfigurationError: If the project cannot be deployed as written
    """
    workdir = Path(workdir or Path.cwd()).resolve()

    if file:
        path = Path(file)
        if not path.is_absolute():
            path = workdir / path
        if not path.is_file():
            raise ProjectFileError(message=f"compose file not found: {path}")
        workdir = path.parent
    else:
        path = find_compose_file(workdir)

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ProjectFileError(message=f"cannot parse {path}: {e}") from e

    project = Project.from_dict(data, workdir=workdir, name=name)
    project.compose_files = [path]
    project.validate()
    return project
