"""Build collaborator.

Turning a build context into a deployable image is delegated to an external
packaging tool. The reconciler only needs the resulting reference.
"""

from __future__ import annotations

import asyncio
import subprocess
from pathlib import Path
from typing import Protocol

from ..errors import BuildError, NotBuildableError
from ..shared.logging import get_logger

logger = get_logger(__name__)

KRAFTFILE_NAMES = ("Kraftfile", "kraft.yaml", "kraft.yml")

DEFAULT_BUILD_COMMAND = (
    "kraft",
    "pkg",
    "--as",
    "oci",
    "--plat",
    "kraftcloud",
    "--arch",
    "x86_64",
    "--strategy",
    "overwrite",
    "--name",
    "{name}",
)
DEFAULT_PUSH_COMMAND = ("kraft", "pkg", "push", "{ref}")


class Builder(Protocol):
    """Builds and publishes images from build contexts."""

    async def build(
        self,
        workdir: Path,
        dockerfile: str,
        *,
        name: str,
        push: bool,
    ) -> str | None:
        """Build an image.

        Returns:
            The built reference, or None if nothing was produced

        Raises:
            NotBuildableError: If the context cannot be built
            BuildError: If building failed
        """
        ...

    async def push(self, ref: str) -> None:
        """Push a built image to the registry."""
        ...


class CommandBuilder:
    """Builder that shells out to a packaging tool."""

    def __init__(
        self,
        build_command: tuple[str, ...] = DEFAULT_BUILD_COMMAND,
        push_command: tuple[str, ...] = DEFAULT_PUSH_COMMAND,
        timeout: float | None = None,
    ):
        """Initialize builder.

        Args:
            build_command: Build argv; ``{name}`` is replaced by the target
                reference
            push_command: Push argv; ``{ref}`` is replaced by the reference
            timeout: Seconds before a command is abandoned (None waits forever)
        """
        self.build_command = build_command
        self.push_command = push_command
        self.timeout = timeout

    def check_buildable(self, workdir: Path) -> None:
        """Raise NotBuildableError unless the context holds a Kraftfile."""
        if not workdir.is_dir():
            raise NotBuildableError(message=f"build context {workdir} does not exist")
        if not any((workdir / name).is_file() for name in KRAFTFILE_NAMES):
            raise NotBuildableError(message=f"no Kraftfile in {workdir}")

    async def build(
        self,
        workdir: Path,
        dockerfile: str,
        *,
        name: str,
        push: bool,
    ) -> str | None:
        self.check_buildable(workdir)

        args = [part.format(name=name) for part in self.build_command]
        # Only pass a Dockerfile that exists, a missing default would break packaging
        rootfs = workdir / dockerfile
        if dockerfile and rootfs.is_file():
            args += ["--rootfs", str(rootfs)]
        if push:
            args.append("--push")

        logger.info("building image", workdir=str(workdir), name=name, push=push)
        await self._run(args, cwd=workdir)
        return name

    async def push(self, ref: str) -> None:
        args = [part.format(ref=ref) for part in self.push_command]
        logger.info("pushing image", ref=ref)
        await self._run(args)

    async def _run(self, args: list[str], cwd: Path | None = None) -> None:
        try:
            result = await asyncio.to_thread(
                subprocess.run,
                args,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise BuildError(message=f"{args[0]} not found. Is it installed?") from e
        except subprocess.TimeoutExpired as e:
            raise BuildError(message=f"{args[0]} timed out after {self.timeout}s") from e

        if result.returncode != 0:
            raise BuildError(
                message=f"{' '.join(args[:2])} failed: {result.stderr.strip() or result.stdout.strip()}",
                data={"returncode": result.returncode},
            )
