"""Lifecycle operations over instance names.

Start fans out one call per instance and carries on past failures. Stop and
remove are single batched calls. Console output is fetched in pages and can be
followed by polling.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from ..client import PlatformClient
from ..errors import LifecycleError, NotFoundError, PlatformError
from ..models import RemoteInstance, ResourceRef
from ..shared.logging import get_logger

logger = get_logger(__name__)

PAGE_SIZE = 4096
MAX_PAGE_SIZE = PAGE_SIZE * 4 - 1
MAX_LOG_BYTES = 1024 * 1024 * 1024
POLL_INTERVAL = 0.5
NOT_DEPLOYED = "not deployed"


def wait_timeout_ms(wait: float) -> int:
    """Convert a wait in seconds to the platform's millisecond timeout.

    Raises:
        ValueError: If the wait is negative or positive but under a millisecond
    """
    if wait < 0:
        raise ValueError(f"wait must not be negative, got {wait}")
    if 0 < wait < 0.001:
        raise ValueError("wait must be at least 1ms")
    return int(wait * 1000)


@dataclass
class LifecycleResult:
    """Outcome of a fan-out operation."""

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class InstanceStatus:
    """One row of ``ps`` output."""

    name: str
    state: str
    uuid: str = ""
    image: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "state": self.state, "uuid": self.uuid, "image": self.image}


def _last_lines(output: bytes, tail: int) -> list[str]:
    lines = output.decode(errors="replace").splitlines()
    if tail < 0:
        return lines
    return lines[-tail:] if tail else []


def _entry_error(entry: dict[str, Any]) -> str | None:
    if entry.get("status") == "error" or entry.get("error"):
        return str(entry.get("message") or entry.get("error") or "unknown error")
    return None


class LifecycleDriver:
    """Start, stop, remove and inspect instances."""

    def __init__(self, client: PlatformClient):
        self.client = client

    async def start(self, names: list[str], wait: float = 0) -> LifecycleResult:
        """Start instances one by one.

        Args:
            names: Instance names
            wait: Seconds the platform holds each call until the instance
                runs (0 returns immediately)

        Returns:
            LifecycleResult; failures of single instances do not stop the rest
        """
        timeout_ms = wait_timeout_ms(wait)
        result = LifecycleResult()

        for name in names:
            try:
                await self.client.instances.start(ResourceRef.by_name(name), timeout_ms=timeout_ms)
            except PlatformError as e:
                logger.error("could not start instance", name=name, error=str(e))
                result.failed[name] = str(e)
                continue
            logger.info("started instance", name=name)
            result.succeeded.append(name)

        return result

    async def stop(
        self,
        names: list[str],
        drain_timeout: float = 0,
        force: bool = False,
    ) -> LifecycleResult:
        """Stop instances in one batched call.

        Args:
            names: Instance names
            drain_timeout: Seconds to let connections drain
            force: Stop without draining

        Raises:
            LifecycleError: If the batched call itself fails
        """
        result = LifecycleResult()
        if not names:
            return result

        logger.info("stopping instances", count=len(names))
        try:
            entries = await self.client.instances.stop(
                [ResourceRef.by_name(n) for n in names],
                drain_timeout_ms=wait_timeout_ms(drain_timeout),
                force=force,
            )
        except PlatformError as e:
            raise LifecycleError(message=f"stopping instances: {e}") from e

        self._collect(names, entries, result, "could not stop instance")
        return result

    async def remove(self, names: list[str]) -> LifecycleResult:
        """Delete the instances that exist, in one batched call.

        Names that are not deployed are skipped.

        Raises:
            LifecycleError: If a lookup or the batched call fails
        """
        result = LifecycleResult()
        found: list[RemoteInstance] = []

        for name in names:
            try:
                found.append(await self.client.instances.get(ResourceRef.by_name(name)))
            except NotFoundError:
                logger.info("instance not found, skipping", name=name)
                result.skipped.append(name)
            except PlatformError as e:
                raise LifecycleError(message=f"getting instance '{name}': {e}") from e

        if not found:
            return result

        logger.info("removing instances", count=len(found))
        try:
            entries = await self.client.instances.delete(
                [ResourceRef.by_uuid(i.uuid) for i in found]
            )
        except PlatformError as e:
            raise LifecycleError(message=f"removing instances: {e}") from e

        self._collect([i.name for i in found], entries, result, "could not remove instance")
        return result

    def _collect(
        self,
        names: list[str],
        entries: list[dict[str, Any]],
        result: LifecycleResult,
        event: str,
    ) -> None:
        errors: dict[str, str] = {}
        for position, entry in enumerate(entries):
            error = _entry_error(entry)
            if error is None:
                continue
            name = entry.get("name") or (names[position] if position < len(names) else "")
            errors[name] = error

        for name in names:
            if name in errors:
                logger.error(event, name=name, error=errors[name])
                result.failed[name] = errors[name]
            else:
                result.succeeded.append(name)

    async def status(self, names: list[str]) -> list[InstanceStatus]:
        """Look up each instance; missing ones are reported as not deployed."""
        rows = []
        for name in names:
            instance = await self.client.instances.find(ResourceRef.by_name(name))
            if instance is None:
                rows.append(InstanceStatus(name=name, state=NOT_DEPLOYED))
            else:
                rows.append(
                    InstanceStatus(
                        name=name,
                        state=instance.state.value,
                        uuid=instance.uuid,
                        image=instance.image or "",
                    )
                )
        return rows

    async def _tail(self, ref: ResourceRef, tail: int) -> tuple[bytes, int]:
        """Fetch the end of the console, newest page first.

        Returns:
            The output and the offset just past it
        """
        chunk = await self.client.instances.log(ref, offset=-PAGE_SIZE, limit=PAGE_SIZE)
        output = chunk.output
        end = chunk.end

        while not chunk.at_beginning and chunk.output:
            if tail >= 0 and output.count(b"\n") > tail:
                break
            if len(output) > MAX_LOG_BYTES:
                logger.warning("maximum amount of logs reached", name=str(ref))
                break
            offset = max(chunk.start - MAX_PAGE_SIZE, chunk.available_start)
            chunk = await self.client.instances.log(ref, offset=offset, limit=chunk.start - offset)
            output = chunk.output + output

        return output, end

    async def logs(self, name: str, tail: int = -1) -> list[str]:
        """Console output of an instance.

        Args:
            name: Instance name
            tail: Number of trailing lines to return (-1 for everything retained)
        """
        if tail < -1:
            raise ValueError(f"invalid tail {tail}, should be -1 or positive")

        output, _ = await self._tail(ResourceRef.by_name(name), tail)
        return _last_lines(output, tail)

    async def follow(
        self,
        name: str,
        tail: int = -1,
        poll_interval: float = POLL_INTERVAL,
    ) -> AsyncIterator[str]:
        """Yield console lines as they appear, starting with the last ``tail``.

        Runs until cancelled. A trailing partial line is held back until it
        is completed.
        """
        if tail < -1:
            raise ValueError(f"invalid tail {tail}, should be -1 or positive")

        ref = ResourceRef.by_name(name)
        output, offset = await self._tail(ref, tail)
        if output and not output.endswith(b"\n"):
            # The partial last line is fetched again once complete
            output, _, partial = output.rpartition(b"\n")
            offset -= len(partial)
        for line in _last_lines(output, tail):
            yield line

        pending = b""
        while True:
            chunk = await self.client.instances.log(ref, offset=offset, limit=MAX_PAGE_SIZE)
            if chunk.output:
                data = pending + chunk.output
                *complete, pending = data.split(b"\n")
                for line in complete:
                    yield line.decode(errors="replace")
                offset = chunk.end
            await asyncio.sleep(poll_interval)
