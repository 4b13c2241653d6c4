"""CLI utility functions."""

import re

from .errors import ConfigurationError

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmgtp]?)(i?b?)\s*$", re.IGNORECASE)
_SIZE_POWERS = {"": 0, "k": 1, "m": 2, "g": 3, "t": 4, "p": 5}

_DURATION_PATTERN = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_bytes(value: str | int) -> int:
    """Parse a human-readable byte size.

    Units are binary, so ``512MB``, ``512MiB`` and ``512m`` all mean
    512 * 1024 * 1024 bytes. Plain numbers are bytes.

    Raises:
        ValueError: If the string is not a size
    """
    if isinstance(value, int):
        return value

    match = _SIZE_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid size: {value!r}")

    number, unit, _ = match.groups()
    return int(float(number) * (1024 ** _SIZE_POWERS[unit.lower()]))


def bytes_to_mb(value: int) -> int:
    """Convert bytes to whole megabytes (MiB), rounding down."""
    return value // (1024 * 1024)


def parse_duration(value: str) -> float:
    """Parse a duration such as ``500ms``, ``30s``, ``1m30s`` or ``2h``.

    A bare number is seconds.

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the string is not a duration
    """
    value = value.strip()
    if not value:
        raise ValueError("Empty duration")

    try:
        return float(value)
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_PATTERN.finditer(value):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_SECONDS[match.group(2)]
        position = match.end()

    if position != len(value):
        raise ValueError(f"Invalid duration: {value!r}. Expected e.g. 500ms, 30s, 1m")

    return total


def parse_runtime_flags(flags: tuple[str, ...]) -> dict[str, str]:
    """Parse SERVICE=REF runtime overrides.

    Args:
        flags: Tuple of SERVICE=REF strings

    Returns:
        Dictionary of service alias to image reference
    """
    runtimes: dict[str, str] = {}

    for flag in flags:
        if "=" not in flag:
            raise ConfigurationError(
                message=f"Invalid runtime format: {flag}. Expected SERVICE=REF"
            )

        service, ref = flag.split("=", 1)
        if not service or not ref:
            raise ConfigurationError(
                message=f"Invalid runtime format: {flag}. Expected SERVICE=REF"
            )
        runtimes[service] = ref

    return runtimes
