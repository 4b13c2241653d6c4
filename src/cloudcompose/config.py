"""CLI configuration management.

Handles persistent configuration stored in ~/.cloudcompose/config.yaml.
Supports environment variable overrides. The loaded CloudConfig is passed
explicitly to the client, reconciler and lifecycle driver.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .shared.logging import get_logger
from .shared.paths import CLOUDCOMPOSE_DIR

logger = get_logger(__name__)

# Default values
DEFAULT_METRO = "fra0"
DEFAULT_API_URL = "https://api.{metro}.kraft.cloud"
DEFAULT_REGISTRY = "index.unikraft.io"
DEFAULT_TIMEOUT = 30
DEFAULT_MAX_PARALLEL = 1
DEFAULT_OUTPUT_FORMAT = "table"

# Environment variable mappings
ENV_VARS = {
    "api_url": "CLOUDCOMPOSE_API_URL",
    "metro": "CLOUDCOMPOSE_METRO",
    "token": "CLOUDCOMPOSE_TOKEN",
    "user": "CLOUDCOMPOSE_USER",
    "registry": "CLOUDCOMPOSE_REGISTRY",
    "timeout": "CLOUDCOMPOSE_TIMEOUT",
    "max_parallel": "CLOUDCOMPOSE_MAX_PARALLEL",
    "output_format": "CLOUDCOMPOSE_OUTPUT_FORMAT",
}

INT_KEYS = {"timeout", "max_parallel"}
CONFIG_KEYS = list(ENV_VARS)


@dataclass
class CloudConfig:
    """Platform and CLI configuration."""

    api_url: str = ""
    metro: str = DEFAULT_METRO
    token: str | None = None
    user: str = ""
    registry: str = DEFAULT_REGISTRY
    timeout: int = DEFAULT_TIMEOUT
    max_parallel: int = DEFAULT_MAX_PARALLEL
    output_format: str = DEFAULT_OUTPUT_FORMAT

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict)

    @property
    def base_url(self) -> str:
        """API base URL with the metro filled in."""
        return (self.api_url or DEFAULT_API_URL).format(metro=self.metro)

    @property
    def registry_user(self) -> str:
        """User namespace in the image registry.

        Robot accounts are reported as robot$<user>.users.kraftcloud.
        """
        user = self.user
        if user.startswith("robot$"):
            user = user[len("robot$") :]
        if user.endswith(".users.kraftcloud"):
            user = user[: -len(".users.kraftcloud")]
        return user

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def as_dict(self, redact: bool = True) -> dict[str, Any]:
        """Config values keyed by name, token redacted unless asked."""
        values = {key: getattr(self, key) for key in CONFIG_KEYS}
        if redact and values["token"]:
            values["token"] = "****"
        return values


def get_config_path() -> Path:
    """Get the CLI config file path.

    Returns:
        Path to ~/.cloudcompose/config.yaml
    """
    return CLOUDCOMPOSE_DIR / "config.yaml"


def _coerce(key: str, value: Any) -> Any:
    if key in INT_KEYS:
        return int(value)
    return str(value)


def load_config() -> CloudConfig:
    """Load configuration.

    Precedence (highest to lowest):
    1. Environment variables
    2. Config file (~/.cloudcompose/config.yaml)
    3. Defaults

    Returns:
        CloudConfig with values and sources
    """
    config = CloudConfig()
    sources: dict[str, str] = {key: "default" for key in CONFIG_KEYS}

    # Load from config file
    config_path = get_config_path()
    if config_path.exists():
        try:
            with open(config_path) as f:
                file_config = yaml.safe_load(f) or {}

            for key in CONFIG_KEYS:
                if key in file_config and file_config[key] is not None:
                    setattr(config, key, _coerce(key, file_config[key]))
                    sources[key] = "config file"
        except (OSError, yaml.YAMLError, ValueError) as e:
            logger.warning("ignoring unreadable config file", path=str(config_path), error=str(e))

    # Override with environment variables
    for key, env_var in ENV_VARS.items():
        raw = os.environ.get(env_var)
        if not raw:
            continue
        try:
            setattr(config, key, _coerce(key, raw))
            sources[key] = "environment"
        except ValueError:
            logger.warning("ignoring invalid environment value", variable=env_var)

    config._sources = sources
    return config


def _write_config(config_path: Path, values: dict[str, Any]) -> None:
    # The file may hold the API token: user-only access
    config_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.dump(values, f, default_flow_style=False)
    config_path.chmod(0o600)


def save_config(key: str, value: Any) -> None:
    """Save a config value to the config file.

    Args:
        key: Config key (one of CONFIG_KEYS)
        value: Value to save
    """
    if key not in CONFIG_KEYS:
        raise ValueError(f"Unknown config key: {key}")

    config_path = get_config_path()

    # Load existing config
    existing: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            existing = yaml.safe_load(f) or {}

    existing[key] = _coerce(key, value)
    _write_config(config_path, existing)


def unset_config(key: str) -> bool:
    """Remove a config value from the config file.

    Args:
        key: Config key to remove

    Returns:
        True if key was removed, False if not found
    """
    config_path = get_config_path()
    if not config_path.exists():
        return False

    with open(config_path) as f:
        existing = yaml.safe_load(f) or {}

    if key not in existing:
        return False

    del existing[key]
    _write_config(config_path, existing)

    return True
