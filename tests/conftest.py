"""Shared test fixtures for cloudcompose tests.

- platform: in-memory MockPlatform served over httpx.ASGITransport
- config: CloudConfig pointing at the mock platform
- client: PlatformClient opened against the mock platform
- project helpers for building Project models from dicts
"""

from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
from mocks.mock_platform import MockPlatform

from cloudcompose.client import PlatformClient
from cloudcompose.compose.project import Project
from cloudcompose.config import CloudConfig

# =============================================================================
# Platform
# =============================================================================


@pytest.fixture
def platform() -> MockPlatform:
    """Fresh mock platform per test."""
    return MockPlatform()


@pytest.fixture
def config() -> CloudConfig:
    """Configuration for the mock platform."""
    return CloudConfig(
        api_url="http://platform.test",
        token="test-token",
        user="robot$alice.users.kraftcloud",
    )


@pytest.fixture
async def client(platform: MockPlatform, config: CloudConfig) -> AsyncGenerator[PlatformClient, None]:
    """PlatformClient connected to the mock platform."""
    async with platform.client(config) as c:
        yield c


# =============================================================================
# Projects
# =============================================================================


def make_project(data: dict[str, Any], name: str = "demo", workdir: Path | None = None) -> Project:
    """Build a validated project from compose data."""
    project = Project.from_dict(data, workdir=workdir or Path("/srv/demo"), name=name)
    project.validate()
    return project


@pytest.fixture
def web_project() -> Project:
    """Single service exposing 443, no network declared."""
    return make_project(
        {
            "services": {
                "web": {"image": "nginx", "ports": ["443:8080"]},
            }
        }
    )


@pytest.fixture
def full_project() -> Project:
    """Two services on one network, a volume and a worker without ports."""
    return make_project(
        {
            "services": {
                "api": {
                    "image": "api:1.0",
                    "ports": ["443:8080"],
                    "networks": ["front"],
                    "volumes": ["data:/var/lib/data"],
                    "mem_limit": "256m",
                    "domainname": "api.example.com",
                },
                "web": {
                    "image": "nginx",
                    "ports": ["8443:80"],
                    "networks": ["front"],
                },
                "worker": {
                    "image": "worker",
                    "networks": ["back"],
                    "environment": {"QUEUE": "jobs"},
                },
            },
            "networks": {"front": None, "back": None},
            "volumes": {"data": {"driver_opts": {"size": "512MB"}}},
        }
    )


@pytest.fixture
def project_factory():
    """Build validated projects from compose data inside a test."""
    return make_project
