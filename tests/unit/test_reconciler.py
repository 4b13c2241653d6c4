"""Unit tests for project reconciliation against the mock platform."""

import asyncio
import dataclasses

import pytest

from cloudcompose.compose.reconciler import (
    Reconciler,
    ReconcileResult,
    instance_request,
    memory_mb,
    resolve_environment,
)
from cloudcompose.errors import (
    MultipleNetworksError,
    ReconcileError,
    ServiceNotFoundError,
    UnsupportedProtocolError,
)
from cloudcompose.models import RemoteServiceGroup, RemoteVolume

MIB = 1024 * 1024


class TestHelpers:
    """Tests for request building helpers."""

    def test_memory_prefers_limit(self):
        assert memory_mb(256 * MIB, 128 * MIB) == 256

    def test_memory_reservation_fallback(self):
        assert memory_mb(None, 128 * MIB) == 128

    def test_memory_unset(self):
        assert memory_mb(None, None) is None

    def test_environment_inherits_empty_values(self, monkeypatch):
        """Empty values are filled from the local environment."""
        monkeypatch.setenv("API_KEY", "s3cret")
        monkeypatch.delenv("MISSING", raising=False)
        env = resolve_environment({"API_KEY": None, "MODE": "prod", "MISSING": ""})
        assert env == {"API_KEY": "s3cret", "MODE": "prod", "MISSING": ""}

    def test_instance_request(self, full_project):
        """Group, volumes and memory are wired into the request."""
        groups = {"front": RemoteServiceGroup(uuid="sg-1", name="demo-front")}
        volumes = {"data": RemoteVolume(uuid="vol-1", name="demo-data")}

        request = instance_request(full_project, "api", "demo-api", groups, volumes)

        assert request.image == "api:1.0"
        assert request.memory_mb == 256
        assert request.service_group == "sg-1"
        assert [str(v) for v in request.volumes] == ["vol-1:/var/lib/data"]
        assert request.autostart is False

    def test_instance_request_without_group(self, full_project):
        """A service whose group was skipped is created without one."""
        request = instance_request(full_project, "worker", "demo-worker", {}, {})
        assert request.service_group is None
        assert request.env == {"QUEUE": "jobs"}


class TestReconcile:
    """Tests for the full create-or-adopt pass."""

    async def test_web_on_443(self, platform, client, config, web_project):
        """One service on 443 gives a default group with two listeners."""
        result = await Reconciler(client, config).reconcile(web_project)

        group = platform.by_name("services", "demo-default")
        assert group is not None
        assert [s["port"] for s in group["services"]] == [443, 80]

        instance = platform.by_name("instances", "demo-web")
        assert instance["service_group"] == {"uuid": group["uuid"]}
        assert instance["state"] == "stopped"

        assert result.instance_names == ["demo-web"]
        assert result.created == [("service group", "demo-default"), ("instance", "demo-web")]

    async def test_idempotent(self, platform, client, config, full_project):
        """Running twice performs no creates the second time."""
        await Reconciler(client, config).reconcile(full_project)
        first = platform.total_creates
        assert first == 5  # front group, data volume, three instances

        result = await Reconciler(client, config).reconcile(full_project)

        assert platform.total_creates == first
        assert result.created == []
        assert ("instance", "demo-api") in result.adopted
        assert ("volume", "demo-data") in result.adopted
        assert ("service group", "demo-front") in result.adopted

    async def test_idempotent_across_clients(self, platform, config, full_project):
        """A fresh client (a new CLI run) also adopts."""
        async with platform.client(config) as first:
            await Reconciler(first, config).reconcile(full_project)
        creates = platform.total_creates

        async with platform.client(config) as second:
            await Reconciler(second, config).reconcile(full_project)

        assert platform.total_creates == creates

    async def test_adopted_instance_not_rebuilt(self, platform, client, config, web_project):
        """An existing instance keeps its image and triggers no catalog lookup."""
        platform.add_instance("demo-web", image="index.unikraft.io/alice/web@sha256:1")

        result = await Reconciler(client, config).reconcile(web_project)

        assert result.adopted[-1] == ("instance", "demo-web")
        assert ("list", "images") not in platform.requests
        assert web_project.services["web"].image == "index.unikraft.io/alice/web@sha256:1"

    async def test_container_name_override(self, platform, client, config, project_factory):
        """container_name is the remote instance name."""
        project = project_factory(
            {"services": {"web": {"image": "nginx", "container_name": "frontdoor"}}}
        )
        result = await Reconciler(client, config).reconcile(project)
        assert result.instance_names == ["frontdoor"]
        assert platform.by_name("instances", "frontdoor") is not None

    async def test_subset_of_services(self, platform, client, config, full_project):
        """Only requested services get instances; volumes cover the project."""
        result = await Reconciler(client, config).reconcile(full_project, ["worker"])

        assert list(result.instances) == ["worker"]
        assert platform.creates["instances"] == 1
        assert platform.creates["services"] == 0
        assert platform.creates["volumes"] == 1

    async def test_runtime_override(self, platform, client, config, web_project):
        """A runtime override is the image used."""
        reconciler = Reconciler(client, config, runtimes={"web": "unikraft.org/nginx:1.25"})
        await reconciler.reconcile(web_project)
        assert platform.by_name("instances", "demo-web")["image"] == "unikraft.org/nginx:1.25"

    async def test_image_from_catalog(self, platform, client, config, web_project):
        """The instance is created from the resolved catalog image."""
        platform.add_image("official/nginx:latest")
        await Reconciler(client, config).reconcile(web_project)
        assert platform.create_bodies["instances"][0]["image"] == "nginx:latest"

    async def test_to_status(self, client, config, full_project):
        """The result snapshots names and UUIDs."""
        result = await Reconciler(client, config).reconcile(full_project)
        status = result.to_status(full_project)

        assert status.name == "demo"
        assert sorted(m.name for m in status.instances) == ["demo-api", "demo-web", "demo-worker"]
        assert [m.name for m in status.networks] == ["demo-front"]
        assert [m.name for m in status.volumes] == ["demo-data"]
        assert all(m.uuid for m in status.instances)


class TestReconcileFailures:
    """Tests for configuration and remote failures."""

    async def test_unknown_alias(self, platform, client, config, web_project):
        """An undeclared service fails before any request."""
        with pytest.raises(ServiceNotFoundError, match="'db'"):
            await Reconciler(client, config).reconcile(web_project, ["db"])
        assert platform.requests == []

    async def test_two_networks_no_requests(self, platform, client, config, project_factory):
        """A service on two networks fails before any request."""
        project = project_factory(
            {
                "services": {
                    "web": {"image": "nginx", "ports": ["443:80"], "networks": ["front", "back"]}
                },
                "networks": {"front": None, "back": None},
            }
        )
        with pytest.raises(MultipleNetworksError):
            await Reconciler(client, config).reconcile(project)
        assert platform.requests == []

    async def test_bad_protocol_no_requests(self, platform, client, config, project_factory):
        """An unsupported protocol fails before any request."""
        project = project_factory({"services": {"dns": {"image": "dns", "ports": ["53:53/udp"]}}})
        with pytest.raises(UnsupportedProtocolError):
            await Reconciler(client, config).reconcile(project)
        assert platform.requests == []

    async def test_create_conflict(self, platform, client, config, web_project):
        """A create failure names the instance."""
        platform.failures[("create", "instances")] = 409
        with pytest.raises(ReconcileError) as exc_info:
            await Reconciler(client, config).reconcile(web_project)
        assert exc_info.value.kind == "instance"
        assert exc_info.value.name == "demo-web"

    async def test_group_failure_stops_before_instances(self, platform, client, config, web_project):
        """Nothing is rolled back and no instance is attempted."""
        platform.failures[("create", "services")] = 500
        with pytest.raises(ReconcileError):
            await Reconciler(client, config).reconcile(web_project)
        assert ("get", "instances") not in platform.requests


class TestParallel:
    """Tests for bounded concurrency."""

    async def test_parallel_creates_all(self, platform, client, config, full_project):
        """With max_parallel > 1 every service is still created once."""
        parallel = dataclasses.replace(config, max_parallel=3)
        result = await Reconciler(client, parallel).reconcile(full_project)

        assert sorted(result.instances) == ["api", "web", "worker"]
        assert platform.creates["instances"] == 3

    async def test_parallel_failure_raises(self, platform, client, config, full_project):
        """A failing service fails the whole run."""
        platform.failures[("create", "instances")] = 500
        parallel = dataclasses.replace(config, max_parallel=3)
        with pytest.raises(ReconcileError):
            await Reconciler(client, parallel).reconcile(full_project)

    async def test_concurrent_reconcilers_share_names(self, platform, client, config, web_project):
        """Two runs racing on the same names create each resource once."""
        first, second = await asyncio.gather(
            Reconciler(client, config).reconcile(web_project),
            Reconciler(client, config).reconcile(web_project),
        )

        assert platform.creates["instances"] == 1
        assert platform.creates["services"] == 1
        assert first.instances["web"].uuid == second.instances["web"].uuid
        created = {pair for result in (first, second) for pair in result.created}
        adopted = {pair for result in (first, second) for pair in result.adopted}
        assert created == {("service group", "demo-default"), ("instance", "demo-web")}
        assert adopted == created


def test_result_defaults():
    """An empty result has no instance names."""
    assert ReconcileResult().instance_names == []
