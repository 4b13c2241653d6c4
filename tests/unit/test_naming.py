"""Unit tests for remote resource naming."""

import pytest

from cloudcompose.compose.naming import (
    expand_private,
    instance_name,
    network_name,
    resource_name,
    service_instance_names,
    volume_name,
)
from cloudcompose.compose.project import Network, Service, Volume
from cloudcompose.errors import ServiceNotFoundError


class TestResourceName:
    """Tests for derived names."""

    def test_joins_project_and_alias(self):
        """Derived name is <project>-<alias>."""
        assert resource_name("demo", "web") == "demo-web"

    def test_underscores_become_hyphens(self):
        """Underscores anywhere are replaced."""
        assert resource_name("my_app", "api_v2") == "my-app-api-v2"

    def test_pure(self):
        """Same inputs always give the same name."""
        assert resource_name("demo", "web") == resource_name("demo", "web")


class TestInstanceName:
    """Tests for instance names."""

    def test_derived_without_override(self):
        """No container_name gives the derived name."""
        assert instance_name("demo", "web", Service(name="web")) == "demo-web"

    def test_container_name_wins(self):
        """container_name override replaces the derived name."""
        service = Service(name="web", container_name="frontdoor")
        assert instance_name("demo", "web", service) == "frontdoor"

    def test_without_service(self):
        """Service is optional."""
        assert instance_name("demo", "db_main") == "demo-db-main"


class TestNetworkAndVolumeNames:
    """Tests for network and volume names."""

    def test_network_derived(self):
        """Undeclared network gets the derived name."""
        assert network_name("demo", "default") == "demo-default"

    def test_network_explicit_name(self):
        """Explicit name wins and is sanitized."""
        assert network_name("demo", "front", Network(name="edge_net")) == "edge-net"

    def test_network_private_name_expanded(self):
        """A leading underscore is the project-private sentinel."""
        assert network_name("demo", "front", Network(name="_front")) == "demo-front"

    def test_external_network_uses_alias(self):
        """External networks without a name are known by their alias."""
        assert network_name("demo", "shared_net", Network(external=True)) == "shared-net"

    def test_volume_explicit_name(self):
        """Explicit volume name wins."""
        assert volume_name("demo", "data", Volume(name="pgdata")) == "pgdata"

    def test_volume_derived(self):
        """Volume without a name gets the derived name."""
        assert volume_name("demo", "data", Volume()) == "demo-data"

    def test_expand_private_leaves_other_names(self):
        """Only names starting with the sentinel are expanded."""
        assert expand_private("demo", "_cache") == "demo_cache"
        assert expand_private("demo", "cache") == "cache"


class TestServiceInstanceNames:
    """Tests for mapping aliases to instance names."""

    def test_all_services_sorted(self, project_factory):
        """Empty alias list means every service, sorted."""
        project = project_factory(
            {"services": {"web": {"image": "nginx"}, "api": {"image": "api"}}}
        )
        names = service_instance_names(project)
        assert list(names) == ["api", "web"]
        assert names == {"api": "demo-api", "web": "demo-web"}

    def test_requested_subset(self, project_factory):
        """Only requested aliases are returned."""
        project = project_factory(
            {"services": {"web": {"image": "nginx"}, "api": {"image": "api"}}}
        )
        assert service_instance_names(project, ["web"]) == {"web": "demo-web"}

    def test_unknown_alias_raises(self, project_factory):
        """An undeclared alias is a configuration error naming it."""
        project = project_factory({"services": {"web": {"image": "nginx"}}})
        with pytest.raises(ServiceNotFoundError) as exc_info:
            service_instance_names(project, ["db"])
        assert "db" in exc_info.value.message

    def test_override_applies(self, project_factory):
        """container_name is honoured in the mapping."""
        project = project_factory(
            {"services": {"web": {"image": "nginx", "container_name": "frontdoor"}}}
        )
        assert service_instance_names(project) == {"web": "frontdoor"}
