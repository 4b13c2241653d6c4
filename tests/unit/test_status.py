"""Unit tests for the project status store."""

import pytest

from cloudcompose.compose.status import ProjectStatus, ResourceMeta, StatusStore


@pytest.fixture
def store(tmp_path):
    return StatusStore(tmp_path / "projects")


def make_status(name="demo", instances=("demo-web",)) -> ProjectStatus:
    return ProjectStatus(
        name=name,
        workdir=f"/srv/{name}",
        compose_file=f"/srv/{name}/docker-compose.yml",
        instances=[ResourceMeta(n, f"uuid-{n}") for n in instances],
        networks=[ResourceMeta(f"{name}-default", "uuid-net")],
    )


class TestProjectStatus:
    """Tests for status values."""

    def test_dict_round_trip(self):
        status = make_status()
        assert ProjectStatus.from_dict(status.to_dict()) == status

    def test_merge_keeps_both(self):
        """A partial run adds to, and updates, the recorded resources."""
        old = make_status(instances=("demo-web", "demo-api"))
        new = ProjectStatus(
            name="demo",
            instances=[ResourceMeta("demo-web", "uuid-new"), ResourceMeta("demo-worker", "uuid-w")],
        )

        merged = old.merge(new)

        assert merged.instances == [
            ResourceMeta("demo-web", "uuid-new"),
            ResourceMeta("demo-api", "uuid-demo-api"),
            ResourceMeta("demo-worker", "uuid-w"),
        ]
        assert merged.compose_file == old.compose_file
        assert merged.networks == old.networks


class TestStatusStore:
    """Tests for persisting statuses."""

    def test_save_and_load(self, store):
        store.save(make_status())
        assert store.load("demo") == make_status()

    def test_load_missing(self, store):
        assert store.load("nope") is None

    def test_load_unreadable(self, store):
        """A corrupt file is ignored."""
        store.base_dir.mkdir(parents=True)
        store.path("demo").write_text("instances: [unclosed")
        assert store.load("demo") is None

    def test_delete(self, store):
        store.save(make_status())
        assert store.delete("demo") is True
        assert store.delete("demo") is False
        assert store.load("demo") is None

    def test_list_sorted(self, store):
        store.save(make_status("web"))
        store.save(make_status("api"))
        assert [s.name for s in store.list()] == ["api", "web"]

    def test_list_empty(self, store):
        assert store.list() == []
