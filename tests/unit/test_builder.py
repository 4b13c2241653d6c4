"""Unit tests for the command-line build collaborator."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from cloudcompose.compose.builder import CommandBuilder
from cloudcompose.errors import BuildError, NotBuildableError

TARGET = "index.unikraft.io/alice/demo-web:latest"


@pytest.fixture
def context(tmp_path):
    """A buildable context with a Kraftfile."""
    (tmp_path / "Kraftfile").write_text("spec: v0.6\n")
    return tmp_path


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestCheckBuildable:
    """Tests for build context detection."""

    def test_missing_directory(self, tmp_path):
        with pytest.raises(NotBuildableError, match="does not exist"):
            CommandBuilder().check_buildable(tmp_path / "missing")

    def test_no_kraftfile(self, tmp_path):
        with pytest.raises(NotBuildableError, match="no Kraftfile"):
            CommandBuilder().check_buildable(tmp_path)

    def test_alternate_kraftfile_name(self, tmp_path):
        (tmp_path / "kraft.yaml").write_text("spec: v0.6\n")
        CommandBuilder().check_buildable(tmp_path)


class TestBuild:
    """Tests for running the build command."""

    async def test_build_command(self, context):
        """The target name is substituted and the context is the cwd."""
        with patch("subprocess.run", return_value=completed()) as run:
            ref = await CommandBuilder().build(context, "Dockerfile", name=TARGET, push=False)

        assert ref == TARGET
        args = run.call_args.args[0]
        assert args[:2] == ["kraft", "pkg"]
        assert args[args.index("--name") + 1] == TARGET
        assert "--rootfs" not in args
        assert "--push" not in args
        assert run.call_args.kwargs["cwd"] == context

    async def test_rootfs_and_push(self, context):
        """An existing Dockerfile is passed as rootfs; push is requested."""
        (context / "Dockerfile").write_text("FROM scratch\n")
        with patch("subprocess.run", return_value=completed()) as run:
            await CommandBuilder().build(context, "Dockerfile", name=TARGET, push=True)

        args = run.call_args.args[0]
        assert args[args.index("--rootfs") + 1] == str(context / "Dockerfile")
        assert args[-1] == "--push"

    async def test_not_buildable_runs_nothing(self, tmp_path):
        """Nothing is executed for a context without a Kraftfile."""
        with patch("subprocess.run") as run:
            with pytest.raises(NotBuildableError):
                await CommandBuilder().build(tmp_path, "Dockerfile", name=TARGET, push=False)
        run.assert_not_called()

    async def test_failure(self, context):
        """A non-zero exit is a BuildError carrying stderr."""
        with patch("subprocess.run", return_value=completed(1, stderr="no such base image")):
            with pytest.raises(BuildError, match="no such base image") as exc_info:
                await CommandBuilder().build(context, "Dockerfile", name=TARGET, push=False)
        assert exc_info.value.data == {"returncode": 1}

    async def test_tool_missing(self, context):
        """A missing packaging tool is reported by name."""
        with patch("subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(BuildError, match="kraft not found"):
                await CommandBuilder().build(context, "Dockerfile", name=TARGET, push=False)

    async def test_timeout(self, context):
        """A hung tool is abandoned after the timeout."""
        error = subprocess.TimeoutExpired(cmd="kraft", timeout=5)
        with patch("subprocess.run", side_effect=error):
            with pytest.raises(BuildError, match="timed out"):
                await CommandBuilder(timeout=5).build(
                    context, "Dockerfile", name=TARGET, push=False
                )


class TestPush:
    """Tests for pushing images."""

    async def test_push_command(self):
        run = MagicMock(return_value=completed())
        with patch("subprocess.run", run):
            await CommandBuilder().push(TARGET)
        assert run.call_args.args[0] == ["kraft", "pkg", "push", TARGET]
