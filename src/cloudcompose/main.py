"""CLI main entry point."""

import asyncio
import sys
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.markup import escape

from .client import PlatformClient
from .compose import (
    CommandBuilder,
    FleetRefresher,
    LifecycleDriver,
    LifecycleResult,
    Project,
    Reconciler,
    StatusStore,
    load_project,
    service_instance_names,
)
from .compose.images import package_name
from .config import CONFIG_KEYS, CloudConfig, load_config, save_config, unset_config
from .errors import CloudComposeError, ConfigurationError, NotBuildableError
from .formatters import (
    echo_json,
    print_config_yaml,
    print_instance_status,
    print_lifecycle_result,
    print_projects,
    print_reconcile_result,
    print_warnings,
)
from .shared.logging import configure_logging
from .utils import parse_duration, parse_runtime_flags

err_console = Console(stderr=True)

VERBOSITY = {0: "warning", 1: "info"}


def make_client(config: CloudConfig) -> PlatformClient:
    """Create the platform client for a command."""
    return PlatformClient(config)


def make_store() -> StatusStore:
    """Create the status store for a command."""
    return StatusStore()


def make_builder() -> CommandBuilder:
    """Create the build collaborator for a command."""
    return CommandBuilder()


def print_error(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {escape(message)}")


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Turn expected failures into an error line and exit status 1."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except CloudComposeError as e:
            print_error(e.message)
            sys.exit(1)
        except ValueError as e:
            print_error(str(e))
            sys.exit(1)
        except KeyboardInterrupt:
            sys.exit(130)

    return wrapper


def _duration(ctx: click.Context, param: click.Parameter, value: str | None) -> float:
    if value is None:
        return 0.0
    try:
        return parse_duration(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def _load(ctx: click.Context) -> Project:
    return load_project(Path.cwd(), ctx.obj.get("file"), ctx.obj.get("project_name"))


async def _stream_logs(driver: LifecycleDriver, names: list[str], tail: int) -> None:
    prefix = len(names) > 1

    async def pump(name: str) -> None:
        async for line in driver.follow(name, tail):
            click.echo(f"{name} | {line}" if prefix else line)

    tasks = [asyncio.create_task(pump(name)) for name in names]
    try:
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            task.cancel()


async def _refresh(
    client: PlatformClient, store: StatusStore, project: Project, save: bool = True
) -> list[str]:
    """Revalidate the recorded status of a project, if there is one."""
    status = store.load(project.name)
    if status is None:
        return []
    result = await FleetRefresher(client, project).refresh(status)
    if save:
        store.save(result.status)
    return result.warnings


@click.group()
@click.option("-f", "--file", type=click.Path(), help="Compose file path")
@click.option("-p", "--project-name", help="Project name (default: directory name)")
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.option("--log-json", is_flag=True, help="Log as JSON")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Append logs to a file (JSON lines)")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def cli(
    ctx: click.Context,
    file: str | None,
    project_name: str | None,
    verbose: int,
    log_json: bool,
    log_file: str | None,
    json_output: bool,
) -> None:
    """Deploy compose projects to a remote unikernel platform."""
    ctx.ensure_object(dict)
    ctx.obj["file"] = file
    ctx.obj["project_name"] = project_name
    ctx.obj["json_output"] = json_output
    configure_logging(VERBOSITY.get(verbose, "debug"), log_file=log_file, json_output=log_json)


@cli.command()
@click.argument("services", nargs=-1)
@click.option("-d", "--detach", is_flag=True, help="Do not follow logs after starting")
@click.option("--wait", callback=_duration, help="Wait for instances to run (e.g. 30s)")
@click.option("--no-build", is_flag=True, help="Do not build images missing from the catalog")
@click.option("--no-start", is_flag=True, help="Create instances without starting them")
@click.option(
    "--runtime",
    multiple=True,
    metavar="SERVICE=REF",
    help="Image to use for a service (repeatable)",
)
@click.pass_context
@handle_errors
def up(
    ctx: click.Context,
    services: tuple[str, ...],
    detach: bool,
    wait: float,
    no_build: bool,
    no_start: bool,
    runtime: tuple[str, ...],
) -> None:
    """Create and start the services of a project."""
    project = _load(ctx)
    config = load_config()
    runtimes = parse_runtime_flags(runtime)
    store = make_store()

    async def _up() -> None:
        async with make_client(config) as client:
            reconciler = Reconciler(
                client,
                config,
                make_builder(),
                build=not no_build,
                push=True,
                runtimes=runtimes,
            )
            result = await reconciler.reconcile(project, list(services))

            status = result.to_status(project)
            previous = store.load(project.name)
            store.save(previous.merge(status) if previous else status)
            print_reconcile_result(result, ctx.obj["json_output"])

            if no_start:
                return

            driver = LifecycleDriver(client)
            started = await driver.start(result.instance_names, wait=wait)
            print_lifecycle_result("started", started)

            if not detach and started.succeeded:
                await _stream_logs(driver, started.succeeded, tail=-1)

    asyncio.run(_up())


@cli.command()
@click.argument("services", nargs=-1)
@click.option("--runtime", multiple=True, metavar="SERVICE=REF", help="Image to use for a service")
@click.option("--no-build", is_flag=True, help="Do not build images missing from the catalog")
@click.pass_context
@handle_errors
def create(
    ctx: click.Context,
    services: tuple[str, ...],
    runtime: tuple[str, ...],
    no_build: bool,
) -> None:
    """Create the services of a project without starting them."""
    project = _load(ctx)
    config = load_config()
    runtimes = parse_runtime_flags(runtime)
    store = make_store()

    async def _create() -> None:
        async with make_client(config) as client:
            reconciler = Reconciler(
                client, config, make_builder(), build=not no_build, runtimes=runtimes
            )
            result = await reconciler.reconcile(project, list(services))

        status = result.to_status(project)
        previous = store.load(project.name)
        store.save(previous.merge(status) if previous else status)
        print_reconcile_result(result, ctx.obj["json_output"])

    asyncio.run(_create())


@cli.command()
@click.argument("services", nargs=-1)
@click.pass_context
@handle_errors
def down(ctx: click.Context, services: tuple[str, ...]) -> None:
    """Remove the instances of a project."""
    project = _load(ctx)
    config = load_config()
    names = service_instance_names(project, list(services))
    store = make_store()

    async def _down() -> None:
        async with make_client(config) as client:
            print_warnings(await _refresh(client, store, project, save=False))
            result = await LifecycleDriver(client).remove(list(names.values()))
        print_lifecycle_result("removed", result)

        if not services:
            store.delete(project.name)
            return

        status = store.load(project.name)
        if status is not None:
            removed = set(result.succeeded) | set(result.skipped)
            status.instances = [m for m in status.instances if m.name not in removed]
            store.save(status)

    asyncio.run(_down())


@cli.command()
@click.argument("services", nargs=-1)
@click.option("--wait", callback=_duration, help="Wait for instances to run (e.g. 30s)")
@click.pass_context
@handle_errors
def start(ctx: click.Context, services: tuple[str, ...], wait: float) -> None:
    """Start the instances of a project."""
    project = _load(ctx)
    config = load_config()
    names = service_instance_names(project, list(services))

    async def _start() -> LifecycleResult:
        async with make_client(config) as client:
            return await LifecycleDriver(client).start(list(names.values()), wait=wait)

    result = asyncio.run(_start())
    print_lifecycle_result("started", result)
    if not result.ok:
        sys.exit(1)


@cli.command()
@click.argument("services", nargs=-1)
@click.option("--wait", callback=_duration, help="Time to let connections drain (e.g. 10s)")
@click.option("--force", is_flag=True, help="Stop immediately without draining")
@click.pass_context
@handle_errors
def stop(ctx: click.Context, services: tuple[str, ...], wait: float, force: bool) -> None:
    """Stop the instances of a project."""
    project = _load(ctx)
    config = load_config()
    names = service_instance_names(project, list(services))

    async def _stop() -> LifecycleResult:
        async with make_client(config) as client:
            return await LifecycleDriver(client).stop(
                list(names.values()), drain_timeout=wait, force=force
            )

    result = asyncio.run(_stop())
    print_lifecycle_result("stopped", result)
    if not result.ok:
        sys.exit(1)


@cli.command()
@click.argument("services", nargs=-1)
@click.pass_context
@handle_errors
def ps(ctx: click.Context, services: tuple[str, ...]) -> None:
    """Show the state of the instances of a project."""
    project = _load(ctx)
    config = load_config()
    names = service_instance_names(project, list(services))
    store = make_store()

    async def _ps() -> None:
        async with make_client(config) as client:
            print_warnings(await _refresh(client, store, project))
            rows = await LifecycleDriver(client).status(list(names.values()))
        print_instance_status(rows, ctx.obj["json_output"])

    asyncio.run(_ps())


@cli.command("ls")
@click.pass_context
@handle_errors
def list_projects(ctx: click.Context) -> None:
    """List recorded projects."""
    config = load_config()
    store = make_store()

    async def _ls() -> None:
        statuses = store.list()
        async with make_client(config) as client:
            for status in statuses:
                if not status.compose_file or not Path(status.compose_file).is_file():
                    continue
                try:
                    project = load_project(Path(status.workdir), status.compose_file, status.name)
                except ConfigurationError as e:
                    print_warnings([f"project '{status.name}': {e.message}"])
                    continue
                print_warnings(await _refresh(client, store, project))
        print_projects(store.list(), ctx.obj["json_output"])

    asyncio.run(_ls())


@cli.command()
@click.argument("services", nargs=-1)
@click.option("--push", is_flag=True, help="Push images after building")
@click.pass_context
@handle_errors
def build(ctx: click.Context, services: tuple[str, ...], push: bool) -> None:
    """Build the images of services that have a build context."""
    project = _load(ctx)
    config = load_config()
    names = service_instance_names(project, list(services))
    builder = make_builder()

    async def _build() -> None:
        for alias, name in names.items():
            service = project.services[alias]
            if service.build is None:
                continue
            ref = package_name(config, service, name)
            try:
                built = await builder.build(
                    service.build.context, service.build.dockerfile, name=ref, push=push
                )
            except NotBuildableError as e:
                print_warnings([f"{alias}: {e.message}"])
                continue
            click.echo(f"  ✓ built {built or ref}")

    asyncio.run(_build())


@cli.command()
@click.argument("services", nargs=-1)
@click.pass_context
@handle_errors
def push(ctx: click.Context, services: tuple[str, ...]) -> None:
    """Push the built images of services."""
    project = _load(ctx)
    config = load_config()
    names = service_instance_names(project, list(services))
    builder = make_builder()

    async def _push() -> None:
        for alias, name in names.items():
            service = project.services[alias]
            if service.build is None:
                continue
            ref = package_name(config, service, name)
            await builder.push(ref)
            click.echo(f"  ✓ pushed {ref}")

    asyncio.run(_push())


@cli.command()
@click.argument("services", nargs=-1)
@click.option("--follow", is_flag=True, help="Keep printing new output")
@click.option("-n", "--tail", type=int, default=-1, help="Number of trailing lines (-1 for all)")
@click.pass_context
@handle_errors
def log(ctx: click.Context, services: tuple[str, ...], follow: bool, tail: int) -> None:
    """Print the console output of instances."""
    project = _load(ctx)
    config = load_config()
    names = list(service_instance_names(project, list(services)).values())

    async def _log() -> None:
        async with make_client(config) as client:
            driver = LifecycleDriver(client)
            if follow:
                await _stream_logs(driver, names, tail)
                return
            for name in names:
                for line in await driver.logs(name, tail):
                    click.echo(f"{name} | {line}" if len(names) > 1 else line)

    asyncio.run(_log())


# =============================================================================
# Config Commands
# =============================================================================


@cli.group()
def config() -> None:
    """Manage CLI configuration."""


@config.command("show")
@click.option("--show-token", is_flag=True, help="Print the API token unredacted")
@click.pass_context
def config_show(ctx: click.Context, show_token: bool) -> None:
    """Show configuration values and where they came from."""
    cfg = load_config()
    values = cfg.as_dict(redact=not show_token)
    if ctx.obj["json_output"]:
        echo_json(values)
        return
    print_config_yaml(values, {key: cfg.get_source(key) for key in CONFIG_KEYS})


@config.command("set")
@click.argument("key", type=click.Choice(CONFIG_KEYS))
@click.argument("value")
@handle_errors
def config_set(key: str, value: str) -> None:
    """Set a configuration value."""
    save_config(key, value)
    click.echo(f"Set {key}")


@config.command("unset")
@click.argument("key", type=click.Choice(CONFIG_KEYS))
def config_unset(key: str) -> None:
    """Remove a configuration value."""
    if unset_config(key):
        click.echo(f"Unset {key}")
    else:
        click.echo(f"{key} is not set")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
