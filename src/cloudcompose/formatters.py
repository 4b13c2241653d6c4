"""CLI output formatting helpers."""

import json
from typing import Any

import click
import yaml
from rich.console import Console
from rich.table import Table

from .compose.lifecycle import InstanceStatus, LifecycleResult
from .compose.reconciler import ReconcileResult
from .compose.status import ProjectStatus


def echo_json(data: Any) -> None:
    """Print data as indented JSON."""
    click.echo(json.dumps(data, indent=2))


def print_table(headers: list[str], rows: list[list[str]]) -> None:
    """Print rows as borderless columns sized to the terminal.

    Args:
        headers: Column titles
        rows: Cell values, one list per row
    """
    table = Table(*(h.upper() for h in headers), box=None, pad_edge=False, header_style="bold")
    for row in rows:
        table.add_row(*row)
    Console().print(table)


def print_instance_status(rows: list[InstanceStatus], json_output: bool = False) -> None:
    """Print ``ps`` output."""
    if json_output:
        echo_json([r.to_dict() for r in rows])
        return
    print_table(
        ["name", "state", "image", "uuid"],
        [[r.name, r.state, r.image, r.uuid] for r in rows],
    )


def print_projects(statuses: list[ProjectStatus], json_output: bool = False) -> None:
    """Print ``ls`` output."""
    if json_output:
        echo_json([s.to_dict() for s in statuses])
        return
    print_table(
        ["name", "instances", "networks", "volumes", "compose file"],
        [
            [
                s.name,
                str(len(s.instances)),
                str(len(s.networks)),
                str(len(s.volumes)),
                s.compose_file,
            ]
            for s in statuses
        ],
    )


def print_reconcile_result(result: ReconcileResult, json_output: bool = False) -> None:
    """Print what ``up``/``create`` created and adopted."""
    if json_output:
        echo_json(
            {
                "instances": {a: i.name for a, i in result.instances.items()},
                "service_groups": {a: g.name for a, g in result.service_groups.items()},
                "volumes": {a: v.name for a, v in result.volumes.items()},
                "created": [{"kind": k, "name": n} for k, n in result.created],
                "adopted": [{"kind": k, "name": n} for k, n in result.adopted],
            }
        )
        return

    for kind, name in result.created:
        click.echo(f"  ✓ created {kind} {name}")
    for kind, name in result.adopted:
        click.echo(f"  = adopted {kind} {name}")
    if not result.created and not result.adopted:
        click.echo("Nothing to do")


def print_lifecycle_result(action: str, result: LifecycleResult) -> None:
    """Print per-instance outcome of start/stop/down."""
    for name in result.succeeded:
        click.echo(f"  ✓ {action} {name}")
    for name in result.skipped:
        click.echo(f"  - {name} not deployed")
    for name, error in result.failed.items():
        click.echo(f"  ✗ {name}: {error}", err=True)


def print_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        click.echo(f"  ⚠ {warning}", err=True)


def print_config_yaml(data: dict[str, Any], sources: dict[str, str] | None = None) -> None:
    """Print config as YAML, with value sources as trailing comments.

    Args:
        data: Configuration values
        sources: Where each value came from
    """
    if not sources:
        click.echo(yaml.dump(data, default_flow_style=False, sort_keys=False))
        return

    for key, value in data.items():
        line = yaml.dump({key: value}, default_flow_style=False).strip()
        click.echo(f"{line}  # {sources.get(key, 'default')}")
