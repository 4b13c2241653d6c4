"""Unit tests for CLI output formatting."""

import json

from cloudcompose.compose.lifecycle import InstanceStatus
from cloudcompose.formatters import print_instance_status, print_table


def test_table_headers_and_cells(capsys):
    print_table(["name", "state"], [["demo-web", "running"], ["demo-api", "stopped"]])

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].split() == ["NAME", "STATE"]
    assert lines[1].split() == ["demo-web", "running"]
    assert lines[2].split() == ["demo-api", "stopped"]


def test_table_columns_aligned(capsys):
    print_table(["name", "state"], [["a", "running"], ["longer-name", "stopped"]])

    lines = capsys.readouterr().out.splitlines()
    assert len({line.index(word) for line, word in zip(lines, ["STATE", "running", "stopped"])}) == 1


def test_instance_status_json(capsys):
    rows = [InstanceStatus(name="demo-web", state="running", image="nginx", uuid="u1")]

    print_instance_status(rows, json_output=True)

    assert json.loads(capsys.readouterr().out)[0]["name"] == "demo-web"
