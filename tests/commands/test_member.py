"""Tests for the member command group and the lapse command."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from librarian.cli import cli


@pytest.mark.usefixtures("_isolated_data_dir")
class TestMemberCommands:
    def test_create_and_list(self, cli_runner: CliRunner) -> None:
        assert cli_runner.invoke(cli, ["member", "create", "M-1", "--name", "Ada"]).exit_code == 0
        result = cli_runner.invoke(cli, ["--json", "member", "list"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["data"]["count"] == 1
        assert data["data"]["items"][0]["name"] == "Ada"
        assert data["data"]["lapsed"] == 0

    def test_list_human(self, cli_runner: CliRunner) -> None:
        cli_runner.invoke(cli, ["member", "create", "M-1", "--name", "Ada"])
        result = cli_runner.invoke(cli, ["member", "list"])
        assert result.exit_code == 0
        assert "Ada" in result.stdout
        assert "clear" in result.stdout

    def test_duplicate_exits_4(self, cli_runner: CliRunner) -> None:
        cli_runner.invoke(cli, ["member", "create", "M-1", "--name", "Ada"])
        result = cli_runner.invoke(cli, ["member", "create", "M-1", "--name", "Grace"])
        assert result.exit_code == 4

    def test_blank_name_is_usage_error(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["member", "create", "M-1", "--name", "  "])
        assert result.exit_code == 2

    def test_update(self, cli_runner: CliRunner) -> None:
        cli_runner.invoke(cli, ["member", "create", "M-1", "--name", "Ada"])
        result = cli_runner.invoke(cli, ["--json", "member", "update", "M-1", "--code", "M-9"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["data"]["code"] == "M-9"

    def test_update_not_found(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["member", "update", "M-404", "--name", "X"])
        assert result.exit_code == 3


@pytest.mark.usefixtures("_isolated_data_dir")
class TestLapseCommand:
    def test_lapse(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "lapse"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["op"] == "lapse_penalties"
        assert data["data"] == {"lapsed": 0}
