"""Tests for the ``probe`` command."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from loopauth.commands.probe import probe_command
from loopauth.output import OutputFormat, OutputManager, set_output
from loopauth.receiver import (
    LOCALHOST_TEMPLATE,
    LOOPBACK_IP_TEMPLATE,
    CallbackUriChooser,
    set_chooser,
)


def _build_app() -> typer.Typer:
    app = typer.Typer(add_completion=False)

    @app.callback()
    def _callback() -> None:
        set_output(OutputManager(format=OutputFormat.JSON, quiet=True))

    app.command("probe")(probe_command)
    return app


@pytest.fixture
def app() -> typer.Typer:
    return _build_app()


class TestProbe:
    def test_default_strategy_prefers_loopback(
        self, cli_runner: CliRunner, app: typer.Typer, isolated_config: Path
    ) -> None:
        set_chooser(CallbackUriChooser(listener_fails_for=lambda template: False))
        result = cli_runner.invoke(app, ["probe"])
        assert result.exit_code == 0, result.output
        records = json.loads(result.stdout)
        assert records == [
            {
                "template": LOOPBACK_IP_TEMPLATE,
                "usable": "yes",
                "succeeded": "no",
                "failed": "no",
                "timed_out": "no",
                "resets": "0",
            }
        ]

    def test_denied_loopback_falls_back(
        self, cli_runner: CliRunner, app: typer.Typer, isolated_config: Path
    ) -> None:
        set_chooser(
            CallbackUriChooser(listener_fails_for=lambda template: template == LOOPBACK_IP_TEMPLATE)
        )
        result = cli_runner.invoke(app, ["probe"])
        assert result.exit_code == 0, result.output
        records = {r["template"]: r for r in json.loads(result.stdout)}
        assert records[LOOPBACK_IP_TEMPLATE]["failed"] == "yes"
        assert records[LOCALHOST_TEMPLATE]["usable"] == "yes"

    def test_forced_strategy(
        self, cli_runner: CliRunner, app: typer.Typer, isolated_config: Path
    ) -> None:
        result = cli_runner.invoke(app, ["probe", "--strategy", "localhost"])
        assert result.exit_code == 0, result.output
        assert [r["template"] for r in json.loads(result.stdout)] == [LOCALHOST_TEMPLATE]

    def test_unknown_strategy(
        self, cli_runner: CliRunner, app: typer.Typer, isolated_config: Path
    ) -> None:
        result = cli_runner.invoke(app, ["probe", "--strategy", "carrier-pigeon"])
        assert result.exit_code == 1
        assert "Unknown redirect URI strategy" in result.output
