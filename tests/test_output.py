"""Tests for the output formatting system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet and verbose modes
- format_response and print_table in each format
- Output file redirection
- Global instance management
"""

from __future__ import annotations

import json

import pytest

from loopauth.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)
from loopauth import output as output_module


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def non_tty(monkeypatch):
    """Patch stdout.isatty() to return False."""
    monkeypatch.setattr("loopauth.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    """Patch stdout.isatty() to return True."""
    monkeypatch.setattr("loopauth.output._is_tty", lambda: True)


RESPONSE = {"code": "4/0AX4", "state": "xyz", "redirect_uri": "http://127.0.0.1:5000/authorize/"}


# ------------------------------------------------------------------ #
# Format resolution and colour
# ------------------------------------------------------------------ #


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        assert OutputManager().format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert OutputManager().format == OutputFormat.RICH

    def test_no_color_flag_forces_plain_on_tty(self, tty):
        assert OutputManager(no_color=True).format == OutputFormat.PLAIN

    def test_explicit_json_stays_json(self, tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_term(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm")
        assert _should_disable_color() is False


# ------------------------------------------------------------------ #
# stdout / stderr discipline
# ------------------------------------------------------------------ #


class TestStdoutStderrDiscipline:
    def test_response_goes_to_stdout(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response(RESPONSE)
        out, err = capfd.readouterr()
        assert json.loads(out) == RESPONSE
        assert err == ""

    @pytest.mark.parametrize("method", ["info", "success", "warning", "error", "suggest"])
    def test_diagnostics_go_to_stderr(self, capfd, non_tty, method):
        getattr(OutputManager(no_color=True), method)("hello")
        out, err = capfd.readouterr()
        assert out == ""
        assert "hello" in err

    def test_error_prefix(self, capfd, non_tty):
        OutputManager(no_color=True).error("bad")
        assert capfd.readouterr().err == "Error: bad\n"


class TestQuietAndVerbose:
    @pytest.mark.parametrize("method", ["info", "success", "suggest"])
    def test_quiet_suppresses(self, capfd, non_tty, method):
        getattr(OutputManager(no_color=True, quiet=True), method)("hidden")
        assert capfd.readouterr().err == ""

    @pytest.mark.parametrize("method", ["warning", "error"])
    def test_quiet_keeps(self, capfd, non_tty, method):
        getattr(OutputManager(no_color=True, quiet=True), method)("shown")
        assert "shown" in capfd.readouterr().err

    def test_debug_only_with_verbose(self, capfd, non_tty):
        OutputManager(no_color=True).debug("trace")
        assert capfd.readouterr().err == ""
        OutputManager(no_color=True, verbose=True).debug("trace")
        assert capfd.readouterr().err == "[debug] trace\n"

    def test_progress_only_on_tty(self, capfd, non_tty):
        OutputManager(no_color=True).progress("waiting")
        assert capfd.readouterr().err == ""

    def test_progress_shown_on_tty(self, capfd, tty):
        OutputManager(no_color=True).progress("waiting")
        assert "waiting" in capfd.readouterr().err


# ------------------------------------------------------------------ #
# Data formats
# ------------------------------------------------------------------ #


class TestFormats:
    def test_plain_response_is_tab_separated(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response({"code": "abc", "state": "x"})
        assert capfd.readouterr().out == "code\tabc\nstate\tx\n"

    def test_rich_response_produces_output(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH).format_response({"code": "abc"})
        assert "abc" in capfd.readouterr().out

    def test_table_json(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).print_table(
            ["template", "usable"], [["http://127.0.0.1:{port}/authorize/", "yes"]]
        )
        assert json.loads(capfd.readouterr().out) == [
            {"template": "http://127.0.0.1:{port}/authorize/", "usable": "yes"}
        ]

    def test_table_plain(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).print_table(["a", "b"], [["1", "2"]])
        assert capfd.readouterr().out == "a\tb\n1\t2\n"

    def test_table_rich(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH).print_table(
            ["template"], [["http://127.0.0.1:{port}/authorize/"]], title="Templates"
        )
        out = capfd.readouterr().out
        assert "Templates" in out
        assert "http://127.0.0.1:{port}/authorize/" in out

    def test_output_file(self, capfd, non_tty, tmp_path):
        target = tmp_path / "response.json"
        OutputManager(format=OutputFormat.PLAIN, output_file=str(target)).format_response(
            RESPONSE
        )
        assert capfd.readouterr().out == ""
        assert json.loads(target.read_text()) == RESPONSE


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    def test_lazy_default(self, non_tty):
        reset_output()
        assert isinstance(get_output(), OutputManager)
        assert get_output() is get_output()

    def test_set_and_helpers(self, capfd, non_tty):
        set_output(OutputManager(format=OutputFormat.JSON, no_color=True))
        output_module.format_response({"code": "c"})
        output_module.info("note")
        out, err = capfd.readouterr()
        assert json.loads(out) == {"code": "c"}
        assert err == "note\n"
