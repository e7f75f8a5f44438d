"""Tests for the output formatting system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline, including the authorization URL prompt
- Quiet and verbose mode rules
- JSON / plain rendering of responses and tables
- Logging routed through the stderr console
- Global instance management
"""

from __future__ import annotations

import json
import logging

import pytest

from loopauth import output as output_module
from loopauth.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


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


@pytest.fixture()
def restore_logger():
    """Undo configure_logging() side effects on the ``loopauth`` logger."""
    logger = logging.getLogger("loopauth")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


# ------------------------------------------------------------------ #
# OutputFormat resolution
# ------------------------------------------------------------------ #


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        mgr = OutputManager(format=OutputFormat.AUTO)
        assert mgr.format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        mgr = OutputManager(format=OutputFormat.AUTO)
        assert mgr.format == OutputFormat.RICH

    def test_no_color_flag_forces_plain(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        mgr = OutputManager(format=OutputFormat.AUTO, no_color=True)
        assert mgr.format == OutputFormat.PLAIN

    def test_explicit_json_stays_json(self, tty):
        mgr = OutputManager(format=OutputFormat.JSON)
        assert mgr.format == OutputFormat.JSON


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
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


# ------------------------------------------------------------------ #
# stdout vs stderr discipline
# ------------------------------------------------------------------ #


class TestStdoutStderrDiscipline:
    """Data goes to stdout; the URL prompt and diagnostics go to stderr."""

    def test_print_data_goes_to_stdout(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.print_data("hello world")
        captured = capfd.readouterr()
        assert "hello world" in captured.out
        assert captured.err == ""

    def test_authorization_prompt_goes_to_stderr(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        url = "https://github.com/login/oauth/authorize?client_id=x&state=y"
        mgr.authorization_prompt(url)
        captured = capfd.readouterr()
        assert captured.out == ""
        assert url in captured.err.splitlines()

    @pytest.mark.parametrize("method", ["info", "success", "warning", "error", "suggest"])
    def test_diagnostics_go_to_stderr(self, capfd, non_tty, method):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        getattr(mgr, method)("a diagnostic")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "a diagnostic" in captured.err

    def test_error_prefix(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.error("listener failed")
        assert "Error: listener failed" in capfd.readouterr().err

    @pytest.mark.parametrize("method", ["info", "success", "warning", "error", "suggest"])
    def test_brackets_survive_rich_console(self, capfd, non_tty, monkeypatch, method):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        mgr = OutputManager(format=OutputFormat.PLAIN)
        getattr(mgr, method)("bad port [type=greater_than, input_value=0]")
        assert "[type=greater_than, input_value=0]" in capfd.readouterr().err

    def test_debug_brackets_survive_rich_console(self, capfd, non_tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        mgr = OutputManager(format=OutputFormat.PLAIN, verbose=True)
        mgr.debug("state [bold]x[/bold]")
        assert "[debug] state [bold]x[/bold]" in capfd.readouterr().err


class TestQuietAndVerbose:
    @pytest.mark.parametrize("method", ["info", "success", "suggest"])
    def test_quiet_suppresses(self, capfd, non_tty, method):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        getattr(mgr, method)("hidden")
        assert capfd.readouterr().err == ""

    @pytest.mark.parametrize("method", ["warning", "error", "authorization_prompt"])
    def test_quiet_keeps(self, capfd, non_tty, method):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        getattr(mgr, method)("kept")
        assert "kept" in capfd.readouterr().err

    def test_debug_hidden_by_default(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.debug("should not appear")
        assert capfd.readouterr().err == ""

    def test_debug_shown_with_verbose(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True)
        mgr.debug("trace info")
        assert "[debug] trace info" in capfd.readouterr().err


# ------------------------------------------------------------------ #
# Rendering
# ------------------------------------------------------------------ #


class TestRendering:
    def test_json_response(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        mgr.info("loading...")
        mgr.format_response({"login": "octocat", "email": None})
        captured = capfd.readouterr()
        assert json.loads(captured.out) == {"login": "octocat", "email": None}
        assert "loading..." in captured.err

    def test_plain_response_dict(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.format_response({"login": "octocat", "email": None})
        assert capfd.readouterr().out.splitlines() == ["login\toctocat", "email\t"]

    def test_json_table(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        mgr.print_table(["field", "value"], [["token_type", "bearer"]])
        assert json.loads(capfd.readouterr().out) == [{"field": "token_type", "value": "bearer"}]

    def test_plain_table(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.print_table(["name", "private"], [["hello", "false"], ["secret", "true"]])
        assert capfd.readouterr().out.splitlines() == [
            "name\tprivate",
            "hello\tfalse",
            "secret\ttrue",
        ]

    def test_rich_table(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.RICH, no_color=True)
        mgr.print_table(["name"], [["hello-world"]], title="Repositories")
        out = capfd.readouterr().out
        assert "Repositories" in out
        assert "hello-world" in out


# ------------------------------------------------------------------ #
# Logging
# ------------------------------------------------------------------ #


class TestConfigureLogging:
    def test_verbose_shows_debug_records(self, capfd, non_tty, restore_logger):
        OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True).configure_logging()
        logging.getLogger("loopauth.flow.callback").debug("listening on port 8080")
        assert "listening on port 8080" in capfd.readouterr().err

    def test_default_hides_debug_records(self, capfd, non_tty, restore_logger):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).configure_logging()
        logging.getLogger("loopauth.flow.callback").debug("listening on port 8080")
        assert "listening" not in capfd.readouterr().err

    def test_handler_not_duplicated(self, non_tty, restore_logger):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.configure_logging()
        mgr.configure_logging()
        ours = [h for h in restore_logger.handlers if getattr(h, "_loopauth_handler", False)]
        assert len(ours) == 1


# ------------------------------------------------------------------ #
# Global instance management
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    def test_get_output_creates_default(self, non_tty):
        reset_output()
        assert isinstance(get_output(), OutputManager)

    def test_set_output(self, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON)
        set_output(mgr)
        assert get_output() is mgr

    def test_convenience_functions_use_global(self, capfd, non_tty):
        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True))
        output_module.print_data("via module")
        output_module.authorization_prompt("https://example.com/auth")
        captured = capfd.readouterr()
        assert "via module" in captured.out
        assert "https://example.com/auth" in captured.err
