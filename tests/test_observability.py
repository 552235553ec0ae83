"""
Tests for the console log level — flags, environment, and CLI wiring.
"""

import logging

import pytest
from click.testing import CliRunner

from mercato_cli import main as main_module
from mercato_cli.core.observability.logging_config import resolve_level, setup_logging
from mercato_cli.main import cli


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestResolveLevel:
    def test_default(self):
        assert resolve_level() == "WARNING"

    def test_empty_env_is_default(self):
        assert resolve_level(env_level=None) == "WARNING"
        assert resolve_level(env_level="") == "WARNING"

    def test_env_fallback(self):
        assert resolve_level(env_level="INFO") == "INFO"
        assert resolve_level(env_level="DEBUG") == "DEBUG"

    @pytest.mark.parametrize("flags, expected", [
        ({"debug": True}, "DEBUG"),
        ({"verbose": True}, "INFO"),
        ({"quiet": True}, "ERROR"),
    ])
    def test_flag_wins_over_env(self, flags, expected):
        assert resolve_level(env_level="CRITICAL", **flags) == expected

    def test_debug_beats_verbose_and_quiet(self):
        assert resolve_level(debug=True, verbose=True, quiet=True) == "DEBUG"

    def test_verbose_beats_quiet(self):
        assert resolve_level(verbose=True, quiet=True) == "INFO"


class TestCliLevel:
    """The group callback hands the resolved level to setup_logging."""

    @pytest.fixture
    def seen(self, monkeypatch):
        calls: list[dict] = []
        monkeypatch.setattr(main_module, "setup_logging", lambda **kw: calls.append(kw))
        monkeypatch.delenv("MERCATO_LOG_LEVEL", raising=False)
        return calls

    def _run(self, workspace, *flags, env=None):
        runner = CliRunner()
        return runner.invoke(cli, [*flags, "--cwd", str(workspace.app), "modules"], env=env)

    def test_default(self, workspace, seen):
        self._run(workspace)
        assert seen[0]["level"] == "WARNING"
        assert seen[0]["quiet_third_party"] is True

    def test_env_var(self, workspace, seen):
        self._run(workspace, env={"MERCATO_LOG_LEVEL": "INFO"})
        assert seen[0]["level"] == "INFO"

    def test_debug_flag_over_env(self, workspace, seen):
        self._run(workspace, "--debug", env={"MERCATO_LOG_LEVEL": "ERROR"})
        assert seen[0]["level"] == "DEBUG"
        assert seen[0]["quiet_third_party"] is False

    def test_quiet_flag(self, workspace, seen):
        self._run(workspace, "-q")
        assert seen[0]["level"] == "ERROR"


class TestSetupLogging:
    def test_applies_level(self):
        setup_logging(level="INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_unknown_level_is_warning(self):
        setup_logging(level="LOUD")
        assert logging.getLogger().level == logging.WARNING
