"""Command line entry point tests."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from unittest import mock

import pytest

from conftest import SRC_DIR, fake_cli_command
from deadline_popen import __version__
from deadline_popen.app import build_parser, configure_logging, main
from deadline_popen.config import Config, LaunchMode

IS_WINDOWS = sys.platform == "win32"


@pytest.fixture(autouse=True)
def direct_config():
    """Pin the configuration and keep logging setup out of the way."""
    config = Config(launch_mode=LaunchMode.DIRECT, timeout_ms=10_000, kill_timeout=0.5)
    with mock.patch("deadline_popen.app.get_config", return_value=config), mock.patch(
        "deadline_popen.app.configure_logging"
    ) as configure:
        yield configure


class TestMain:
    """Test main() exit codes and output."""

    def test_prints_stdout(self, capsys: pytest.CaptureFixture[str]):
        code = main([fake_cli_command("--stdout", "hello\n")])

        captured = capsys.readouterr()
        assert code == 0
        assert captured.out == "hello\n"
        assert captured.err == ""

    def test_failure_goes_to_stderr(self, capsys: pytest.CaptureFixture[str]):
        code = main([fake_cli_command("--stderr", "bad", "--exit-code", "2")])

        captured = capsys.readouterr()
        assert code == 1
        assert captured.out == ""
        assert "exitCode = 2, err = bad" in captured.err

    def test_empty_command(self, capsys: pytest.CaptureFixture[str]):
        code = main([])

        assert code == 1
        assert "Command is empty" in capsys.readouterr().err

    @pytest.mark.timeout(10)
    def test_timeout_option(self, capsys: pytest.CaptureFixture[str]):
        code = main(["--timeout-ms", "100", fake_cli_command("--sleep", "5")])

        assert code == 1
        assert "in 100ms" in capsys.readouterr().err

    def test_negative_timeout_rejected(self, capsys: pytest.CaptureFixture[str]):
        with pytest.raises(SystemExit) as exc_info:
            main(["--timeout-ms", "-5", "true"])

        err = capsys.readouterr().err
        assert exc_info.value.code == 2
        assert err.startswith("usage: deadline-popen")
        assert "deadline-popen: error: --timeout-ms must be non-negative" in err

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX shell syntax")
    def test_launch_mode_override(self, capsys: pytest.CaptureFixture[str]):
        code = main(["--launch-mode", "shell", "echo one && echo two"])

        assert code == 0
        assert capsys.readouterr().out == "one\ntwo\n"

    def test_info(self, capsys: pytest.CaptureFixture[str]):
        code = main(["--info"])

        assert code == 0
        assert capsys.readouterr().out.startswith(f"deadline-popen v{__version__}")

    def test_logging_configured_with_effective_config(self, direct_config: mock.Mock):
        main(["--launch-mode", "shell", "--info"])

        config = direct_config.call_args.args[0]
        assert config.launch_mode is LaunchMode.SHELL


class TestParser:
    """Test argument parsing."""

    def test_defaults_from_config(self):
        config = Config(launch_mode=LaunchMode.DIRECT, timeout_ms=750)

        args = build_parser(config).parse_args(["ls"])

        assert args.command == "ls"
        assert args.timeout_ms == 750
        assert args.launch_mode is None
        assert args.info is False

    def test_invalid_launch_mode(self):
        with pytest.raises(SystemExit) as exc_info:
            build_parser(Config()).parse_args(["--launch-mode", "bogus", "ls"])

        assert exc_info.value.code == 2


class TestConfigureLogging:
    """Test log routing.

    configure_logging is imported above, before the autouse fixture patches
    the module attribute, so the real function runs here.
    """

    def teardown_method(self) -> None:
        logging.getLogger("deadline_popen").setLevel(logging.NOTSET)

    def test_stderr_handler_by_default(self):
        with mock.patch.object(logging, "basicConfig") as basic_config:
            configure_logging(Config())

        kwargs = basic_config.call_args.kwargs
        assert kwargs["level"] == logging.WARNING
        assert type(kwargs["handlers"][0]) is logging.StreamHandler
        assert logging.getLogger("deadline_popen").level == logging.INFO

    def test_file_handler_in_debug_mode(self, tmp_path):
        log_file = tmp_path / "debug.log"

        with mock.patch.object(logging, "basicConfig") as basic_config:
            configure_logging(Config(log_debug=True, log_file=str(log_file)))

        handler = basic_config.call_args.kwargs["handlers"][0]
        try:
            assert isinstance(handler, logging.FileHandler)
            assert handler.baseFilename == str(log_file)
            assert logging.getLogger("deadline_popen").level == logging.DEBUG
        finally:
            handler.close()


@pytest.mark.integration
@pytest.mark.timeout(30)
def test_module_entry_point():
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))
    env["DLP_LAUNCH_MODE"] = "direct"

    completed = subprocess.run(
        [sys.executable, "-m", "deadline_popen", "--timeout-ms", "10000", fake_cli_command("--stdout", "via module")],
        capture_output=True,
        text=True,
        env=env,
        timeout=30,
    )

    assert completed.returncode == 0
    assert completed.stdout == "via module"
