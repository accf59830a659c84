"""
Tests for the command line entry point in reggc/main.py
"""

import logging

import pytest

from reggc.main import main, parse_arguments
from reggc.utils.error_utils import DeletionError


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("schedule:\n  interval_seconds: 600\n")
    return str(path)


class TestParseArguments:
    def test_defaults(self):
        args = parse_arguments([])

        assert args.config is None
        assert args.once is False
        assert args.dry_run is False
        assert args.log_level == logging.INFO

    def test_log_level_names(self):
        assert parse_arguments(["--log-level", "DEBUG"]).log_level == logging.DEBUG

    def test_unknown_log_level_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            parse_arguments(["--log-level", "chatty"])
        assert exc_info.value.code == 2


class TestMain:
    def test_once_runs_a_single_cycle(self, mocker, config_path):
        run_cycle = mocker.patch("reggc.main.run_cycle", return_value=[])

        main(["--config", config_path, "--once"])

        run_cycle.assert_called_once()
        config = run_cycle.call_args.args[0]
        assert config.get_interval_seconds() == 600

    def test_once_exits_non_zero_on_failure(self, mocker, config_path):
        mocker.patch("reggc.main.run_cycle", side_effect=DeletionError("delete image", "ctr.lesiw.dev/app:old"))

        with pytest.raises(SystemExit) as exc_info:
            main(["--config", config_path, "--once"])
        assert exc_info.value.code == 1

    def test_dry_run_flag_enables_dry_run(self, mocker, config_path, monkeypatch):
        monkeypatch.setenv("DRY_RUN", "false")
        run_cycle = mocker.patch("reggc.main.run_cycle", return_value=[])

        main(["--config", config_path, "--once", "--dry-run"])

        assert run_cycle.call_args.args[0].is_dry_run() is True

    def test_invalid_config_exits_with_usage_code(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("gc:\n  pod: Not_A_Pod\n")

        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(path), "--once"])
        assert exc_info.value.code == 2

    def test_runs_forever_until_interrupted(self, mocker, config_path):
        scheduler_cls = mocker.patch("reggc.main.Scheduler")
        scheduler_cls.return_value.run_forever.side_effect = KeyboardInterrupt

        main(["--config", config_path])

        assert scheduler_cls.call_args.args[1] == 600
        scheduler_cls.return_value.run_forever.assert_called_once_with()
