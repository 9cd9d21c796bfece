"""Unit tests for cli.py — the drive-transfer command."""

import os
from unittest.mock import MagicMock, patch

from click.testing import CliRunner, Result

from drive_transfer.cli import main
from drive_transfer.orchestration.runner import RunSummary

_REQUIRED_ENV = {
    "DT_GOOGLE_CLIENT_ID": "google-client-id",
    "DT_GOOGLE_CLIENT_SECRET": "google-secret",
}


def _invoke(
    args: list[str], env: dict[str, str], runner_mock: MagicMock | None = None
) -> tuple[Result, MagicMock]:
    """Run the command with a patched runner factory; return (result, factory mock)."""
    with (
        patch.dict(os.environ, env, clear=True),
        patch(
            "drive_transfer.orchestration.runner.migration_runner_from_config",
            return_value=runner_mock or MagicMock(),
        ) as mock_factory,
    ):
        result = CliRunner().invoke(main, args)
    return result, mock_factory


class TestMain:
    def test_prints_summary(self) -> None:
        runner_mock = MagicMock()
        runner_mock.run.return_value = RunSummary(
            files_seen=4, transferred=2, skipped=1, failed=1, deleted=2
        )

        result, _ = _invoke([], _REQUIRED_ENV, runner_mock)

        assert result.exit_code == 0
        assert "4 files seen: 2 transferred, 1 skipped, 1 failed, 2 deleted" in result.output

    def test_missing_required_setting_exits_1(self) -> None:
        result, mock_factory = _invoke([], {"DT_GOOGLE_CLIENT_ID": "only-id"})

        assert result.exit_code == 1
        mock_factory.assert_not_called()

    def test_invalid_setting_exits_1(self) -> None:
        env = {**_REQUIRED_ENV, "DT_WORKERS": "many"}

        result, mock_factory = _invoke([], env)

        assert result.exit_code == 1
        mock_factory.assert_not_called()

    def test_options_override_environment(self) -> None:
        env = {**_REQUIRED_ENV, "DT_WORKERS": "2"}
        runner_mock = MagicMock()
        runner_mock.run.return_value = RunSummary()

        result, mock_factory = _invoke(
            ["--workers", "5", "--download-only", "--cleanup"], env, runner_mock
        )

        assert result.exit_code == 0
        config = mock_factory.call_args.args[0]
        assert config.workers == 5
        assert config.download_only is True
        assert config.cleanup is True

    def test_environment_kept_without_options(self) -> None:
        env = {**_REQUIRED_ENV, "DT_WORKERS": "3", "DT_CLEANUP": "true"}
        runner_mock = MagicMock()
        runner_mock.run.return_value = RunSummary()

        _, mock_factory = _invoke([], env, runner_mock)

        config = mock_factory.call_args.args[0]
        assert config.workers == 3
        assert config.cleanup is True

    def test_run_failure_exits_1(self) -> None:
        runner_mock = MagicMock()
        runner_mock.run.side_effect = RuntimeError("auth failed")

        result, _ = _invoke([], _REQUIRED_ENV, runner_mock)

        assert result.exit_code == 1

    def test_rejects_zero_workers(self) -> None:
        result, mock_factory = _invoke(["--workers", "0"], _REQUIRED_ENV)

        assert result.exit_code == 2
        mock_factory.assert_not_called()

    def test_invalid_instance_name_exits_1(self) -> None:
        env = {**_REQUIRED_ENV, "DT_INSTANCES": "a b"}

        result, mock_factory = _invoke([], env)

        assert result.exit_code == 1
        mock_factory.assert_not_called()

    def test_failed_instance_does_not_stop_the_next(self) -> None:
        env = {
            "DT_INSTANCES": "home;work",
            "DT_WORK_GOOGLE_CLIENT_ID": "work-id",
            "DT_WORK_GOOGLE_CLIENT_SECRET": "work-secret",
        }
        runner_mock = MagicMock()
        runner_mock.run.return_value = RunSummary(files_seen=3, transferred=3)

        result, mock_factory = _invoke(["--workers", "2"], env, runner_mock)

        assert result.exit_code == 0
        mock_factory.assert_called_once()
        config = mock_factory.call_args.args[0]
        assert config.instance == "work"
        assert config.workers == 2
        assert "work: 3 files seen: 3 transferred" in result.output

    def test_every_instance_runs_after_an_aborted_run(self) -> None:
        env = {
            **_REQUIRED_ENV,
            "DT_INSTANCES": "first;second",
        }
        runner_mock = MagicMock()
        runner_mock.run.side_effect = [RuntimeError("listing failed"), RunSummary(files_seen=1)]

        result, mock_factory = _invoke([], env, runner_mock)

        assert result.exit_code == 0
        assert mock_factory.call_count == 2
        assert "second: 1 files seen" in result.output

    def test_exits_1_when_no_instance_completes(self) -> None:
        env = {"DT_INSTANCES": "home;work"}

        result, mock_factory = _invoke([], env)

        assert result.exit_code == 1
        mock_factory.assert_not_called()
