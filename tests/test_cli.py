"""CLI integration tests for dbzip."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import FakeArchiver, FakeProducer
from typer.testing import CliRunner

from dbzip.cli import app
from dbzip.commands.backup import apply_overrides, build_request, exit_code_for
from dbzip.config import ArchiveFormat, DbZipConfig
from dbzip.constants import EXIT_BAD_INPUT, EXIT_FAILED, EXIT_LOCK_SKIPPED, EXIT_OK
from dbzip.core import ExclusiveRegion
from dbzip.errors import ProductionError
from dbzip.models import Outcome, RunResult, Stage


@pytest.fixture
def config_file(tmp_path: Path, lock_dir: Path) -> Path:
    """Config pointing the lock at a private directory."""
    path = tmp_path / "dbzip.toml"
    path.write_text(
        f'[lock]\ndirectory = "{lock_dir.as_posix()}"\n'
        "[process]\nlower_priority = false\n"
    )
    return path


@pytest.fixture
def fakes(backup_dir: Path):
    """Patch the CLI's collaborator factories with fakes."""
    producer = FakeProducer(backup_dir)
    archiver = FakeArchiver()
    with (
        patch("dbzip.commands.backup.create_producer", return_value=producer),
        patch("dbzip.commands.backup.create_archiver", return_value=archiver),
    ):
        yield producer, archiver


class TestVersionCommand:
    """Tests for --version flag."""

    def test_version_shows_version(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "dbzip" in result.stdout
        assert "0.1.0" in result.stdout

    def test_version_short_flag(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert "dbzip" in result.stdout


class TestHelpCommand:
    """Tests for --help flag."""

    def test_help_shows_commands(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "backup" in result.stdout
        assert "init" in result.stdout
        assert "lock" in result.stdout

    def test_no_args_shows_help(self, runner: CliRunner) -> None:
        result = runner.invoke(app, [])
        assert result.exit_code == 2
        assert "Usage:" in result.stdout


class TestBackupCommand:
    """Tests for dbzip backup."""

    def test_success_exit_code(self, runner: CliRunner, config_file: Path, fakes) -> None:
        producer, archiver = fakes
        result = runner.invoke(app, ["--no-color", "backup", "Orders", "-c", str(config_file)])
        assert result.exit_code == EXIT_OK, result.output
        assert producer.calls[0][0] == "Orders"
        assert len(archiver.verified) == 1

    def test_json_output(self, runner: CliRunner, config_file: Path, fakes) -> None:
        result = runner.invoke(
            app, ["--json", "--quiet", "backup", "Orders", "--config", str(config_file)]
        )
        assert result.exit_code == EXIT_OK
        data = json.loads(result.stdout)
        assert data["outcome"] == "succeeded"
        assert data["deleted_original"] is True
        assert data["artifact_history"][-1] == "deleted"

    def test_lock_contention_exit_code(
        self, runner: CliRunner, config_file: Path, lock_dir: Path, fakes
    ) -> None:
        producer, _ = fakes
        holder = ExclusiveRegion(None, lock_dir=lock_dir)
        holder.acquire(timeout=0)
        try:
            result = runner.invoke(app, ["backup", "Orders", "-c", str(config_file)])
        finally:
            holder.release()
        assert result.exit_code == EXIT_LOCK_SKIPPED
        assert producer.calls == []

    def test_wait_with_bounded_timeout_fails(
        self, runner: CliRunner, config_file: Path, lock_dir: Path, fakes
    ) -> None:
        holder = ExclusiveRegion("nightly", lock_dir=lock_dir)
        holder.acquire(timeout=0)
        try:
            result = runner.invoke(
                app,
                [
                    "--json",
                    "--quiet",
                    "backup",
                    "Orders",
                    "-c",
                    str(config_file),
                    "--wait",
                    "--lock-name",
                    "nightly",
                    "--lock-timeout",
                    "0.2",
                ],
            )
        finally:
            holder.release()
        assert result.exit_code == EXIT_FAILED
        assert json.loads(result.stdout)["failure_kind"] == "lock_timeout"

    def test_no_wait_overrides_config(
        self, runner: CliRunner, tmp_path: Path, lock_dir: Path, fakes
    ) -> None:
        producer, _ = fakes
        path = tmp_path / "wait.toml"
        path.write_text(
            f'[lock]\ndirectory = "{lock_dir.as_posix()}"\nwait = true\ntimeout = 0.5\n'
            "[process]\nlower_priority = false\n"
        )
        holder = ExclusiveRegion(None, lock_dir=lock_dir)
        holder.acquire(timeout=0)
        try:
            result = runner.invoke(app, ["backup", "Orders", "-c", str(path), "--no-wait"])
        finally:
            holder.release()
        assert result.exit_code == EXIT_LOCK_SKIPPED
        assert producer.calls == []

    def test_full_overrides_config(
        self, runner: CliRunner, tmp_path: Path, lock_dir: Path, fakes
    ) -> None:
        producer, _ = fakes
        path = tmp_path / "log.toml"
        path.write_text(
            f'[lock]\ndirectory = "{lock_dir.as_posix()}"\n'
            "[backup]\ntransaction_log = true\n"
            "[process]\nlower_priority = false\n"
        )
        result = runner.invoke(app, ["backup", "Orders", "-c", str(path), "--full"])
        assert result.exit_code == EXIT_OK, result.output
        assert producer.calls[0][1].transaction_log is False

    def test_lock_timeout_without_wait_warns(
        self, runner: CliRunner, config_file: Path, fakes
    ) -> None:
        with patch("dbzip.commands.backup.logger") as mock_logger:
            result = runner.invoke(
                app, ["backup", "Orders", "-c", str(config_file), "--lock-timeout", "5"]
            )
        assert result.exit_code == EXIT_OK
        mock_logger.warning.assert_called_once()
        assert "--lock-timeout" in mock_logger.warning.call_args.args[0]

    def test_unusable_lock_dir_fails(self, runner: CliRunner, tmp_path: Path, fakes) -> None:
        producer, _ = fakes
        not_a_dir = tmp_path / "locks"
        not_a_dir.write_text("")
        path = tmp_path / "bad.toml"
        path.write_text(
            f'[lock]\ndirectory = "{not_a_dir.as_posix()}"\n'
            "[process]\nlower_priority = false\n"
        )
        result = runner.invoke(app, ["--json", "--quiet", "backup", "Orders", "-c", str(path)])
        assert result.exit_code == EXIT_FAILED
        assert json.loads(result.stdout)["failure_kind"] == "lock_unavailable"
        assert producer.calls == []

    def test_production_failure_exit_code(
        self, runner: CliRunner, config_file: Path, fakes
    ) -> None:
        producer, _ = fakes
        producer.error = ProductionError("database offline")
        result = runner.invoke(app, ["--no-color", "backup", "Orders", "-c", str(config_file)])
        assert result.exit_code == EXIT_FAILED
        assert "database offline" in result.output

    def test_missing_config_is_bad_input(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(app, ["backup", "Orders", "-c", str(tmp_path / "nope.toml")])
        assert result.exit_code == EXIT_BAD_INPUT

    def test_invalid_format_is_bad_input(self, runner: CliRunner, config_file: Path) -> None:
        result = runner.invoke(
            app, ["backup", "Orders", "-c", str(config_file), "--format", "rar"]
        )
        assert result.exit_code == EXIT_BAD_INPUT

    def test_missing_target_is_bad_input(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["backup"])
        assert result.exit_code == EXIT_BAD_INPUT

    def test_lowers_priority_when_configured(
        self, runner: CliRunner, tmp_path: Path, lock_dir: Path, fakes
    ) -> None:
        path = tmp_path / "prio.toml"
        path.write_text(
            f'[lock]\ndirectory = "{lock_dir.as_posix()}"\n'
            "[process]\nlower_priority = true\nniceness = 5\n"
        )
        with patch("dbzip.commands.backup.lower_process_priority") as lower:
            result = runner.invoke(app, ["backup", "Orders", "-c", str(path)])
        assert result.exit_code == EXIT_OK
        lower.assert_called_once_with(5)


class TestOverrides:
    """Tests for command-line overrides of config values."""

    def test_flags_override_config(self, tmp_path: Path) -> None:
        config = apply_overrides(
            DbZipConfig(),
            wait=True,
            lock_name="nightly",
            lock_timeout=5,
            transaction_log=True,
            archive_format=ArchiveFormat.XZ,
            server="db02",
            user="backup",
            password="pw",
            output_dir=tmp_path,
        )
        assert config.lock.wait is True
        assert config.lock.name == "nightly"
        assert config.archive.format == ArchiveFormat.XZ
        assert config.sqlserver.server == "db02"
        assert not config.sqlserver.integrated_security

        request = build_request("Orders", config)
        assert request.wait_for_lock is True
        assert request.lock_timeout == 5
        assert request.options.transaction_log is True
        assert request.options.output_dir == tmp_path

    def test_unset_flags_keep_config(self) -> None:
        base = DbZipConfig()
        base.lock.wait = True
        config = apply_overrides(base)
        assert config.lock.wait is True
        assert config is not base

    @pytest.mark.parametrize(
        ("outcome", "stage", "code"),
        [
            (Outcome.SUCCEEDED, Stage.COMPLETED, EXIT_OK),
            (Outcome.FAILED, Stage.FAILED, EXIT_FAILED),
            (Outcome.SKIPPED_LOCK_CONTENTION, Stage.LOCK_SKIPPED, EXIT_LOCK_SKIPPED),
        ],
    )
    def test_exit_codes(self, outcome: Outcome, stage: Stage, code: int) -> None:
        assert exit_code_for(RunResult(target="x", outcome=outcome, stage=stage)) == code


class TestInitCommand:
    """Tests for dbzip init."""

    def test_writes_template(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 0
        assert (tmp_path / "dbzip.toml").exists()

    def test_keeps_existing_without_force(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "dbzip.toml"
        path.write_text("# mine\n")
        result = runner.invoke(app, ["init", "--path", str(path)])
        assert result.exit_code == 0
        assert path.read_text() == "# mine\n"

    def test_force_overwrites(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "dbzip.toml"
        path.write_text("# mine\n")
        result = runner.invoke(app, ["init", "--path", str(path), "--force"])
        assert result.exit_code == 0
        assert "[lock]" in path.read_text()


class TestLockStatusCommand:
    """Tests for dbzip lock status."""

    def test_free(self, runner: CliRunner, config_file: Path) -> None:
        result = runner.invoke(app, ["--json", "lock", "status", "-c", str(config_file)])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["held"] is False

    def test_held(self, runner: CliRunner, config_file: Path, lock_dir: Path) -> None:
        holder = ExclusiveRegion("nightly", lock_dir=lock_dir)
        holder.acquire(timeout=0)
        try:
            result = runner.invoke(
                app,
                ["--no-color", "lock", "status", "--lock-name", "nightly", "-c", str(config_file)],
            )
        finally:
            holder.release()
        assert result.exit_code == 0
        assert "Held" in result.output

    def test_unusable_lock_dir_is_bad_input(self, runner: CliRunner, tmp_path: Path) -> None:
        not_a_dir = tmp_path / "locks"
        not_a_dir.write_text("")
        path = tmp_path / "bad.toml"
        path.write_text(f'[lock]\ndirectory = "{not_a_dir.as_posix()}"\n')
        result = runner.invoke(app, ["--no-color", "lock", "status", "-c", str(path)])
        assert result.exit_code == EXIT_BAD_INPUT
        assert "Cannot use lock" in result.output
