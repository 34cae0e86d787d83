"""Backup command: produce, compress, verify and clean up one target."""

import logging
from pathlib import Path

import typer

from ..config import ArchiveFormat, DbZipConfig, load_config, resolve_config_path
from ..constants import EXIT_BAD_INPUT, EXIT_FAILED, EXIT_LOCK_SKIPPED, EXIT_OK
from ..core import ExclusiveRegion, PipelineOrchestrator
from ..errors import ConfigError
from ..models import Outcome, RunRequest, RunResult
from ..output import OutputContext, get_output_context
from ..process import lower_process_priority
from ..services import create_archiver, create_producer

logger = logging.getLogger(__name__)

_EXIT_CODES = {
    Outcome.SUCCEEDED: EXIT_OK,
    Outcome.FAILED: EXIT_FAILED,
    Outcome.SKIPPED_LOCK_CONTENTION: EXIT_LOCK_SKIPPED,
}


def exit_code_for(result: RunResult) -> int:
    """Map a run outcome to the process exit code."""
    return _EXIT_CODES.get(result.outcome, EXIT_FAILED)


def apply_overrides(
    config: DbZipConfig,
    *,
    wait: bool | None = None,
    lock_name: str | None = None,
    lock_timeout: float | None = None,
    transaction_log: bool | None = None,
    archive_format: ArchiveFormat | None = None,
    server: str | None = None,
    user: str | None = None,
    password: str | None = None,
    output_dir: Path | None = None,
) -> DbZipConfig:
    """Return a copy of ``config`` with command-line values layered on top."""
    config = config.model_copy(deep=True)
    if wait is not None:
        config.lock.wait = wait
    if lock_name is not None:
        config.lock.name = lock_name
    if lock_timeout is not None:
        config.lock.timeout = lock_timeout
    if transaction_log is not None:
        config.backup.transaction_log = transaction_log
    if archive_format is not None:
        config.archive.format = archive_format
    if server is not None:
        config.sqlserver.server = server
    if user is not None:
        config.sqlserver.user = user
    if password is not None:
        config.sqlserver.password = password
    if output_dir is not None:
        config.backup.output_dir = output_dir
    return config


def build_request(target: str, config: DbZipConfig) -> RunRequest:
    """Build the pipeline request for ``target`` from resolved config."""
    return RunRequest(
        target=target,
        wait_for_lock=config.lock.wait,
        lock_name=config.lock.name,
        lock_timeout=config.lock.timeout,
        options=config.backup.to_options(),
    )


def build_orchestrator(config: DbZipConfig) -> PipelineOrchestrator:
    """Wire the producer, archiver and lock settings from config."""

    def region_factory(name: str | None) -> ExclusiveRegion:
        return ExclusiveRegion(
            name, namespace=config.lock.namespace, lock_dir=config.lock.directory
        )

    return PipelineOrchestrator(
        producer=create_producer(config),
        archiver=create_archiver(config.archive),
        region_factory=region_factory,
    )


def _report(ctx: OutputContext, result: RunResult) -> None:
    if ctx.json_mode:
        ctx.print_json(result.model_dump(mode="json"))
        return

    for warning in result.warnings:
        ctx.warning(warning)

    if result.outcome == Outcome.SUCCEEDED:
        ctx.success(f"Backed up {result.target} to {result.archive_path}")
        ctx.print(
            f"  produce {result.timing.production_ms} ms, "
            f"compress {result.timing.compression_ms} ms, "
            f"verify {result.timing.verification_ms} ms",
            style="dim",
        )
    elif result.outcome == Outcome.SKIPPED_LOCK_CONTENTION:
        ctx.print(
            f"[yellow]Skipped {result.target}: a backup is already in progress[/yellow]"
        )
    else:
        kind = result.failure_kind.value if result.failure_kind else "error"
        ctx.error(f"{kind}: {result.error}")
        if result.artifact_path is not None:
            ctx.print(f"  Original backup kept at {result.artifact_path}", style="dim")


def backup(
    target: str = typer.Argument(..., help="Database (or other target) to back up"),
    wait: bool | None = typer.Option(
        None,
        "--wait/--no-wait",
        "-W",
        help="Wait for a running backup to finish instead of skipping (default from config)",
    ),
    lock_name: str | None = typer.Option(
        None,
        "--lock-name",
        "-l",
        help="Lock identifier; backups sharing it never overlap",
    ),
    lock_timeout: float | None = typer.Option(
        None,
        "--lock-timeout",
        help="Seconds to wait for the lock with --wait (negative waits forever)",
    ),
    transaction_log: bool | None = typer.Option(
        None,
        "--transaction-log/--full",
        "-T",
        help="Back up the transaction log instead of the full database (default from config)",
    ),
    archive_format: ArchiveFormat | None = typer.Option(
        None,
        "--format",
        "-f",
        help="Archive format",
    ),
    server: str | None = typer.Option(None, "--server", "-S", help="SQL Server instance"),
    user: str | None = typer.Option(None, "--user", "-U", help="SQL login"),
    password: str | None = typer.Option(None, "--password", "-P", help="SQL login password"),
    output_dir: Path | None = typer.Option(
        None,
        "--output-dir",
        "-o",
        help="Directory for the backup (server default when unset)",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to dbzip.toml",
    ),
) -> None:
    """Back up TARGET, compress it, verify the archive and delete the original."""
    ctx = get_output_context()

    try:
        config = load_config(resolve_config_path(config_file))
    except ConfigError as e:
        ctx.error(str(e))
        raise typer.Exit(EXIT_BAD_INPUT) from None

    config = apply_overrides(
        config,
        wait=wait,
        lock_name=lock_name,
        lock_timeout=lock_timeout,
        transaction_log=transaction_log,
        archive_format=archive_format,
        server=server,
        user=user,
        password=password,
        output_dir=output_dir,
    )
    if lock_timeout is not None and not config.lock.wait:
        logger.warning("--lock-timeout has no effect without --wait; the lock is tried once")

    if config.process.lower_priority:
        lower_process_priority(config.process.niceness)

    result = build_orchestrator(config).run(build_request(target, config))
    _report(ctx, result)
    raise typer.Exit(exit_code_for(result))
