"""Backup producers.

A producer creates exactly one uncompressed artifact per call, named
``{target}_backup_{YYYY_MM_DD_HHMMSS}.{ext}`` so that concurrent runs never
share a file. Progress is reported through an optional callback as
``ProgressEvent``s without a stage; the orchestrator tags them.
"""

import logging
import os
import re
import shlex
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Protocol

from ..config import CommandConfig, DbZipConfig, ProducerKind, SqlServerConfig
from ..constants import ARTIFACT_TIMESTAMP_FORMAT, SQLCMD_QUERY_TIMEOUT
from ..errors import ProductionError
from ..models import BackupOptions, ProgressEvent
from .streaming import run_streaming_subprocess

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

# sqlcmd rejects larger -t values
SQLCMD_MAX_QUERY_TIMEOUT = 65535

_PERCENT_RE = re.compile(r"(\d{1,3})\s*(?:%|percent\b)", re.IGNORECASE)


class BackupProducer(Protocol):
    """Creates a backup artifact for a target."""

    def produce(
        self,
        target: str,
        options: BackupOptions,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        """Create the artifact and return its path.

        Raises:
            ProductionError: If the backup could not be created
        """
        ...


def artifact_file_name(target: str, extension: str, now: datetime) -> str:
    """Deterministic artifact name for a target and timestamp.

    Args:
        target: Backup target (database name)
        extension: File extension without the dot
        now: Timestamp of the run

    Returns:
        File name such as ``Orders_backup_2026_10_18_021500.bak``
    """
    safe_target = re.sub(r"[^A-Za-z0-9._-]+", "_", target).strip("._") or "backup"
    return f"{safe_target}_backup_{now.strftime(ARTIFACT_TIMESTAMP_FORMAT)}.{extension}"


def parse_progress(line: str) -> ProgressEvent:
    """Turn a line of tool output into a progress event.

    Recognizes ``10 percent processed.`` (SQL Server STATS) and ``42%``.
    """
    match = _PERCENT_RE.search(line)
    percent = min(int(match.group(1)), 100) if match else None
    return ProgressEvent(percent=percent, message=line)


def _line_relay(on_progress: ProgressCallback | None) -> Callable[[str], None] | None:
    if on_progress is None:
        return None

    def relay(line: str) -> None:
        on_progress(parse_progress(line))

    return relay


def _quote_name(name: str) -> str:
    return "[" + name.replace("]", "]]") + "]"


def _quote_literal(value: str) -> str:
    return "N'" + value.replace("'", "''") + "'"


def build_backup_script(target: str, backup_path: Path, options: BackupOptions) -> str:
    """Build the T-SQL batch that validates the database and backs it up.

    The batch aborts with THROW when the database is missing or is a system
    database, and when a log backup is requested for a database in the
    SIMPLE recovery model.
    """
    name = _quote_name(target)
    literal = _quote_literal(target)
    statements = [
        f"IF NOT EXISTS (SELECT 1 FROM sys.databases WHERE name = {literal} "
        f"AND database_id > 4) THROW 50000, "
        f"{_quote_literal(f'Cannot find a non-system database named {name}')}, 1;",
    ]

    if options.transaction_log:
        message = (
            f"Cannot backup the transaction-logs because the {name} database "
            "is using the Simple recovery-model"
        )
        statements.append(
            f"IF EXISTS (SELECT 1 FROM sys.databases WHERE name = {literal} "
            f"AND recovery_model_desc = N'SIMPLE') THROW 50000, {_quote_literal(message)}, 1;"
        )
        action, description = "LOG", f"Transaction-log backup of {target}"
    else:
        action, description = "DATABASE", f"Full backup of {target}"

    expire = options.expiration.strftime("%Y-%m-%dT%H:%M:%S")
    statements.append(
        f"BACKUP {action} {name} TO DISK = {_quote_literal(str(backup_path))} "
        f"WITH INIT, NO_COMPRESSION, NAME = {_quote_literal(f'{target} Backup')}, "
        f"DESCRIPTION = {_quote_literal(description)}, "
        f"EXPIREDATE = {_quote_literal(expire)}, STATS = 10;"
    )
    return "\n".join(statements)


class SqlServerProducer:
    """Back up a SQL Server database through ``sqlcmd``.

    Uses integrated security unless both a user and password are configured;
    the password is handed over in ``SQLCMDPASSWORD`` rather than argv.
    """

    def __init__(
        self,
        config: SqlServerConfig,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        self._clock = clock

    def produce(
        self,
        target: str,
        options: BackupOptions,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        backup_dir = options.output_dir or self.default_backup_directory()
        extension = "trn" if options.transaction_log else "bak"
        backup_path = backup_dir / artifact_file_name(target, extension, self._clock())

        logger.info("Backing up: [%s].[%s]", self.config.server, target)
        self._run(
            build_backup_script(target, backup_path, options),
            timeout=options.operation_timeout,
            on_line=_line_relay(on_progress),
        )
        return backup_path

    def default_backup_directory(self) -> Path:
        """Ask the server for its default backup directory."""
        lines = self._run(
            "SET NOCOUNT ON; "
            "SELECT CAST(SERVERPROPERTY('InstanceDefaultBackupPath') AS nvarchar(4000));",
            timeout=SQLCMD_QUERY_TIMEOUT,
        )
        value = lines[-1] if lines else ""
        if not value or value.upper() == "NULL":
            raise ProductionError(
                "Server did not report a default backup directory; set backup.output_dir"
            )
        return Path(value)

    def build_command(self, query: str, timeout: int) -> tuple[list[str], dict[str, str]]:
        """Build the sqlcmd argv and environment for a query."""
        cmd = [
            self.config.exec,
            "-S",
            self.config.server,
            "-d",
            "master",
            "-b",  # Exit with an error level on any SQL error
            "-h",
            "-1",
            "-W",
            "-l",
            str(self.config.login_timeout),
            "-t",
            str(min(timeout, SQLCMD_MAX_QUERY_TIMEOUT)),
        ]
        env = dict(os.environ)
        if self.config.integrated_security:
            cmd.append("-E")
        else:
            cmd += ["-U", self.config.user]
            env["SQLCMDPASSWORD"] = self.config.password
        cmd += ["-Q", query]
        return cmd, env

    def _run(
        self,
        query: str,
        timeout: int,
        on_line: Callable[[str], None] | None = None,
    ) -> list[str]:
        cmd, env = self.build_command(query, timeout)
        return run_streaming_subprocess(
            cmd,
            on_line=on_line,
            env=env,
            timeout=timeout + self.config.login_timeout,
            error_class=ProductionError,
            service_name="sqlcmd",
        )


class CommandProducer:
    """Produce an artifact by running an operator-supplied command.

    The command template may use ``{target}``, ``{output}`` and ``{kind}``
    (``full`` or ``log``) placeholders, e.g. ``pg_dump -Fc -f {output} {target}``.
    The command must create ``{output}``; its output lines are relayed as
    progress.
    """

    def __init__(
        self,
        config: CommandConfig,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        self._clock = clock

    def produce(
        self,
        target: str,
        options: BackupOptions,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        if not self.config.command:
            raise ProductionError("No backup command configured (set command.command)")

        output_dir = options.output_dir or Path.cwd()
        output = output_dir / artifact_file_name(target, self.config.extension, self._clock())
        kind = "log" if options.transaction_log else "full"

        try:
            args = [
                part.format(target=target, output=str(output), kind=kind)
                for part in shlex.split(self.config.command)
            ]
        except (ValueError, KeyError, IndexError) as e:
            raise ProductionError(f"Invalid backup command template: {e}") from e

        output_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Backing up: %s", target)
        run_streaming_subprocess(
            args,
            on_line=_line_relay(on_progress),
            timeout=options.operation_timeout,
            error_class=ProductionError,
            service_name="Backup command",
        )

        if not output.is_file():
            raise ProductionError(f"Backup command did not create {output}")
        return output


def create_producer(config: DbZipConfig) -> BackupProducer:
    """Create the producer selected by ``backup.producer``."""
    if config.backup.producer == ProducerKind.COMMAND:
        return CommandProducer(config.command)
    return SqlServerProducer(config.sqlserver)
