"""Configuration management for dbzip."""

import os
import tomllib
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path

import tomli_w
from pydantic import BaseModel, Field, ValidationError

from .constants import (
    BACKUP_STATEMENT_TIMEOUT,
    CONFIG_ENV_VAR,
    CONFIG_FILE_NAME,
    DEFAULT_COMPRESSION_LEVEL,
    DEFAULT_EXPIRATION_DAYS,
    GLOBAL_NAMESPACE,
    SQLCMD_LOGIN_TIMEOUT,
)
from .errors import ConfigError
from .models import BackupOptions


class ProducerKind(str, Enum):
    """Backends that can produce a backup artifact."""

    SQLSERVER = "sqlserver"
    COMMAND = "command"


class ArchiveFormat(str, Enum):
    """Archive formats for compressed backups."""

    ZIP = "zip"
    XZ = "xz"


class LockConfig(BaseModel):
    """Configuration for the host-wide backup lock."""

    name: str | None = None  # Job class id; application default when unset
    namespace: str = GLOBAL_NAMESPACE
    directory: Path | None = None  # System temp dir when unset
    wait: bool = False
    timeout: float = Field(
        default=-1, description="Upper bound in seconds when waiting; -1 waits forever"
    )


class BackupConfig(BaseModel):
    """Options for the backup step."""

    producer: ProducerKind = ProducerKind.SQLSERVER
    output_dir: Path | None = None
    transaction_log: bool = False
    expiration_days: int = Field(default=DEFAULT_EXPIRATION_DAYS, ge=0)
    operation_timeout: int = Field(default=BACKUP_STATEMENT_TIMEOUT, gt=0)

    def to_options(self) -> BackupOptions:
        """Build producer options, starting the expiry clock now."""
        return BackupOptions(
            transaction_log=self.transaction_log,
            expiration=datetime.now() + timedelta(days=self.expiration_days),
            operation_timeout=self.operation_timeout,
            output_dir=self.output_dir,
        )


class SqlServerConfig(BaseModel):
    """Connection settings for SQL Server backups through sqlcmd."""

    server: str = "localhost"
    user: str = ""
    password: str = ""
    exec: str = "sqlcmd"
    login_timeout: int = Field(default=SQLCMD_LOGIN_TIMEOUT, gt=0)

    @property
    def integrated_security(self) -> bool:
        """Use the current account's credentials when no login is given."""
        return not self.user or not self.password


class CommandConfig(BaseModel):
    """Generic command producer, e.g. ``pg_dump -Fc -f {output} {target}``."""

    command: str | None = None
    extension: str = "dump"


class ArchiveConfig(BaseModel):
    """Compression settings."""

    format: ArchiveFormat = ArchiveFormat.ZIP
    level: int = Field(default=DEFAULT_COMPRESSION_LEVEL, ge=0, le=9)


class ProcessConfig(BaseModel):
    """Process-level tuning."""

    lower_priority: bool = True
    niceness: int = Field(default=10, ge=0, le=19)


class DbZipConfig(BaseModel):
    """Root configuration for dbzip."""

    lock: LockConfig = Field(default_factory=LockConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    sqlserver: SqlServerConfig = Field(default_factory=SqlServerConfig)
    command: CommandConfig = Field(default_factory=CommandConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    process: ProcessConfig = Field(default_factory=ProcessConfig)


def resolve_config_path(explicit: Path | None = None) -> Path | None:
    """Find the config file to load.

    Order: explicit path, ``$DBZIP_CONFIG``, ``./dbzip.toml`` if present.
    """
    if explicit is not None:
        return explicit
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env)
    local = Path.cwd() / CONFIG_FILE_NAME
    return local if local.exists() else None


def load_config(config_path: Path | None) -> DbZipConfig:
    """Load config from a TOML file.

    Args:
        config_path: Path to dbzip.toml, or None for defaults

    Returns:
        Loaded configuration, or defaults if no path was given

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid
    """
    if config_path is None:
        return DbZipConfig()
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
    try:
        return DbZipConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e


def write_config_template(config_path: Path) -> Path:
    """Write default dbzip.toml template.

    Args:
        config_path: Destination file

    Returns:
        Path to the written config file
    """
    template = {
        "lock": {"namespace": GLOBAL_NAMESPACE, "wait": False, "timeout": -1},
        "backup": {
            "producer": ProducerKind.SQLSERVER.value,
            "transaction_log": False,
            "expiration_days": DEFAULT_EXPIRATION_DAYS,
            "operation_timeout": BACKUP_STATEMENT_TIMEOUT,
        },
        # Leave user/password empty to use integrated security
        "sqlserver": {"server": "localhost", "user": "", "password": "", "exec": "sqlcmd"},
        # Used when backup.producer = "command"; {target}, {output} and {kind} are substituted
        "command": {"command": "pg_dump -Fc -f {output} {target}", "extension": "dump"},
        "archive": {"format": ArchiveFormat.ZIP.value, "level": DEFAULT_COMPRESSION_LEVEL},
        "process": {"lower_priority": True, "niceness": 10},
    }
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "wb") as f:
        tomli_w.dump(template, f)
    return config_path
