"""External collaborators for dbzip.

This package provides the boundary to the tools that do the heavy lifting:
- producer: backup producers (SQL Server via sqlcmd, generic command)
- archiver: compression and verification (zip, tar.xz)
- streaming: line-streaming subprocess runner used by the producers
"""

from .archiver import Archiver, XzArchiver, ZipArchiver, create_archiver
from .producer import (
    BackupProducer,
    CommandProducer,
    ProgressCallback,
    SqlServerProducer,
    artifact_file_name,
    build_backup_script,
    create_producer,
    parse_progress,
)
from .streaming import StreamingError, run_streaming_subprocess

__all__ = [
    "Archiver",
    "BackupProducer",
    "CommandProducer",
    "ProgressCallback",
    "SqlServerProducer",
    "StreamingError",
    "XzArchiver",
    "ZipArchiver",
    "artifact_file_name",
    "build_backup_script",
    "create_archiver",
    "create_producer",
    "parse_progress",
    "run_streaming_subprocess",
]
