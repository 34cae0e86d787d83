"""CLI command implementations for dbzip.

This package contains the implementation of each CLI command,
separated from the CLI framework setup in cli.py.
"""

from .backup import backup
from .init import init
from .lock import lock_app, lock_status

__all__ = [
    "backup",
    "init",
    "lock_app",
    "lock_status",
]
