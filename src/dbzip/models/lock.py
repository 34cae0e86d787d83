"""Lock models for host-wide backup exclusion.

A ``LockHandle`` describes one grant of the named lock. ``LockOwner`` is the
diagnostic record written next to the lock file by the holder; it is
informational only and never decides who holds the lock.
"""

import os
import socket
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class TimeoutPolicy(str, Enum):
    """How long an acquirer is willing to wait for the lock."""

    FAIL_FAST = "fail_fast"
    BLOCK = "block"
    BOUNDED = "bounded"

    @classmethod
    def from_timeout(cls, timeout: float) -> "TimeoutPolicy":
        """Map an acquisition timeout in seconds to its policy.

        Negative means block indefinitely, zero means try once.
        """
        if timeout < 0:
            return cls.BLOCK
        if timeout == 0:
            return cls.FAIL_FAST
        return cls.BOUNDED


def current_process_identity() -> str:
    """Return ``host:pid`` for the running process."""
    return f"{socket.gethostname()}:{os.getpid()}"


class LockHandle(BaseModel):
    """One acquired (or released) grant of a named lock.

    Attributes:
        name: Full lock name including the namespace prefix.
        lock_path: File backing the lock on this host.
        acquired: True while the grant is live.
        timeout_policy: Policy the grant was requested with.
        owner_process: ``host:pid`` of the holder, for diagnostics.
        acquired_at: When the grant was obtained.
    """

    name: str = Field(description="Namespaced lock name")
    lock_path: Path = Field(description="Backing lock file")
    acquired: bool = Field(default=False, description="True while held")
    timeout_policy: TimeoutPolicy = Field(description="Wait policy used to acquire")
    owner_process: str = Field(default_factory=current_process_identity)
    acquired_at: datetime = Field(default_factory=datetime.now)


class LockOwner(BaseModel):
    """Holder metadata written beside the lock file."""

    name: str
    pid: int
    host: str
    acquired_at: datetime = Field(default_factory=datetime.now)


class LockStatus(BaseModel):
    """Point-in-time view of a named lock for ``dbzip lock status``."""

    name: str
    lock_path: Path
    held: bool
    owner: LockOwner | None = None
