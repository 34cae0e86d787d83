"""Host-wide named mutual exclusion for backup jobs.

An ``ExclusiveRegion`` guards a critical section with a lock that every
process on the host honors. The lock is an OS advisory lock on a file in a
shared directory (``filelock`` picks ``flock`` on POSIX and ``msvcrt`` on
Windows). The OS drops the lock when the holding process exits for any
reason, so a crashed holder never deadlocks the next run: abandonment is
an implicit release.

The lock name is ``<namespace>\\<identifier>``. The default namespace is
``Global`` so that every account and session on the machine contends for
the same lock rather than a per-user one.

Holder metadata (pid, host, acquisition time) is written to a sidecar file
for diagnostics only. It is never consulted to decide who holds the lock.
"""

import contextlib
import hashlib
import logging
import os
import re
import socket
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from types import TracebackType

from filelock import FileLock, Timeout
from pydantic import ValidationError

from ..constants import (
    DEFAULT_LOCK_ID,
    GLOBAL_NAMESPACE,
    LOCK_DIR_MODE,
    LOCK_DIR_NAME,
    LOCK_FILE_MODE,
    LOCK_POLL_INTERVAL,
)
from ..errors import LockTimeout, LockUnavailable
from ..models import LockHandle, LockOwner, LockStatus, TimeoutPolicy

logger = logging.getLogger(__name__)


def default_lock_dir() -> Path:
    """Directory shared by every process on the host."""
    return Path(tempfile.gettempdir()) / LOCK_DIR_NAME


def build_lock_name(identifier: str | None = None, namespace: str | None = GLOBAL_NAMESPACE) -> str:
    """Build the full lock name from an identifier and namespace prefix.

    Args:
        identifier: Job class identifier; the application id when empty
        namespace: Namespace prefix; no prefix when empty

    Returns:
        Name such as ``Global\\nightly-orders``
    """
    ident = identifier or DEFAULT_LOCK_ID
    if namespace:
        return f"{namespace}\\{ident}"
    return ident


def lock_file_name(name: str) -> str:
    """Map a lock name to a filesystem-safe file name.

    The readable slug is lossy, so a digest of the full name keeps distinct
    names on distinct files.
    """
    slug = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("_")
    digest = hashlib.sha256(name.encode("utf-8")).hexdigest()[:16]
    return f"{slug or 'lock'}-{digest}.lock"


class ExclusiveRegion:
    """Named, host-wide, abandonment-tolerant lock.

    Usable three ways:

        region = ExclusiveRegion("orders")
        handle = region.acquire(timeout=0)   # raises LockTimeout if held
        region.release()

        with ExclusiveRegion("orders", timeout=-1) as handle:
            ...

        ran = run_exclusive(do_work, timeout=0, name="orders")

    Args:
        name: Identifier of the job class; the application id when None
        namespace: Namespace prefix shared by all accounts on the host
        lock_dir: Directory holding lock files; the system temp dir by default
        timeout: Timeout used by the context-manager form
    """

    def __init__(
        self,
        name: str | None = None,
        *,
        namespace: str | None = GLOBAL_NAMESPACE,
        lock_dir: Path | None = None,
        timeout: float = 0,
    ) -> None:
        self.name = build_lock_name(name, namespace)
        self.lock_dir = lock_dir or default_lock_dir()
        self.lock_path = self.lock_dir / lock_file_name(self.name)
        self.owner_path = self.lock_path.with_name(self.lock_path.name + ".owner.json")
        self.timeout = timeout
        self._lock: FileLock | None = None
        self._handle: LockHandle | None = None

    @property
    def acquired(self) -> bool:
        return self._handle is not None and self._handle.acquired

    def acquire(self, timeout: float = 0) -> LockHandle:
        """Acquire the lock.

        Args:
            timeout: Seconds to wait. Negative blocks until the holder
                releases, zero tries once, positive waits up to that long.

        Returns:
            Held lock handle. Acquiring an already-held region returns the
            existing handle.

        Raises:
            LockTimeout: If the lock is held elsewhere when the timeout elapses
            LockUnavailable: If the lock directory or file cannot be used
        """
        if self._handle is not None and self._handle.acquired:
            return self._handle

        policy = TimeoutPolicy.from_timeout(timeout)
        lock = FileLock(str(self.lock_path), mode=LOCK_FILE_MODE)

        # Timeout subclasses OSError, so it must be handled first
        try:
            self._ensure_lock_dir()
            lock.acquire(timeout=-1 if timeout < 0 else timeout, poll_interval=LOCK_POLL_INTERVAL)
        except Timeout:
            raise LockTimeout(
                f"Timeout waiting for exclusive access on lock: {self.name}"
            ) from None
        except OSError as e:
            raise self._unavailable(e) from e

        self._lock = lock
        self._handle = LockHandle(
            name=self.name,
            lock_path=self.lock_path,
            acquired=True,
            timeout_policy=policy,
        )
        self._write_owner()
        logger.debug("Acquired lock %s (%s)", self.name, policy.value)
        return self._handle

    def release(self) -> None:
        """Release the lock if held. Safe to call any number of times."""
        lock, handle = self._lock, self._handle
        self._lock = None
        self._handle = None
        if lock is None:
            return

        # Owner file goes first so a new holder's metadata is never removed.
        with contextlib.suppress(OSError):
            self.owner_path.unlink(missing_ok=True)
        lock.release(force=True)
        if handle is not None:
            handle.acquired = False
        logger.debug("Released lock %s", self.name)

    @contextlib.contextmanager
    def hold(self, timeout: float | None = None) -> Generator[LockHandle, None, None]:
        """Hold the lock for the duration of a ``with`` block."""
        handle = self.acquire(self.timeout if timeout is None else timeout)
        try:
            yield handle
        finally:
            self.release()

    def __enter__(self) -> LockHandle:
        return self.acquire(self.timeout)

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def status(self) -> LockStatus:
        """Report whether the lock is currently held on this host.

        Tries the lock without waiting; a free lock is released again
        immediately. Stale owner metadata from an abandoned holder is ignored.
        """
        if self.acquired:
            return self._held_status()

        trial = FileLock(str(self.lock_path), mode=LOCK_FILE_MODE)
        try:
            self._ensure_lock_dir()
            trial.acquire(timeout=0)
        except Timeout:
            return self._held_status()
        except OSError as e:
            raise self._unavailable(e) from e
        trial.release(force=True)
        return LockStatus(name=self.name, lock_path=self.lock_path, held=False)

    def _unavailable(self, error: OSError) -> LockUnavailable:
        return LockUnavailable(f"Cannot use lock {self.name} in {self.lock_dir}: {error}")

    def _held_status(self) -> LockStatus:
        return LockStatus(
            name=self.name, lock_path=self.lock_path, held=True, owner=self._read_owner()
        )

    def _ensure_lock_dir(self) -> None:
        if self.lock_dir.exists():
            return
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        # Not sticky: other accounts must be able to open lock files created here.
        with contextlib.suppress(OSError):
            os.chmod(self.lock_dir, LOCK_DIR_MODE)

    def _write_owner(self) -> None:
        owner = LockOwner(name=self.name, pid=os.getpid(), host=socket.gethostname())
        try:
            self.owner_path.write_text(owner.model_dump_json(indent=2))
            with contextlib.suppress(OSError):
                os.chmod(self.owner_path, LOCK_FILE_MODE)
        except OSError as e:
            logger.debug("Could not write lock owner metadata for %s: %s", self.name, e)

    def _read_owner(self) -> LockOwner | None:
        try:
            return LockOwner.model_validate_json(self.owner_path.read_text())
        except (OSError, ValidationError):
            return None


def run_exclusive(
    work: Callable[[], object],
    timeout: float = 0,
    name: str | None = None,
    *,
    namespace: str | None = GLOBAL_NAMESPACE,
    lock_dir: Path | None = None,
) -> bool:
    """Run ``work`` under the named lock.

    Returns:
        True if ``work`` ran, False if it was skipped because the lock was
        held elsewhere for longer than ``timeout``.
    """
    region = ExclusiveRegion(name, namespace=namespace, lock_dir=lock_dir)
    try:
        region.acquire(timeout)
    except LockTimeout:
        logger.info("Skipped: %s is held by another process", region.name)
        return False

    try:
        work()
    finally:
        region.release()
    return True
