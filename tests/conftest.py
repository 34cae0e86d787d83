"""Shared test fixtures for dbzip tests."""

import subprocess
import sys
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from typer.testing import CliRunner

from dbzip.core import ExclusiveRegion
from dbzip.models import BackupOptions, ProgressEvent

# Child process that takes the lock, reports it, then holds it for argv[3] seconds.
HOLDER_SCRIPT = """
import sys, time
from pathlib import Path
from dbzip.core import ExclusiveRegion

region = ExclusiveRegion(sys.argv[1], lock_dir=Path(sys.argv[2]))
region.acquire(timeout=-1)
print("held", flush=True)
time.sleep(float(sys.argv[3]))
region.release()
print("released", flush=True)
"""


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def lock_dir(tmp_path: Path) -> Path:
    """Private lock directory so tests never contend with real backups."""
    d = tmp_path / "locks"
    d.mkdir()
    return d


@pytest.fixture
def backup_dir(tmp_path: Path) -> Path:
    """Directory the fake producer writes artifacts into."""
    d = tmp_path / "backups"
    d.mkdir()
    return d


@pytest.fixture
def region_factory(lock_dir: Path) -> Callable[[str | None], ExclusiveRegion]:
    """Build real regions confined to the test lock directory."""

    def factory(name: str | None) -> ExclusiveRegion:
        return ExclusiveRegion(name, lock_dir=lock_dir)

    return factory


@pytest.fixture
def hold_lock(lock_dir: Path) -> Generator[Callable[..., subprocess.Popen], None, None]:
    """Start a separate process that holds a named lock.

    Returns a function ``start(name, seconds=30)`` that blocks until the
    child reports the lock as held. Children are killed at teardown.
    """
    children: list[subprocess.Popen] = []

    def start(name: str, seconds: float = 30) -> subprocess.Popen:
        proc = subprocess.Popen(
            [sys.executable, "-c", HOLDER_SCRIPT, name, str(lock_dir), str(seconds)],
            stdout=subprocess.PIPE,
            text=True,
        )
        children.append(proc)
        assert proc.stdout is not None
        line = proc.stdout.readline().strip()
        assert line == "held", f"lock holder did not start: {line!r}"
        return proc

    yield start

    for proc in children:
        if proc.poll() is None:
            proc.kill()
        proc.wait(timeout=10)
        if proc.stdout is not None:
            proc.stdout.close()


class FakeProducer:
    """Producer that writes a small artifact and reports canned progress."""

    def __init__(
        self,
        output_dir: Path,
        payload: bytes = b"backup-data " * 256,
        error: Exception | None = None,
        percents: tuple[int, ...] = (10, 50, 100),
        during: Callable[[], None] | None = None,
    ) -> None:
        self.output_dir = output_dir
        self.payload = payload
        self.error = error
        self.percents = percents
        self.during = during
        self.calls: list[tuple[str, BackupOptions]] = []

    def produce(self, target, options, on_progress=None) -> Path:
        self.calls.append((target, options))
        if self.during is not None:
            self.during()
        if on_progress is not None:
            for percent in self.percents:
                on_progress(ProgressEvent(percent=percent, message=f"{percent} percent processed."))
        if self.error is not None:
            raise self.error
        path = self.output_dir / f"{target}.bak"
        path.write_bytes(self.payload)
        return path


class FakeArchiver:
    """Archiver that copies the artifact and returns a scripted verdict."""

    extension = ".zip"

    def __init__(
        self,
        verify_result: bool = True,
        compress_error: Exception | None = None,
        verify_error: Exception | None = None,
        during_compress: Callable[[Path], None] | None = None,
    ) -> None:
        self.verify_result = verify_result
        self.compress_error = compress_error
        self.verify_error = verify_error
        self.during_compress = during_compress
        self.compressed: list[Path] = []
        self.verified: list[Path] = []

    def compress(self, source: Path, on_progress=None) -> Path:
        self.compressed.append(source)
        if self.during_compress is not None:
            self.during_compress(source)
        if self.compress_error is not None:
            raise self.compress_error
        archive = source.with_name(source.name + self.extension)
        archive.write_bytes(source.read_bytes())
        if on_progress is not None:
            on_progress(ProgressEvent(percent=100, message="100 percent processed."))
        return archive

    def verify(self, archive: Path) -> bool:
        self.verified.append(archive)
        if self.verify_error is not None:
            raise self.verify_error
        return self.verify_result


@pytest.fixture
def producer(backup_dir: Path) -> FakeProducer:
    """Producer that succeeds."""
    return FakeProducer(backup_dir)


@pytest.fixture
def archiver() -> FakeArchiver:
    """Archiver that verifies positively."""
    return FakeArchiver()
