"""Archivers: compress a backup artifact and verify the result.

Each archiver writes a single-member archive next to the artifact
(``<artifact>.zip`` or ``<artifact>.tar.xz``). Verification reads the whole
archive back and checks it against its own checksums. A partial archive
left by a failed compression is not removed.
"""

import logging
import lzma
import tarfile
import time
import zipfile
import zlib
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO, Protocol

from ..config import ArchiveConfig, ArchiveFormat
from ..constants import COPY_CHUNK_SIZE
from ..errors import CompressionError, VerificationError
from ..models import ProgressEvent

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class Archiver(Protocol):
    """Compresses artifacts and verifies archives."""

    extension: str

    def compress(self, source: Path, on_progress: ProgressCallback | None = None) -> Path:
        """Compress ``source`` and return the archive path.

        Raises:
            CompressionError: If the archive could not be written
        """
        ...

    def verify(self, archive: Path) -> bool:
        """Return True if the archive is structurally sound.

        Raises:
            VerificationError: If the archive cannot be read at all
        """
        ...


class _ProgressReporter:
    """Emits a progress event each time the completed percentage changes."""

    def __init__(self, total: int, on_progress: ProgressCallback | None) -> None:
        self.total = total
        self.done = 0
        self._on_progress = on_progress
        self._last_percent = -1

    def advance(self, count: int) -> None:
        self.done += count
        percent = 100 if self.total == 0 else min(100, self.done * 100 // self.total)
        if self._on_progress is not None and percent != self._last_percent:
            self._last_percent = percent
            self._on_progress(
                ProgressEvent(percent=percent, message=f"{percent} percent processed.")
            )

    def finish(self) -> None:
        if self._last_percent != 100:
            self.done = self.total
            self.advance(0)


class _ProgressReader:
    """File wrapper that reports bytes read, for tarfile.addfile."""

    def __init__(self, fileobj: BinaryIO, reporter: _ProgressReporter) -> None:
        self._fileobj = fileobj
        self._reporter = reporter

    def read(self, size: int = -1) -> bytes:
        data = self._fileobj.read(size)
        self._reporter.advance(len(data))
        return data


def _copy_with_progress(
    src: BinaryIO,
    dest: BinaryIO,
    reporter: _ProgressReporter,
    chunk_size: int = COPY_CHUNK_SIZE,
) -> None:
    for chunk in iter(lambda: src.read(chunk_size), b""):
        dest.write(chunk)
        reporter.advance(len(chunk))


def _require_source(source: Path) -> int:
    if not source.is_file():
        raise CompressionError(f"Cannot compress missing file: {source}")
    return source.stat().st_size


class ZipArchiver:
    """Deflate-compressed zip archives with zip64 always enabled."""

    extension = ".zip"

    def __init__(self, level: int = 6, chunk_size: int = COPY_CHUNK_SIZE) -> None:
        self.level = level
        self.chunk_size = chunk_size

    def archive_path(self, source: Path) -> Path:
        return source.with_name(source.name + self.extension)

    def compress(self, source: Path, on_progress: ProgressCallback | None = None) -> Path:
        total = _require_source(source)
        archive = self.archive_path(source)
        reporter = _ProgressReporter(total, on_progress)

        logger.info("Zipping up: [%s]", source)
        started = time.monotonic()
        try:
            with (
                zipfile.ZipFile(
                    archive,
                    "w",
                    compression=zipfile.ZIP_DEFLATED,
                    compresslevel=self.level,
                    allowZip64=True,
                ) as zf,
                open(source, "rb") as src,
                zf.open(source.name, "w", force_zip64=True) as dest,
            ):
                _copy_with_progress(src, dest, reporter, self.chunk_size)
        except (OSError, zipfile.BadZipFile, zlib.error) as e:
            raise CompressionError(f"Failed to compress {source}: {e}") from e

        reporter.finish()
        logger.info("Zipped up in %d ms", (time.monotonic() - started) * 1000)
        return archive

    def verify(self, archive: Path) -> bool:
        if not archive.exists():
            raise VerificationError(f"Archive not found: {archive}")
        try:
            if not zipfile.is_zipfile(archive):
                return False
            with zipfile.ZipFile(archive) as zf:
                # testzip reads every member and checks its CRC
                return bool(zf.namelist()) and zf.testzip() is None
        except (zipfile.BadZipFile, zlib.error, EOFError):
            return False
        except OSError as e:
            raise VerificationError(f"Cannot read archive {archive}: {e}") from e


class XzArchiver:
    """LZMA2 (xz) compressed tarballs holding the single artifact."""

    extension = ".tar.xz"

    def __init__(self, level: int = 6, chunk_size: int = COPY_CHUNK_SIZE) -> None:
        self.level = level
        self.chunk_size = chunk_size

    def archive_path(self, source: Path) -> Path:
        return source.with_name(source.name + self.extension)

    def compress(self, source: Path, on_progress: ProgressCallback | None = None) -> Path:
        total = _require_source(source)
        archive = self.archive_path(source)
        reporter = _ProgressReporter(total, on_progress)

        logger.info("Compressing: [%s]", source)
        started = time.monotonic()
        try:
            with (
                tarfile.open(archive, "w:xz", preset=self.level) as tf,
                open(source, "rb") as src,
            ):
                info = tf.gettarinfo(str(source), arcname=source.name)
                tf.addfile(info, fileobj=_ProgressReader(src, reporter))
        except (OSError, tarfile.TarError, lzma.LZMAError) as e:
            raise CompressionError(f"Failed to compress {source}: {e}") from e

        reporter.finish()
        logger.info("Compressed in %d ms", (time.monotonic() - started) * 1000)
        return archive

    def verify(self, archive: Path) -> bool:
        if not archive.exists():
            raise VerificationError(f"Archive not found: {archive}")
        try:
            with tarfile.open(archive, "r:xz") as tf:
                members = tf.getmembers()
                if not members:
                    return False
                for member in members:
                    if not member.isfile():
                        continue
                    extracted = tf.extractfile(member)
                    if extracted is None:
                        return False
                    size = 0
                    for chunk in iter(lambda: extracted.read(self.chunk_size), b""):
                        size += len(chunk)
                    if size != member.size:
                        return False
                return True
        except (tarfile.TarError, lzma.LZMAError, EOFError):
            return False
        except OSError as e:
            raise VerificationError(f"Cannot read archive {archive}: {e}") from e


def create_archiver(config: ArchiveConfig) -> Archiver:
    """Create the archiver selected by ``archive.format``."""
    if config.format == ArchiveFormat.XZ:
        return XzArchiver(level=config.level)
    return ZipArchiver(level=config.level)
