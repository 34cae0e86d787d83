"""Backup pipeline orchestration for dbzip.

One run walks this stage machine:

    IDLE -> ACQUIRING_LOCK -> PRODUCING -> COMPRESSING -> VERIFYING
         -> CLEANING_UP -> COMPLETED

with the exits LOCK_SKIPPED (lock held elsewhere and the caller does not
wait) and FAILED (a stage reported an error, a bounded lock wait ran out,
or the lock file could not be opened). The named lock covers the
PRODUCING stage only; it is released as soon as the producer returns or
fails, because compression and verification never touch the contended
resource.

The original artifact is deleted only after the archive verified
positively. On every failure path the artifact and any partial archive
stay on disk.
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Protocol

from ..errors import (
    CompressionError,
    DeletionWarning,
    LockTimeout,
    LockUnavailable,
    ProductionError,
    StageTransitionError,
    VerificationError,
)
from ..models import (
    FailureKind,
    LockHandle,
    Outcome,
    PipelineRun,
    ProgressEvent,
    RunRequest,
    RunResult,
    Stage,
)
from ..services import Archiver, BackupProducer
from .artifact_lifecycle import ArtifactLifecycle
from .exclusive_region import ExclusiveRegion

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[ProgressEvent], None]

_STAGE_TRANSITIONS: dict[Stage, frozenset[Stage]] = {
    Stage.IDLE: frozenset({Stage.ACQUIRING_LOCK}),
    Stage.ACQUIRING_LOCK: frozenset({Stage.PRODUCING, Stage.LOCK_SKIPPED, Stage.FAILED}),
    Stage.PRODUCING: frozenset({Stage.COMPRESSING, Stage.FAILED}),
    Stage.COMPRESSING: frozenset({Stage.VERIFYING, Stage.FAILED}),
    Stage.VERIFYING: frozenset({Stage.CLEANING_UP, Stage.FAILED}),
    Stage.CLEANING_UP: frozenset({Stage.COMPLETED}),
    Stage.COMPLETED: frozenset(),
    Stage.LOCK_SKIPPED: frozenset(),
    Stage.FAILED: frozenset(),
}


class Region(Protocol):
    """The slice of ExclusiveRegion the orchestrator depends on."""

    name: str

    def acquire(self, timeout: float = 0) -> LockHandle: ...

    def release(self) -> None: ...


RegionFactory = Callable[[str | None], Region]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def lock_timeout_for(request: RunRequest) -> float:
    """Translate the request's wait policy into an acquisition timeout.

    Not waiting means try once. Waiting without a bound (or with a negative
    one) blocks until the holder releases.
    """
    if not request.wait_for_lock:
        return 0
    if request.lock_timeout is None or request.lock_timeout < 0:
        return -1
    return request.lock_timeout


class PipelineOrchestrator:
    """Runs produce -> compress -> verify -> cleanup under the named lock.

    Args:
        producer: Creates the uncompressed backup artifact
        archiver: Compresses and verifies the artifact
        region_factory: Builds the lock for a lock name; ExclusiveRegion by default
        observer: Receives every progress event, tagged with its stage
    """

    def __init__(
        self,
        producer: BackupProducer,
        archiver: Archiver,
        region_factory: RegionFactory | None = None,
        observer: ProgressObserver | None = None,
    ) -> None:
        self.producer = producer
        self.archiver = archiver
        self.region_factory: RegionFactory = region_factory or ExclusiveRegion
        self.observer = observer

    def run(self, request: RunRequest) -> RunResult:
        """Execute one backup run and report its terminal outcome.

        Lock contention, stage failures and success all come back as a
        ``RunResult``; only interrupts and bugs in this module propagate.
        """
        run = PipelineRun(target=request.target)
        run_started = time.monotonic()
        self._advance(run, Stage.ACQUIRING_LOCK)

        region = self.region_factory(request.lock_name)
        started = time.monotonic()
        try:
            region.acquire(lock_timeout_for(request))
        except LockTimeout as e:
            run.timing.lock_wait_ms = _elapsed_ms(started)
            if not request.wait_for_lock:
                logger.info("A backup is already in progress (%s); skipping", region.name)
                self._advance(run, Stage.LOCK_SKIPPED)
                run.outcome = Outcome.SKIPPED_LOCK_CONTENTION
                return self._finish(run, run_started)
            return self._fail(run, run_started, FailureKind.LOCK_TIMEOUT, e)
        except LockUnavailable as e:
            run.timing.lock_wait_ms = _elapsed_ms(started)
            return self._fail(run, run_started, FailureKind.LOCK_UNAVAILABLE, e)
        run.timing.lock_wait_ms = _elapsed_ms(started)

        try:
            self._advance(run, Stage.PRODUCING)
            started = time.monotonic()
            try:
                artifact_path = self._produce(run, request)
            except ProductionError as e:
                run.timing.production_ms = _elapsed_ms(started)
                return self._fail(run, run_started, FailureKind.PRODUCTION, e)
        finally:
            region.release()

        run.artifact_path = artifact_path
        run.timing.production_ms = _elapsed_ms(started)
        logger.info("Backed up in %d ms", run.timing.production_ms)
        lifecycle = ArtifactLifecycle(artifact_path)

        self._advance(run, Stage.COMPRESSING)
        started = time.monotonic()
        try:
            archive_path = self._compress(run, artifact_path)
        except CompressionError as e:
            run.timing.compression_ms = _elapsed_ms(started)
            lifecycle.abandon()
            return self._fail(run, run_started, FailureKind.COMPRESSION, e, lifecycle)
        run.timing.compression_ms = _elapsed_ms(started)
        run.archive_path = archive_path
        lifecycle.mark_compressed()

        self._advance(run, Stage.VERIFYING)
        logger.info("Verifying: [%s]", archive_path)
        started = time.monotonic()
        try:
            is_valid = self._verify(archive_path)
        except VerificationError as e:
            run.timing.verification_ms = _elapsed_ms(started)
            lifecycle.abandon()
            return self._fail(run, run_started, FailureKind.VERIFICATION, e, lifecycle)
        run.timing.verification_ms = _elapsed_ms(started)
        logger.info(
            "Verification %s in %d ms",
            "passed" if is_valid else "failed",
            run.timing.verification_ms,
        )
        if not is_valid:
            lifecycle.abandon()
            error = VerificationError(f"Archive failed verification: {archive_path}")
            return self._fail(run, run_started, FailureKind.VERIFICATION, error, lifecycle)
        lifecycle.mark_verified()

        self._advance(run, Stage.CLEANING_UP)
        run.deleted_original = self._cleanup(run, lifecycle)

        self._advance(run, Stage.COMPLETED)
        run.outcome = Outcome.SUCCEEDED
        logger.info("Completed")
        return self._finish(run, run_started, lifecycle)

    def _produce(self, run: PipelineRun, request: RunRequest) -> Path:
        try:
            return self.producer.produce(
                request.target, request.options, self._relay(run, Stage.PRODUCING)
            )
        except ProductionError:
            raise
        except Exception as e:
            raise ProductionError(f"Backup of {request.target} failed: {e}") from e

    def _compress(self, run: PipelineRun, artifact_path: Path) -> Path:
        try:
            return self.archiver.compress(artifact_path, self._relay(run, Stage.COMPRESSING))
        except CompressionError:
            raise
        except Exception as e:
            raise CompressionError(f"Compression of {artifact_path} failed: {e}") from e

    def _verify(self, archive_path: Path) -> bool:
        try:
            return self.archiver.verify(archive_path)
        except VerificationError:
            raise
        except Exception as e:
            raise VerificationError(f"Verification of {archive_path} failed: {e}") from e

    def _cleanup(self, run: PipelineRun, lifecycle: ArtifactLifecycle) -> bool:
        """Delete the verified original. Returns True if this run deleted it.

        An original that is already gone is accepted. A delete that fails is
        downgraded to a warning; the verified archive is the durable copy.
        """
        path = lifecycle.path
        try:
            logger.info("Deleting %s", path)
            path.unlink()
        except FileNotFoundError:
            logger.info("Original already removed: %s", path)
            lifecycle.mark_deleted()
            return False
        except OSError as e:
            warning = DeletionWarning(f"Could not delete original backup {path}: {e}")
            logger.warning(str(warning))
            run.warnings.append(str(warning))
            lifecycle.abandon()
            return False
        lifecycle.mark_deleted()
        return True

    def _relay(self, run: PipelineRun, stage: Stage) -> Callable[[ProgressEvent], None]:
        def relay(event: ProgressEvent) -> None:
            tagged = event.model_copy(update={"stage": stage})
            logger.debug("[%s] %s", stage.value, tagged.message)
            if self.observer is not None:
                self.observer(tagged)

        return relay

    def _advance(self, run: PipelineRun, stage: Stage) -> None:
        if stage not in _STAGE_TRANSITIONS[run.stage]:
            raise StageTransitionError(
                f"Illegal stage transition {run.stage.value} -> {stage.value}"
            )
        logger.debug("%s: %s -> %s", run.target, run.stage.value, stage.value)
        run.stage = stage

    def _fail(
        self,
        run: PipelineRun,
        run_started: float,
        kind: FailureKind,
        error: Exception,
        lifecycle: ArtifactLifecycle | None = None,
    ) -> RunResult:
        self._advance(run, Stage.FAILED)
        run.outcome = Outcome.FAILED
        run.failure_kind = kind
        run.error = str(error)
        logger.error("%s: %s", kind.value, error)
        if run.artifact_path is not None:
            logger.warning("Backup left on disk for inspection: %s", run.artifact_path)
        return self._finish(run, run_started, lifecycle)

    def _finish(
        self,
        run: PipelineRun,
        run_started: float,
        lifecycle: ArtifactLifecycle | None = None,
    ) -> RunResult:
        run.finished_at = datetime.now()
        run.timing.total_ms = _elapsed_ms(run_started)
        return RunResult(
            target=run.target,
            outcome=run.outcome,
            stage=run.stage,
            archive_path=run.archive_path,
            artifact_path=run.artifact_path,
            deleted_original=run.deleted_original,
            failure_kind=run.failure_kind,
            error=run.error,
            warnings=list(run.warnings),
            artifact_history=lifecycle.history if lifecycle is not None else [],
            timing=run.timing,
        )
