"""Pipeline run models.

``PipelineRun`` is the mutable record the orchestrator advances through the
stage machine. ``RunRequest`` and ``RunResult`` are the caller-facing
input and output of one run.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from .artifact import ArtifactState
from .options import BackupOptions
from .timing import Timing


class Stage(str, Enum):
    """Pipeline stages in execution order, followed by the terminal exits."""

    IDLE = "idle"
    ACQUIRING_LOCK = "acquiring_lock"
    PRODUCING = "producing"
    COMPRESSING = "compressing"
    VERIFYING = "verifying"
    CLEANING_UP = "cleaning_up"
    COMPLETED = "completed"
    LOCK_SKIPPED = "lock_skipped"
    FAILED = "failed"


class Outcome(str, Enum):
    """Terminal outcome of a run."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED_LOCK_CONTENTION = "skipped_lock_contention"


class FailureKind(str, Enum):
    """Which stage a failed run failed in."""

    LOCK_TIMEOUT = "lock_timeout"
    LOCK_UNAVAILABLE = "lock_unavailable"
    PRODUCTION = "production_error"
    COMPRESSION = "compression_error"
    VERIFICATION = "verification_error"


class RunRequest(BaseModel):
    """Caller request for one backup run.

    Attributes:
        target: What is being backed up (database name).
        wait_for_lock: Block for the lock instead of skipping on contention.
        lock_name: Lock identifier; the application default when unset.
        lock_timeout: Upper bound in seconds when waiting; None or negative waits forever.
        options: Options passed through to the producer.
    """

    target: str = Field(min_length=1)
    wait_for_lock: bool = False
    lock_name: str | None = None
    lock_timeout: float | None = None
    options: BackupOptions = Field(default_factory=BackupOptions)


class PipelineRun(BaseModel):
    """State of one end-to-end execution. Mutated only by the orchestrator."""

    target: str
    stage: Stage = Stage.IDLE
    artifact_path: Path | None = None
    archive_path: Path | None = None
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: datetime | None = None
    outcome: Outcome = Outcome.PENDING
    failure_kind: FailureKind | None = None
    error: str | None = None
    deleted_original: bool = False
    warnings: list[str] = Field(default_factory=list)
    timing: Timing = Field(default_factory=Timing)


class RunResult(BaseModel):
    """What a caller gets back once a run has reached a terminal stage."""

    target: str
    outcome: Outcome
    stage: Stage
    archive_path: Path | None = None
    artifact_path: Path | None = None
    deleted_original: bool = False
    failure_kind: FailureKind | None = None
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)
    artifact_history: list[ArtifactState] = Field(default_factory=list)
    timing: Timing = Field(default_factory=Timing)

    @property
    def succeeded(self) -> bool:
        return self.outcome == Outcome.SUCCEEDED

    @property
    def skipped(self) -> bool:
        return self.outcome == Outcome.SKIPPED_LOCK_CONTENTION
