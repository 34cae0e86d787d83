"""Pydantic data models for dbzip.

This package defines the data structures used throughout dbzip for:
- Lock grants and diagnostics (LockHandle, LockOwner, LockStatus)
- Artifact bookkeeping (ArtifactRecord, ArtifactState)
- Pipeline runs (PipelineRun, RunRequest, RunResult, Stage, Outcome)
- Progress and timing (ProgressEvent, Timing)

Example:
    >>> from dbzip.models import RunRequest
    >>> RunRequest(target="Orders", wait_for_lock=True).model_dump_json()
"""

from .artifact import ArtifactRecord, ArtifactState
from .lock import LockHandle, LockOwner, LockStatus, TimeoutPolicy, current_process_identity
from .options import BackupOptions
from .progress import ProgressEvent
from .run import FailureKind, Outcome, PipelineRun, RunRequest, RunResult, Stage
from .timing import Timing

__all__ = [
    "ArtifactRecord",
    "ArtifactState",
    "BackupOptions",
    "FailureKind",
    "LockHandle",
    "LockOwner",
    "LockStatus",
    "Outcome",
    "PipelineRun",
    "ProgressEvent",
    "RunRequest",
    "RunResult",
    "Stage",
    "TimeoutPolicy",
    "Timing",
    "current_process_identity",
]
