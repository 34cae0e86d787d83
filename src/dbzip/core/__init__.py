"""Core backup logic: the host-wide lock, artifact bookkeeping and the pipeline."""

from .artifact_lifecycle import ArtifactLifecycle
from .exclusive_region import (
    ExclusiveRegion,
    build_lock_name,
    default_lock_dir,
    lock_file_name,
    run_exclusive,
)
from .pipeline import PipelineOrchestrator, lock_timeout_for

__all__ = [
    "ArtifactLifecycle",
    "ExclusiveRegion",
    "PipelineOrchestrator",
    "build_lock_name",
    "default_lock_dir",
    "lock_file_name",
    "lock_timeout_for",
    "run_exclusive",
]
