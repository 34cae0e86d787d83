"""Timing model for per-stage performance tracking."""

from pydantic import BaseModel, Field


class Timing(BaseModel):
    """Per-run timing breakdown.

    Attributes:
        lock_wait_ms: Time spent acquiring the lock
        production_ms: Time spent producing the backup artifact
        compression_ms: Time spent compressing the artifact
        verification_ms: Time spent verifying the archive
        total_ms: Total run time
    """

    lock_wait_ms: int = Field(default=0, description="Lock acquisition time in ms")
    production_ms: int = Field(default=0, description="Backup production time in ms")
    compression_ms: int = Field(default=0, description="Compression time in ms")
    verification_ms: int = Field(default=0, description="Verification time in ms")
    total_ms: int = Field(default=0, description="Total run time in ms")
