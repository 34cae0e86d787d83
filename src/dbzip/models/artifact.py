"""Artifact record model."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class ArtifactState(str, Enum):
    """Lifecycle states of an uncompressed backup artifact."""

    CREATED = "created"
    COMPRESSED = "compressed"
    VERIFIED = "verified"
    DELETED = "deleted"
    ABANDONED = "abandoned"


class ArtifactRecord(BaseModel):
    """One produced file and the states it has passed through."""

    path: Path = Field(description="Artifact file path")
    state: ArtifactState = Field(default=ArtifactState.CREATED)
    history: list[ArtifactState] = Field(default_factory=lambda: [ArtifactState.CREATED])
