"""Progress event model."""

from pydantic import BaseModel, Field

from .run import Stage


class ProgressEvent(BaseModel):
    """Progress notification emitted by a producer or archiver.

    Collaborators leave ``stage`` unset; the orchestrator tags each event
    with the stage that was running when it was relayed.
    """

    stage: Stage | None = Field(default=None, description="Pipeline stage")
    percent: int | None = Field(default=None, ge=0, le=100, description="Percent complete")
    message: str = Field(default="", description="Human-readable progress text")
