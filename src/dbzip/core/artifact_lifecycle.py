"""Bookkeeping for one backup artifact as it moves through the pipeline.

The tracker only records state; it never touches the file. Its job is to
reject out-of-order transitions, above all deleting an artifact whose
archive has not been verified.
"""

from pathlib import Path

from ..errors import LifecycleError
from ..models import ArtifactRecord, ArtifactState

_TRANSITIONS: dict[ArtifactState, frozenset[ArtifactState]] = {
    ArtifactState.CREATED: frozenset({ArtifactState.COMPRESSED, ArtifactState.ABANDONED}),
    ArtifactState.COMPRESSED: frozenset({ArtifactState.VERIFIED, ArtifactState.ABANDONED}),
    ArtifactState.VERIFIED: frozenset({ArtifactState.DELETED, ArtifactState.ABANDONED}),
    ArtifactState.DELETED: frozenset(),
    ArtifactState.ABANDONED: frozenset(),
}


class ArtifactLifecycle:
    """State tracker for a produced artifact.

    Legal path: CREATED -> COMPRESSED -> VERIFIED -> DELETED. ABANDONED can
    be reached from any non-terminal state and leaves the file on disk.
    """

    def __init__(self, path: Path) -> None:
        self.record = ArtifactRecord(path=path)

    @property
    def path(self) -> Path:
        return self.record.path

    @property
    def state(self) -> ArtifactState:
        return self.record.state

    @property
    def history(self) -> list[ArtifactState]:
        return list(self.record.history)

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.record.state]

    def mark_compressed(self) -> None:
        self._advance(ArtifactState.COMPRESSED)

    def mark_verified(self) -> None:
        self._advance(ArtifactState.VERIFIED)

    def mark_deleted(self) -> None:
        self._advance(ArtifactState.DELETED)

    def abandon(self) -> None:
        """Give up on the artifact, leaving it for manual inspection."""
        self._advance(ArtifactState.ABANDONED)

    def _advance(self, new_state: ArtifactState) -> None:
        current = self.record.state
        if new_state not in _TRANSITIONS[current]:
            raise LifecycleError(
                f"Illegal artifact transition {current.value} -> {new_state.value} "
                f"for {self.record.path}"
            )
        self.record.state = new_state
        self.record.history.append(new_state)
