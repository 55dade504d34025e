"""Append-only transcript store.

Hides how turns are held and mutated. Performs no I/O and no rendering;
the session controller is its only writer.
"""

from dataclasses import dataclass, field
from datetime import datetime

from ..errors import StaleTurnError
from .models import Role, Turn, TurnRef, TurnStatus


@dataclass
class _TurnRecord:
    turn_id: str
    role: Role
    status: TurnStatus
    created_at: datetime
    parts: list[str] = field(default_factory=list)
    error: str | None = None
    finish_reason: str | None = None

    def freeze(self) -> Turn:
        return Turn(
            turn_id=self.turn_id,
            role=self.role,
            content="".join(self.parts),
            status=self.status,
            error=self.error,
            finish_reason=self.finish_reason,
            created_at=self.created_at,
        )


class TranscriptStore:
    """Ordered log of conversation turns.

    Invariants:
    - insertion order is conversation order
    - at most one turn is streaming at any time
    - content only grows while streaming and is frozen once terminal
    """

    def __init__(self) -> None:
        self._records: list[_TurnRecord] = []
        self._index: dict[str, _TurnRecord] = {}
        self._generation = 0

    def __len__(self) -> int:
        return len(self._records)

    @property
    def generation(self) -> int:
        """Incremented on every clear; refs from older generations are stale."""
        return self._generation

    def append(self, turn: Turn) -> TurnRef:
        """Append a turn and return a reference to it."""
        if turn.turn_id in self._index:
            raise ValueError(f"Turn {turn.turn_id} already in transcript")
        if turn.status == TurnStatus.STREAMING and self._streaming() is not None:
            raise StaleTurnError("Another turn is already streaming", turn.turn_id)

        record = _TurnRecord(
            turn_id=turn.turn_id,
            role=turn.role,
            status=turn.status,
            created_at=turn.created_at,
            parts=[turn.content] if turn.content else [],
            error=turn.error,
            finish_reason=turn.finish_reason,
        )
        self._records.append(record)
        self._index[record.turn_id] = record
        return TurnRef(turn_id=record.turn_id, generation=self._generation)

    def update_streaming(self, ref: TurnRef, fragment_text: str) -> None:
        """Append streamed text to a pending or streaming turn.

        The first update moves a pending turn to streaming.

        Raises:
            StaleTurnError: If the turn is terminal, was cleared, or another
                turn is already streaming
        """
        record = self._resolve(ref)
        if record.status.is_terminal:
            raise StaleTurnError(
                f"Turn {ref.turn_id} is {record.status.value}, cannot stream into it",
                ref.turn_id,
            )
        if record.status == TurnStatus.PENDING:
            active = self._streaming()
            if active is not None and active is not record:
                raise StaleTurnError(
                    f"Turn {active.turn_id} is already streaming", ref.turn_id
                )
            record.status = TurnStatus.STREAMING
        if fragment_text:
            record.parts.append(fragment_text)

    def finalize(
        self,
        ref: TurnRef,
        status: TurnStatus,
        *,
        error: str | None = None,
        finish_reason: str | None = None,
    ) -> Turn:
        """Move a turn to a terminal status and freeze its content.

        Returns:
            Frozen copy of the finalized turn

        Raises:
            ValueError: If status is not terminal
            StaleTurnError: If the turn is already terminal or was cleared
        """
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        record = self._resolve(ref)
        if record.status.is_terminal:
            raise StaleTurnError(
                f"Turn {ref.turn_id} already finalized as {record.status.value}",
                ref.turn_id,
            )
        record.status = status
        record.error = error
        record.finish_reason = finish_reason
        record.parts = ["".join(record.parts)] if record.parts else []
        return record.freeze()

    def get(self, ref: TurnRef) -> Turn:
        """Get a frozen copy of a turn."""
        return self._resolve(ref).freeze()

    def last(self) -> Turn | None:
        """Get the most recent turn, if any."""
        return self._records[-1].freeze() if self._records else None

    def snapshot(self) -> list[Turn]:
        """Get a read-only copy of all turns in order."""
        return [record.freeze() for record in self._records]

    def clear(self) -> None:
        """Remove every turn and invalidate outstanding refs."""
        self._records.clear()
        self._index.clear()
        self._generation += 1

    def _streaming(self) -> _TurnRecord | None:
        for record in self._records:
            if record.status == TurnStatus.STREAMING:
                return record
        return None

    def _resolve(self, ref: TurnRef) -> _TurnRecord:
        if ref.generation != self._generation:
            raise StaleTurnError(f"Turn {ref.turn_id} was cleared", ref.turn_id)
        record = self._index.get(ref.turn_id)
        if record is None:
            raise StaleTurnError(f"Turn {ref.turn_id} is not in the transcript", ref.turn_id)
        return record
