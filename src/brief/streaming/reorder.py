"""Re-ordering of out-of-order stream deltas.

Deltas tagged with a transport index are held until every earlier index
has arrived, so the sink only ever sees contiguous sequences.
"""


class ReorderBuffer:
    """Releases (sequence, text) pairs in strictly increasing order."""

    def __init__(self, start: int = 0) -> None:
        self._next = start
        self._held: dict[int, str] = {}

    @property
    def next_sequence(self) -> int:
        """Sequence number expected next."""
        return self._next

    @property
    def pending(self) -> int:
        """Number of deltas waiting for an earlier gap to fill."""
        return len(self._held)

    def push(self, index: int, text: str) -> list[tuple[int, str]]:
        """Add a delta and return every delta that is now releasable.

        Duplicates of already released or already held indices are dropped.
        """
        if index < self._next or index in self._held:
            return []
        self._held[index] = text

        released = []
        while self._next in self._held:
            released.append((self._next, self._held.pop(self._next)))
            self._next += 1
        return released
