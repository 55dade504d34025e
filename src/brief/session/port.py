"""Render surface port.

The only boundary between the session controller and a terminal toolkit.
A surface draws transcript snapshots and produces input events; the
controller never touches widgets directly.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from ..transcript import Turn


@dataclass(frozen=True)
class SurfaceReady:
    """The surface is mounted and can be drawn to."""


@dataclass(frozen=True)
class KeyPress:
    """A decoded key: a printable character or a named key ("enter", "escape")."""

    key: str

    @property
    def is_printable(self) -> bool:
        return len(self.key) == 1 and self.key.isprintable()


@dataclass(frozen=True)
class LineSubmitted:
    """A complete line from a surface that edits input itself."""

    text: str


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class Close:
    """The surface is going away (window closed, Ctrl+C)."""


InputEvent = SurfaceReady | KeyPress | LineSubmitted | Resize | Close


@runtime_checkable
class RenderSurface(Protocol):
    """What the controller needs from a terminal UI."""

    def draw(self, snapshot: Sequence[Turn], partial_text: str) -> None:
        """Redraw the conversation.

        Args:
            snapshot: Read-only copy of the transcript
            partial_text: Text accumulated so far by the in-progress reply
        """
        ...

    def notify(self, message: str, *, severity: str = "information") -> None:
        """Show a transient notice ("information", "warning" or "error")."""
        ...

    def exit(self) -> None:
        """Tear the surface down; called once on quit."""
        ...
