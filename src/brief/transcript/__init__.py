"""Conversation transcript module for brief.

Provides the append-only turn log owned by the session controller.
"""

from .models import Role, Turn, TurnRef, TurnStatus
from .store import TranscriptStore

__all__ = [
    "Role",
    "TranscriptStore",
    "Turn",
    "TurnRef",
    "TurnStatus",
]
