"""Data models for the conversation transcript.

Turns handed out of the store are frozen copies; the store keeps its own
mutable records so that only it can change a turn's content or status.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Author of a turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class TurnStatus(str, Enum):
    """Lifecycle status of a turn."""

    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TurnStatus.COMPLETE, TurnStatus.FAILED, TurnStatus.CANCELLED)


class Turn(BaseModel):
    """One message in the conversation."""

    model_config = ConfigDict(frozen=True)

    turn_id: str = Field(default_factory=lambda: str(uuid4()))
    role: Role = Field(description="Author of the message")
    content: str = Field(default="", description="Message text")
    status: TurnStatus = Field(default=TurnStatus.COMPLETE)
    error: str | None = Field(default=None, description="Failure cause for failed turns")
    finish_reason: str | None = Field(default=None, description="Finish reason reported by the model")
    created_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def user(cls, content: str) -> "Turn":
        return cls(role=Role.USER, content=content)

    @classmethod
    def system(cls, content: str) -> "Turn":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def pending_assistant(cls) -> "Turn":
        return cls(role=Role.ASSISTANT, status=TurnStatus.PENDING)


class TurnRef(BaseModel):
    """Handle to a turn inside a specific transcript generation."""

    model_config = ConfigDict(frozen=True)

    turn_id: str
    generation: int
