"""Data models for completion streams.

A stream delivers an ordered run of Fragments and ends either with a final
fragment or with an out-of-band StreamEnded event.
"""

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class StreamState(str, Enum):
    """State of one outstanding request to the model."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    FINISHED = "finished"
    ERRORED = "errored"


@dataclass
class StreamHandle:
    """One outstanding request, owned by the session controller."""

    id: str = field(default_factory=lambda: uuid4().hex)
    state: StreamState = StreamState.ACTIVE
    cause: str | None = None

    @property
    def is_active(self) -> bool:
        return self.state == StreamState.ACTIVE


class Fragment(BaseModel):
    """One incremental piece of a streamed reply."""

    model_config = ConfigDict(frozen=True)

    stream_id: str
    sequence: int = Field(ge=0, description="Monotonic position within the stream")
    text: str = ""
    is_final: bool = False
    finish_reason: str | None = None
    # Token counts reported by the provider, on the final fragment only
    usage: dict[str, int] | None = None


class StreamEnded(BaseModel):
    """Terminal status of a stream delivered outside the fragment sequence."""

    model_config = ConfigDict(frozen=True)

    stream_id: str
    state: StreamState
    cause: str | None = None
