"""Completion streaming module for brief.

Turns one provider request into an ordered sequence of Fragments.
"""

from .adapter import CompletionStreamAdapter, StreamEvent, StreamSink, to_chat_messages
from .models import Fragment, StreamEnded, StreamHandle, StreamState
from .reorder import ReorderBuffer

__all__ = [
    "CompletionStreamAdapter",
    "Fragment",
    "ReorderBuffer",
    "StreamEnded",
    "StreamEvent",
    "StreamHandle",
    "StreamSink",
    "StreamState",
    "to_chat_messages",
]
