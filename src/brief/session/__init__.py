"""Chat session module for brief.

Module structure (each module hides a design decision):
- port.py: What the controller needs from a terminal UI
- commands.py: Control command syntax
- context.py: Which turns are resubmitted and how tokens are estimated
- controller.py: Session state machine and event loop
"""

from .commands import (
    Cancel,
    Clear,
    Command,
    Help,
    Model,
    New,
    Noop,
    Quit,
    Retry,
    Send,
    classify,
)
from .context import ContextWindow, context_size, estimate_tokens
from .controller import ControllerEvent, SessionController, SessionState
from .port import (
    Close,
    InputEvent,
    KeyPress,
    LineSubmitted,
    RenderSurface,
    Resize,
    SurfaceReady,
)

__all__ = [
    "Cancel",
    "Clear",
    "Close",
    "Command",
    "ContextWindow",
    "ControllerEvent",
    "Help",
    "InputEvent",
    "KeyPress",
    "LineSubmitted",
    "Model",
    "New",
    "Noop",
    "Quit",
    "RenderSurface",
    "Resize",
    "Retry",
    "Send",
    "SessionController",
    "SessionState",
    "SurfaceReady",
    "classify",
    "context_size",
    "estimate_tokens",
]
