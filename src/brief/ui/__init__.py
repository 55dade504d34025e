"""Terminal UI module for brief.

Provides a Textual-based render surface for the session controller.

Module structure (each module hides a design decision):
- config.py: UI constants and log levels
- widgets.py: Custom widgets (turn rendering, input history, status line, log panel)
- styles.py: CSS styling (layout decisions)
- themes.py: Color palette and theme configuration
- app.py: Application orchestration (events in, snapshots out)
"""

from .app import BriefApp, build_controller, run_tui
from .config import LogLevel
from .widgets import ChatHistoryWidget, ChatInputBar, DebugPanel, StatusBar, TurnView

__all__ = [
    "BriefApp",
    "ChatHistoryWidget",
    "ChatInputBar",
    "DebugPanel",
    "LogLevel",
    "StatusBar",
    "TurnView",
    "build_controller",
    "run_tui",
]
