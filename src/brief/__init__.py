"""
brief: a streaming chat client for the terminal.

This package follows Parnas's information hiding principles,
where each module hides a specific design decision.
"""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .errors import BriefError, ConfigError, StaleTurnError, StreamTimeoutError

__all__ = [
    "BriefError",
    "ConfigError",
    "Settings",
    "StaleTurnError",
    "StreamTimeoutError",
    "load_settings",
]
