"""Exception types shared across brief.

Transport failures from the provider SDK are not wrapped here: the stream
adapter records them as the cause of a failed turn.
"""


class BriefError(Exception):
    """Base class for brief errors."""


class StaleTurnError(BriefError):
    """A finalized or cleared turn was mutated (controller bug, never retried)."""

    def __init__(self, message: str, turn_id: str | None = None):
        super().__init__(message)
        self.turn_id = turn_id


class ConfigError(BriefError):
    """Missing or invalid configuration."""


class StreamTimeoutError(BriefError):
    """The completion stream exceeded its deadline."""

    def __init__(self, timeout: float):
        super().__init__(f"timed out after {timeout:g}s")
        self.timeout = timeout
