"""Context window accounting.

Hides the token estimate and the policy for which turns are resubmitted
to the model. The full history is resubmitted while it fits the model's
context window with room left for the reply; past that the oldest turns
are dropped.
"""

from collections.abc import Sequence

from ..transcript import Role, Turn, TurnStatus

CHARS_PER_TOKEN = 4.0
DEFAULT_CONTEXT_SIZE = 8_192
REPLY_RESERVE_TOKENS = 4_096

# Substring -> context window size; longest key wins
MODEL_CONTEXT_SIZES: dict[str, int] = {
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,
    "gpt-4.1": 1_047_576,
    "gpt-4-turbo": 128_000,
    "gpt-4": 8_192,
    "gpt-3.5-turbo": 16_385,
    "gpt-3.5": 16_385,
    "gpt-oss": 131_072,
    "o1": 200_000,
    "o3": 200_000,
    "o4-mini": 200_000,
    "claude-3": 200_000,
    "claude-3.5": 200_000,
    "llama-3": 8_192,
    "mixtral": 32_768,
    "mistral": 32_768,
}

_SORTED_SIZES = sorted(MODEL_CONTEXT_SIZES.items(), key=lambda item: len(item[0]), reverse=True)


def estimate_tokens(text: str) -> int:
    """Approximate token count (~4 characters per token for English)."""
    if not text:
        return 0
    return -(-len(text) // int(CHARS_PER_TOKEN))


def context_size(model: str | None) -> int:
    """Context window size for a model, matched by case-insensitive substring."""
    if not model or not model.strip():
        return DEFAULT_CONTEXT_SIZE
    lowered = model.lower()
    for key, size in _SORTED_SIZES:
        if key in lowered:
            return size
    return DEFAULT_CONTEXT_SIZE


def is_contextual(turn: Turn) -> bool:
    """Whether a turn is resubmitted to the model.

    Failed and cancelled replies are shown to the user but kept out of the
    model's context, as are replies still in flight.
    """
    if not turn.content:
        return False
    if turn.role == Role.ASSISTANT:
        return turn.status == TurnStatus.COMPLETE
    return True


class ContextWindow:
    """Selects the turns sent with each request.

    Args:
        max_tokens: Token budget for the context (None derives it from the
            model's window minus reserve_tokens)
        reserve_tokens: Room kept free for the reply when the budget comes
            from the model's window
    """

    def __init__(self, max_tokens: int | None = None, reserve_tokens: int = REPLY_RESERVE_TOKENS) -> None:
        if max_tokens is not None and max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if reserve_tokens < 0:
            raise ValueError("reserve_tokens must not be negative")
        self._max_tokens = max_tokens
        self._reserve_tokens = reserve_tokens

    @property
    def max_tokens(self) -> int | None:
        return self._max_tokens

    def budget(self, model: str | None) -> int:
        """Tokens of history that may be sent to `model`."""
        if self._max_tokens is not None:
            return self._max_tokens
        window = context_size(model)
        # Small windows keep at least half for history
        return max(window - self._reserve_tokens, window // 2)

    def used_tokens(self, turns: Sequence[Turn]) -> int:
        return sum(estimate_tokens(turn.content) for turn in turns if is_contextual(turn))

    def select(self, turns: Sequence[Turn], model: str | None = None) -> list[Turn]:
        """Pick the context for the next request.

        System turns are always kept. When over budget, the oldest
        non-system turns are dropped first; the newest turn is always kept.
        """
        selected = [turn for turn in turns if is_contextual(turn)]
        budget = self.budget(model)

        total = sum(estimate_tokens(turn.content) for turn in selected)
        trimmed = list(selected)
        index = 0
        while total > budget and index < len(trimmed) - 1:
            turn = trimmed[index]
            if turn.role == Role.SYSTEM:
                index += 1
                continue
            total -= estimate_tokens(turn.content)
            del trimmed[index]
        return trimmed

    def usage(self, turns: Sequence[Turn], model: str | None) -> tuple[int, int]:
        """(estimated tokens used, window size) for status display."""
        window = context_size(model)
        if self._max_tokens is not None:
            window = min(window, self._max_tokens)
        return self.used_tokens(turns), window
