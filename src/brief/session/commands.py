"""Command interpreter.

Classifies a completed input line as a control command or a chat message.
Pure functions only: the interpreter never touches session state.
"""

from dataclasses import dataclass

from ..transcript import TurnStatus

# Leading character that marks a control command
COMMAND_SENTINEL = "/"

RETRYABLE_STATUSES = frozenset({TurnStatus.FAILED, TurnStatus.CANCELLED})


@dataclass(frozen=True)
class Send:
    text: str


@dataclass(frozen=True)
class Clear:
    pass


@dataclass(frozen=True)
class New:
    """Clear and start a new session id."""


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class Cancel:
    pass


@dataclass(frozen=True)
class Retry:
    pass


@dataclass(frozen=True)
class Model:
    """Switch model; with no name, report the current one."""

    name: str | None = None


@dataclass(frozen=True)
class Help:
    pass


@dataclass(frozen=True)
class Noop:
    reason: str = ""


Command = Send | Clear | New | Quit | Cancel | Retry | Model | Help | Noop

# word -> (description, takes an argument)
COMMANDS: dict[str, tuple[str, bool]] = {
    "clear": ("Clear the conversation", False),
    "new": ("Start a new session", False),
    "cancel": ("Stop the reply in progress", False),
    "retry": ("Retry the last failed or cancelled reply", False),
    "model": ("Show or switch the model: /model <name>", True),
    "help": ("List commands", False),
    "quit": ("Quit", False),
    "exit": ("Quit", False),
}


def help_text() -> str:
    """One line per command, for the /help notice."""
    return "\n".join(
        f"{COMMAND_SENTINEL}{word}  {description}"
        for word, (description, _) in COMMANDS.items()
    )


def _parse_control(line: str) -> tuple[str, str] | None:
    """Split "/word arg" into (word, arg) if word is a reserved command."""
    if not line.startswith(COMMAND_SENTINEL):
        return None
    word, _, arg = line[len(COMMAND_SENTINEL):].partition(" ")
    word = word.lower()
    if word not in COMMANDS:
        return None
    takes_arg = COMMANDS[word][1]
    if arg.strip() and not takes_arg:
        return None
    return word, arg.strip()


def classify(
    raw_line: str,
    *,
    last_status: TurnStatus | None = None,
    streaming: bool = False,
) -> Command:
    """Classify one line of user input.

    Args:
        raw_line: The submitted line
        last_status: Status of the most recent turn, if any
        streaming: Whether a reply is currently in flight

    Returns:
        The command to execute. Anything that is not a reserved command
        word is a Send; a Send while streaming degrades to Noop.
    """
    line = raw_line.strip()
    if not line:
        return Noop("empty input")

    control = _parse_control(line)
    if control is None:
        if streaming:
            return Noop("a reply is still streaming; /cancel it first")
        return Send(line)

    word, arg = control
    if word in ("quit", "exit"):
        return Quit()
    if word == "clear":
        return Clear()
    if word == "new":
        return New()
    if word == "cancel":
        return Cancel() if streaming else Noop("nothing to cancel")
    if word == "retry":
        if streaming:
            return Noop("a reply is still streaming")
        if last_status in RETRYABLE_STATUSES:
            return Retry()
        return Noop("nothing to retry")
    if word == "model":
        return Model(arg or None)
    return Help()
