"""In-band command syntax.

Commands start with a single ``!``. A doubled ``!!`` escapes the marker so a
line can start with an exclamation mark without being a command. Commands
addressed to the bot carry its name right after the marker
(``!chaz model gpt-4o``). Only addressed commands are run. The short form
``!model gpt-4o`` still counts when reading history, and only addressed text
that is not a command is kept as chat.
"""

from dataclasses import dataclass, field

COMMAND_MARKER = "!"

# Commands that are never part of the conversation
RESERVED_COMMANDS = frozenset({
    "help",
    "party",
    "send",
    "list",
    "rename",
    "print",
    "model",
    "clear",
    "backend",
})


@dataclass
class Command:
    """A parsed command line."""

    name: str  # first word after the prefix, lower-cased, "" when absent
    args: list[str] = field(default_factory=list)
    remainder: str = ""  # everything after the prefix, stripped
    addressed: bool = False  # prefixed with the bot's name

    @property
    def is_reserved(self) -> bool:
        return self.name in RESERVED_COMMANDS


def is_command(text: str, marker: str = COMMAND_MARKER) -> bool:
    """Check whether ``text`` is a command rather than literal text."""
    text = text.lstrip()
    return text.startswith(marker) and not text.startswith(marker * 2)


def parse_command(text: str, bot_name: str, marker: str = COMMAND_MARKER) -> Command | None:
    """
    Parse a command line.

    Args:
        text: Raw message body.
        bot_name: Name the bot answers to (``chaz`` for ``!chaz``).
        marker: Command marker character.

    Returns:
        The parsed command, or None when ``text`` is not a command.
    """
    if not is_command(text, marker):
        return None

    rest = text.lstrip()[len(marker):]
    addressed = False
    if rest.startswith(bot_name) and (len(rest) == len(bot_name) or rest[len(bot_name)].isspace()):
        addressed = True
        rest = rest[len(bot_name):]

    remainder = rest.strip()
    words = remainder.split()
    if not words:
        return Command(name="", remainder=remainder, addressed=addressed)
    return Command(
        name=words[0].lower(),
        args=words[1:],
        remainder=remainder,
        addressed=addressed,
    )
