"""Telegram bot command configuration."""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class TelegramCommand:
    """Declarative bot command definition."""

    command: str
    description: str


class BotCommand(Enum):
    """Enum of bot commands (single source of truth)."""

    START = TelegramCommand("start", "Show how to report a shipment")
    RECEIVE_START = TelegramCommand("receive_start", "Start an intake: CODE [note]")
    RECEIVE_DONE = TelegramCommand("receive_done", "Confirm the current intake")
    CANCEL = TelegramCommand("cancel", "Cancel pending edits and intake")
    HELP = TelegramCommand("help", "Message formats and tips")

    @property
    def slash(self) -> str:
        """Return the command as typed in chat."""
        return f"/{self.value.command}"


def telegram_commands() -> list[dict[str, str]]:
    """Return commands formatted for Telegram API."""
    return [
        {"command": entry.value.command, "description": entry.value.description}
        for entry in BotCommand
    ]


def match_command(text: str | None) -> tuple[BotCommand, list[str]] | None:
    """Split `/command@bot arg1 arg2` into a known command and its args."""
    if not text or not text.startswith("/"):
        return None
    head, *args = text.split()
    name = head[1:].split("@", maxsplit=1)[0].lower()
    for entry in BotCommand:
        if entry.value.command == name:
            return entry, args
    return None


CHAT_MENU_BUTTON: dict[str, object] = {"type": "commands"}

HELP_TEXT = (
    "Send a shipment as one line: CODE PALLETS BOXES GROSS, "
    "for example C001 1 24 345.35.\n"
    "Attach photos with the line as the caption; albums are grouped "
    "into one shipment.\n"
    "For a counted intake use /receive_start CODE, send lines "
    "PALLETS BOXES GROSS and photos, then /receive_done."
)
