"""Domain models for prompts awaiting a free-form reply."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class PromptKind(str, Enum):
    """Operation a reply to the prompt will complete."""

    EDIT_SHIPMENT = "edit_shipment"
    START_INTAKE = "start_intake"
    ADD_PHOTOS = "add_photos"
    REPLACE_PHOTOS = "replace_photos"


@dataclass(frozen=True)
class PendingPrompt:
    """Outstanding request for free-form input from one actor."""

    prompt_id: str
    kind: PromptKind
    actor_id: int
    created_at: datetime
    expires_at: datetime
    payload: dict[str, str] = field(default_factory=dict)


def prompt_id_for(chat_id: int, message_id: int) -> str:
    """Build the opaque prompt id from Telegram's reply linkage."""
    return f"{chat_id}:{message_id}"
