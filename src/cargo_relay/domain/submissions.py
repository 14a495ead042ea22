"""Inbound items and correlation outcomes."""

from dataclasses import dataclass
from uuid import UUID

from cargo_relay.domain.shipments import EventKind, PhotoReference


@dataclass(frozen=True)
class InboundItem:
    """One chat item offered to the correlators."""

    actor_id: int
    chat_id: int
    message_id: int
    burst_key: str | None = None
    caption: str | None = None
    text: str | None = None
    photo: PhotoReference | None = None
    reply_to_prompt_id: str | None = None

    @property
    def body(self) -> str | None:
        """Caption for photos, text for plain messages."""
        return self.caption if self.caption is not None else self.text


@dataclass(frozen=True)
class Committed:
    """A new shipment was committed for the item."""

    shipment_id: UUID
    client_code: str
    bound: bool = False


@dataclass(frozen=True)
class Attached:
    """The item's photo was appended to an existing burst shipment."""

    shipment_id: UUID


@dataclass(frozen=True)
class PhotosUpdated:
    """Photos of an existing shipment were added or replaced."""

    shipment_id: UUID
    bound: bool = False


@dataclass(frozen=True)
class NoMatch:
    """The item did not parse as a shipment line."""


@dataclass(frozen=True)
class Orphan:
    """A burst continuation with no live opening."""

    burst_key: str


Observation = Committed | Attached | PhotosUpdated | NoMatch | Orphan


@dataclass(frozen=True)
class BurstSettled:
    """A burst has been quiet for the debounce window."""

    shipment_id: UUID
    burst_key: str
    actor_id: int | None = None
    kind: EventKind = EventKind.CREATED


@dataclass(frozen=True)
class BurstBinding:
    """Shipment a live burst key points at."""

    shipment_id: UUID
    actor_id: int | None = None
    kind: EventKind = EventKind.CREATED
