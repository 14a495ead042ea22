"""Domain models for shipments."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID


class ShipmentStatus(str, Enum):
    """Lifecycle status of a shipment."""

    DRAFT = "draft"
    CONFIRMED = "confirmed"


@dataclass(frozen=True)
class ShipmentLine:
    """Structured fields parsed from a `CODE PALLETS BOXES GROSS` line."""

    client_code: str
    pallets: int
    boxes: int
    gross_kg: float
    source_text: str


@dataclass(frozen=True)
class PhotoReference:
    """Transport reference to one captured photo."""

    file_id: str
    file_unique_id: str | None = None
    width: int | None = None
    height: int | None = None
    file_size: int | None = None
    storage_path: str | None = None


@dataclass(frozen=True)
class ClientRecord:
    """Client account that shipments belong to."""

    id: UUID
    client_code: str
    full_name: str | None = None


@dataclass(frozen=True)
class ShipmentSummary:
    """Shipment fields joined with client identity and photos."""

    id: UUID
    client: ClientRecord
    pallets: int | None
    boxes: int | None
    gross_kg: float
    status: ShipmentStatus
    source_text: str | None = None
    burst_key: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    photos: list[PhotoReference] = field(default_factory=list)


@dataclass(frozen=True)
class FieldChanges:
    """New values for the fields an edit touched."""

    client_code: str | None = None
    pallets: int | None = None
    boxes: int | None = None
    gross_kg: float | None = None

    def is_empty(self) -> bool:
        """Return true when no field changed."""
        return (
            self.client_code is None
            and self.pallets is None
            and self.boxes is None
            and self.gross_kg is None
        )


class EventKind(str, Enum):
    """Kind of shipment mutation being announced."""

    CREATED = "created"
    UPDATED = "updated"


@dataclass(frozen=True)
class ShipmentEvent:
    """A committed shipment mutation to announce."""

    kind: EventKind
    shipment_id: UUID
    actor_id: int | None = None
    changes: FieldChanges | None = None
    with_photos: bool | None = None

    @property
    def sends_photos(self) -> bool:
        """Photos go out with created events unless overridden."""
        if self.with_photos is not None:
            return self.with_photos
        return self.kind is EventKind.CREATED


@dataclass(frozen=True)
class IntakeTotals:
    """Aggregated counts for a finished intake session."""

    pallets: int
    boxes: int
    gross_kg: float
