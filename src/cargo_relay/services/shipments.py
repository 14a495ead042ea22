"""Shipment persistence interface and mutations."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from cargo_relay.domain.errors import ShipmentNotFoundError
from cargo_relay.domain.shipments import (
    ClientRecord,
    FieldChanges,
    IntakeTotals,
    PhotoReference,
    ShipmentLine,
    ShipmentStatus,
    ShipmentSummary,
)

logger = logging.getLogger(__name__)


class ShipmentRepository(Protocol):
    """Persistence interface for clients, shipments and their photos."""

    def find_client(self, client_code: str) -> ClientRecord | None:
        """Return the client with this code, if present."""

    def ensure_client(self, client_code: str) -> ClientRecord:
        """Return the client with this code, creating a bare one if needed."""

    def commit_shipment(  # noqa: PLR0913
        self,
        client_id: UUID,
        pallets: int,
        boxes: int,
        gross_kg: float,
        source_text: str,
        status: ShipmentStatus,
        burst_key: str | None = None,
        created_by: int | None = None,
    ) -> UUID:
        """Insert a shipment and return its id."""

    def append_photo(self, shipment_id: UUID, photo: PhotoReference) -> None:
        """Attach a photo to a shipment after the existing ones."""

    def delete_photos(self, shipment_id: UUID) -> int:
        """Remove every photo of a shipment and return how many were removed."""

    def load_summary(self, shipment_id: UUID) -> ShipmentSummary | None:
        """Return the shipment with client and photos, if present."""

    def update_shipment(  # noqa: PLR0913
        self,
        shipment_id: UUID,
        client_id: UUID,
        pallets: int,
        boxes: int,
        gross_kg: float,
        source_text: str,
    ) -> None:
        """Overwrite the editable fields of a shipment."""

    def add_intake_item(
        self,
        shipment_id: UUID,
        pallets: int,
        boxes: int,
        gross_kg: float,
        created_by: int | None = None,
    ) -> None:
        """Record one counted line of an intake session."""

    def list_intake_items(self, shipment_id: UUID) -> list[tuple[int, int, float]]:
        """Return `(pallets, boxes, gross_kg)` for every intake line."""

    def finalize_shipment(self, shipment_id: UUID, totals: IntakeTotals) -> None:
        """Store intake totals and mark the shipment confirmed."""


@dataclass
class ShipmentService:
    """Application service for creating and editing shipments."""

    repository: ShipmentRepository

    def commit_line(
        self,
        line: ShipmentLine,
        actor_id: int | None,
        photo: PhotoReference | None = None,
        burst_key: str | None = None,
    ) -> UUID:
        """Create a confirmed shipment from a parsed line."""
        client = self.repository.ensure_client(line.client_code)
        shipment_id = self.repository.commit_shipment(
            client_id=client.id,
            pallets=line.pallets,
            boxes=line.boxes,
            gross_kg=line.gross_kg,
            source_text=line.source_text,
            status=ShipmentStatus.CONFIRMED,
            burst_key=burst_key,
            created_by=actor_id,
        )
        if photo is not None:
            self.repository.append_photo(shipment_id, photo)
        logger.info(
            "Shipment committed",
            extra={"shipment_id": str(shipment_id), "client": line.client_code},
        )
        return shipment_id

    def append_photo(self, shipment_id: UUID, photo: PhotoReference) -> None:
        """Attach another photo to a shipment."""
        self.repository.append_photo(shipment_id, photo)

    def add_photos(self, shipment_id: UUID, photos: Iterable[PhotoReference]) -> int:
        """Append photos to an existing shipment in the order given."""
        self.get_summary(shipment_id)
        added = 0
        for photo in photos:
            self.repository.append_photo(shipment_id, photo)
            added += 1
        return added

    def replace_photos(
        self, shipment_id: UUID, photos: Iterable[PhotoReference]
    ) -> int:
        """Drop a shipment's photos, then attach the given ones."""
        removed = self.clear_photos(shipment_id)
        added = self.add_photos(shipment_id, photos)
        logger.info(
            "Shipment photos replaced",
            extra={"shipment_id": str(shipment_id), "removed": removed, "added": added},
        )
        return added

    def clear_photos(self, shipment_id: UUID) -> int:
        """Remove every photo of a shipment."""
        self.get_summary(shipment_id)
        return self.repository.delete_photos(shipment_id)

    def get_summary(self, shipment_id: UUID) -> ShipmentSummary:
        """Return a shipment summary or raise ShipmentNotFoundError."""
        summary = self.repository.load_summary(shipment_id)
        if summary is None:
            raise ShipmentNotFoundError(str(shipment_id))
        return summary

    def apply_edit(self, shipment_id: UUID, line: ShipmentLine) -> FieldChanges:
        """Replace a shipment's fields with a corrected line."""
        current = self.get_summary(shipment_id)
        client = self.repository.ensure_client(line.client_code)
        self.repository.update_shipment(
            shipment_id=shipment_id,
            client_id=client.id,
            pallets=line.pallets,
            boxes=line.boxes,
            gross_kg=line.gross_kg,
            source_text=line.source_text,
        )
        return diff_fields(current, line)


def diff_fields(current: ShipmentSummary, line: ShipmentLine) -> FieldChanges:
    """Describe which fields a corrected line changes."""
    return FieldChanges(
        client_code=(
            line.client_code
            if line.client_code != current.client.client_code
            else None
        ),
        pallets=line.pallets if line.pallets != current.pallets else None,
        boxes=line.boxes if line.boxes != current.boxes else None,
        gross_kg=(
            line.gross_kg
            if round(line.gross_kg, 2) != round(current.gross_kg, 2)
            else None
        ),
    )
