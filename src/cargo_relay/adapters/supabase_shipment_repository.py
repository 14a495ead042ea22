"""Supabase-backed shipment repository."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from cargo_relay.domain.shipments import (
    ClientRecord,
    IntakeTotals,
    PhotoReference,
    ShipmentStatus,
    ShipmentSummary,
)
from cargo_relay.services.shipments import ShipmentRepository

_SHIPMENT_COLUMNS = (
    "id, client_id, pallets, boxes, gross_kg, source_text, media_group_id, "
    "status, created_at, updated_at, clients:client_id(id, client_code, full_name)"
)
_PHOTO_COLUMNS = (
    "telegram_file_id, telegram_file_unique_id, width, height, file_size, "
    "storage_path, created_at"
)


@dataclass
class SupabaseShipmentRepository(ShipmentRepository):
    """Supabase implementation for clients, shipments and photos."""

    client: Client

    def find_client(self, client_code: str) -> ClientRecord | None:
        """Return the client with this code, if present."""
        response = (
            self.client.table("clients")
            .select("id, client_code, full_name")
            .eq("client_code", client_code)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _client_from_row(response.data[0])

    def ensure_client(self, client_code: str) -> ClientRecord:
        """Return the client with this code, creating a bare one if needed."""
        existing = self.find_client(client_code)
        if existing is not None:
            return existing
        response = (
            self.client.table("clients")
            .insert({"client_code": client_code, "full_name": None})
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create client")
        return _client_from_row(response.data[0])

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
        """Insert a shipment row and return its id."""
        response = (
            self.client.table("shipments")
            .insert(
                {
                    "client_id": str(client_id),
                    "created_by_telegram_id": created_by,
                    "pallets": pallets,
                    "boxes": boxes,
                    "gross_kg": gross_kg,
                    "source_text": source_text,
                    "media_group_id": burst_key,
                    "status": status.value,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create shipment")
        return UUID(response.data[0]["id"])

    def append_photo(self, shipment_id: UUID, photo: PhotoReference) -> None:
        """Insert a shipment photo row."""
        response = (
            self.client.table("shipment_photos")
            .insert(
                {
                    "shipment_id": str(shipment_id),
                    "telegram_file_id": photo.file_id,
                    "telegram_file_unique_id": photo.file_unique_id,
                    "width": photo.width,
                    "height": photo.height,
                    "file_size": photo.file_size,
                    "storage_path": photo.storage_path,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to store shipment photo")

    def delete_photos(self, shipment_id: UUID) -> int:
        """Delete the photo rows of a shipment."""
        response = (
            self.client.table("shipment_photos")
            .delete()
            .eq("shipment_id", str(shipment_id))
            .execute()
        )
        return len(response.data or [])

    def load_summary(self, shipment_id: UUID) -> ShipmentSummary | None:
        """Return a shipment with its client and photos in arrival order."""
        response = (
            self.client.table("shipments")
            .select(_SHIPMENT_COLUMNS)
            .eq("id", str(shipment_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        photos_response = (
            self.client.table("shipment_photos")
            .select(_PHOTO_COLUMNS)
            .eq("shipment_id", str(shipment_id))
            .order("created_at")
            .execute()
        )
        client_row = row.get("clients")
        if isinstance(client_row, list):
            client_row = client_row[0] if client_row else None
        if not isinstance(client_row, dict):
            client_row = {"id": row["client_id"], "client_code": "?"}
        return ShipmentSummary(
            id=UUID(row["id"]),
            client=_client_from_row(client_row),
            pallets=row.get("pallets"),
            boxes=row.get("boxes"),
            gross_kg=float(row.get("gross_kg") or 0.0),
            status=ShipmentStatus(row.get("status") or ShipmentStatus.CONFIRMED.value),
            source_text=row.get("source_text"),
            burst_key=row.get("media_group_id"),
            created_at=_parse_timestamp(row.get("created_at")),
            updated_at=_parse_timestamp(row.get("updated_at")),
            photos=[_photo_from_row(photo) for photo in photos_response.data or []],
        )

    def update_shipment(  # noqa: PLR0913
        self,
        shipment_id: UUID,
        client_id: UUID,
        pallets: int,
        boxes: int,
        gross_kg: float,
        source_text: str,
    ) -> None:
        """Overwrite the editable shipment fields."""
        self.client.table("shipments").update(
            {
                "client_id": str(client_id),
                "pallets": pallets,
                "boxes": boxes,
                "gross_kg": gross_kg,
                "source_text": source_text,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            }
        ).eq("id", str(shipment_id)).execute()

    def add_intake_item(
        self,
        shipment_id: UUID,
        pallets: int,
        boxes: int,
        gross_kg: float,
        created_by: int | None = None,
    ) -> None:
        """Insert one intake line."""
        self.client.table("shipment_items").insert(
            {
                "shipment_id": str(shipment_id),
                "pallets": pallets,
                "boxes": boxes,
                "gross_kg": gross_kg,
                "created_by_telegram_id": created_by,
            }
        ).execute()

    def list_intake_items(self, shipment_id: UUID) -> list[tuple[int, int, float]]:
        """Return intake lines for a shipment."""
        response = (
            self.client.table("shipment_items")
            .select("pallets, boxes, gross_kg")
            .eq("shipment_id", str(shipment_id))
            .execute()
        )
        return [
            (
                int(row.get("pallets") or 0),
                int(row.get("boxes") or 0),
                float(row.get("gross_kg") or 0.0),
            )
            for row in response.data or []
        ]

    def finalize_shipment(self, shipment_id: UUID, totals: IntakeTotals) -> None:
        """Store intake totals and confirm the shipment."""
        now = datetime.now(tz=UTC).isoformat()
        self.client.table("shipments").update(
            {
                "pallets": totals.pallets,
                "boxes": totals.boxes,
                "gross_kg": totals.gross_kg,
                "status": ShipmentStatus.CONFIRMED.value,
                "received_at": now,
                "updated_at": now,
            }
        ).eq("id", str(shipment_id)).execute()


def _client_from_row(row: dict) -> ClientRecord:
    return ClientRecord(
        id=UUID(str(row["id"])),
        client_code=str(row.get("client_code") or ""),
        full_name=row.get("full_name"),
    )


def _photo_from_row(row: dict) -> PhotoReference:
    return PhotoReference(
        file_id=row["telegram_file_id"],
        file_unique_id=row.get("telegram_file_unique_id"),
        width=row.get("width"),
        height=row.get("height"),
        file_size=row.get("file_size"),
        storage_path=row.get("storage_path"),
    )


def _parse_timestamp(raw: object) -> datetime | None:
    if isinstance(raw, str) and raw:
        return datetime.fromisoformat(raw)
    return None
