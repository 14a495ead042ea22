"""Multi-message intake sessions."""

from dataclasses import dataclass, field
from uuid import UUID

from cargo_relay.domain.errors import NoActiveIntakeError, UnknownClientError
from cargo_relay.domain.shipments import IntakeTotals, PhotoReference, ShipmentStatus
from cargo_relay.services.clock import Clock, SystemClock
from cargo_relay.services.parsing import normalize_client_code
from cargo_relay.services.shipments import ShipmentRepository
from cargo_relay.services.store import ExpiringStore


@dataclass(frozen=True)
class IntakeSession:
    """Draft shipment an operator is filling in line by line."""

    shipment_id: UUID
    client_code: str


@dataclass
class IntakeService:
    """Collects counted lines and photos into one draft shipment."""

    repository: ShipmentRepository
    clock: Clock = field(default_factory=SystemClock)
    ttl_seconds: float = 43200
    _sessions: ExpiringStore[int, IntakeSession] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._sessions = ExpiringStore(self.ttl_seconds, clock=self.clock)

    def start(
        self, actor_id: int, client_code: str, reference: str | None = None
    ) -> IntakeSession:
        """Open a draft shipment for an existing client."""
        code = normalize_client_code(client_code)
        client = self.repository.find_client(code)
        if client is None:
            raise UnknownClientError(code)
        shipment_id = self.repository.commit_shipment(
            client_id=client.id,
            pallets=0,
            boxes=0,
            gross_kg=0.0,
            source_text=reference or "intake session",
            status=ShipmentStatus.DRAFT,
            created_by=actor_id,
        )
        session = IntakeSession(shipment_id=shipment_id, client_code=client.client_code)
        self._sessions.put(actor_id, session)
        return session

    def active(self, actor_id: int) -> IntakeSession | None:
        """Return the actor's open session, if any."""
        return self._sessions.get(actor_id)

    def add_item(
        self, actor_id: int, pallets: int, boxes: int, gross_kg: float
    ) -> IntakeSession:
        """Record one counted line."""
        session = self._require(actor_id)
        self.repository.add_intake_item(
            session.shipment_id, pallets, boxes, gross_kg, created_by=actor_id
        )
        return session

    def add_photo(self, actor_id: int, photo: PhotoReference) -> IntakeSession:
        """Attach a photo to the draft shipment."""
        session = self._require(actor_id)
        self.repository.append_photo(session.shipment_id, photo)
        return session

    def finish(self, actor_id: int) -> tuple[IntakeSession, IntakeTotals]:
        """Sum the counted lines and confirm the shipment."""
        session = self._require(actor_id)
        items = self.repository.list_intake_items(session.shipment_id)
        totals = IntakeTotals(
            pallets=sum(pallets for pallets, _, _ in items),
            boxes=sum(boxes for _, boxes, _ in items),
            gross_kg=round(sum(gross for _, _, gross in items), 2),
        )
        self.repository.finalize_shipment(session.shipment_id, totals)
        self._sessions.discard(actor_id)
        return session, totals

    def abandon(self, actor_id: int) -> bool:
        """Drop the actor's session without confirming it."""
        return self._sessions.discard(actor_id)

    def active_count(self) -> int:
        """Return the number of open sessions."""
        self._sessions.evict()
        return len(self._sessions)

    def _require(self, actor_id: int) -> IntakeSession:
        session = self._sessions.get(actor_id)
        if session is None:
            raise NoActiveIntakeError(actor_id)
        return session
