"""Shared test fixtures."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from cargo_relay.adapters.telegram_client import TelegramApiError, TelegramClient
from cargo_relay.config import Settings
from cargo_relay.containers import AppContainer, assemble_container
from cargo_relay.domain.roster import ELEVATED_ROLES, Role, RosterMember
from cargo_relay.domain.shipments import (
    ClientRecord,
    IntakeTotals,
    PhotoReference,
    ShipmentStatus,
    ShipmentSummary,
)
from cargo_relay.services.clock import AsyncCallback, Clock, Scheduler
from cargo_relay.services.recipients import RosterRepository
from cargo_relay.services.shipments import ShipmentRepository

MANAGER_ID = 1001
OTHER_MANAGER_ID = 1002
CLIENT_USER_ID = 2001


@dataclass
class ManualClock(Clock):
    """Clock that only moves when a test advances it."""

    current: datetime = field(
        default_factory=lambda: datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
    )

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@dataclass
class ManualTimer:
    """Handle returned by ManualScheduler."""

    due: datetime
    callback: AsyncCallback
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler(Scheduler):
    """Scheduler that runs due callbacks when a test advances time."""

    clock: ManualClock
    timers: list[ManualTimer] = field(default_factory=list)

    def call_later(self, delay: float, callback: AsyncCallback) -> ManualTimer:
        timer = ManualTimer(
            due=self.clock.now() + timedelta(seconds=delay), callback=callback
        )
        self.timers.append(timer)
        return timer

    def pending(self) -> list[ManualTimer]:
        return [
            timer for timer in self.timers if not timer.cancelled and not timer.fired
        ]

    async def advance(self, seconds: float) -> None:
        self.clock.advance(seconds)
        due = sorted(
            (timer for timer in self.pending() if timer.due <= self.clock.now()),
            key=lambda timer: timer.due,
        )
        for timer in due:
            if timer.cancelled:
                continue
            timer.fired = True
            await timer.callback()


@dataclass
class FakeTelegramClient(TelegramClient):
    """Fake Telegram client that records outgoing calls."""

    messages: list[tuple[int, str]] = field(default_factory=list)
    markups: list[dict | None] = field(default_factory=list)
    photos: list[tuple[int, str, str | None]] = field(default_factory=list)
    groups: list[tuple[int, list[dict[str, object]]]] = field(default_factory=list)
    callbacks: list[tuple[str, str | None]] = field(default_factory=list)
    commands: list[dict[str, str]] | None = None
    menu_button: dict[str, object] | None = None
    unreachable: set[int] = field(default_factory=set)
    next_message_id: int = 500

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict | None = None
    ) -> int:
        self._check(chat_id)
        self.messages.append((chat_id, text))
        self.markups.append(reply_markup)
        return self._allocate()

    async def send_photo(
        self,
        chat_id: int,
        photo: str,
        caption: str | None = None,
        reply_markup: dict | None = None,
    ) -> int:
        self._check(chat_id)
        self.photos.append((chat_id, photo, caption))
        return self._allocate()

    async def send_media_group(
        self, chat_id: int, media: list[dict[str, object]]
    ) -> list[int]:
        self._check(chat_id)
        self.groups.append((chat_id, media))
        return [self._allocate() for _ in media]

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None
    ) -> None:
        self.callbacks.append((callback_query_id, text))

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        self.commands = commands

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        self.menu_button = menu_button

    def sent_to(self, chat_id: int) -> list[str]:
        return [text for target, text in self.messages if target == chat_id]

    def _check(self, chat_id: int) -> None:
        if chat_id in self.unreachable:
            raise TelegramApiError("Forbidden: bot was blocked by the user")

    def _allocate(self) -> int:
        self.next_message_id += 1
        return self.next_message_id


@dataclass
class InMemoryShipmentRepository(ShipmentRepository):
    """In-memory shipment repository for tests."""

    clock: ManualClock = field(default_factory=ManualClock)
    clients: dict[str, ClientRecord] = field(default_factory=dict)
    shipments: dict[UUID, dict[str, object]] = field(default_factory=dict)
    photos: dict[UUID, list[PhotoReference]] = field(default_factory=dict)
    items: dict[UUID, list[tuple[int, int, float]]] = field(default_factory=dict)
    fail_photos: bool = False
    fail_updates: bool = False

    def add_client(self, client_code: str, full_name: str | None = None) -> ClientRecord:
        client = ClientRecord(id=uuid4(), client_code=client_code, full_name=full_name)
        self.clients[client_code] = client
        return client

    def find_client(self, client_code: str) -> ClientRecord | None:
        return self.clients.get(client_code)

    def ensure_client(self, client_code: str) -> ClientRecord:
        return self.clients.get(client_code) or self.add_client(client_code)

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
        shipment_id = uuid4()
        self.shipments[shipment_id] = {
            "client_id": client_id,
            "pallets": pallets,
            "boxes": boxes,
            "gross_kg": gross_kg,
            "source_text": source_text,
            "status": status,
            "burst_key": burst_key,
            "created_by": created_by,
            "created_at": self.clock.now(),
            "updated_at": None,
        }
        self.photos[shipment_id] = []
        return shipment_id

    def append_photo(self, shipment_id: UUID, photo: PhotoReference) -> None:
        if self.fail_photos:
            raise RuntimeError("storage unavailable")
        self.photos.setdefault(shipment_id, []).append(photo)

    def delete_photos(self, shipment_id: UUID) -> int:
        removed = self.photos.get(shipment_id, [])
        self.photos[shipment_id] = []
        return len(removed)

    def load_summary(self, shipment_id: UUID) -> ShipmentSummary | None:
        row = self.shipments.get(shipment_id)
        if row is None:
            return None
        client = next(
            client for client in self.clients.values() if client.id == row["client_id"]
        )
        return ShipmentSummary(
            id=shipment_id,
            client=client,
            pallets=row["pallets"],
            boxes=row["boxes"],
            gross_kg=row["gross_kg"],
            status=row["status"],
            source_text=row["source_text"],
            burst_key=row["burst_key"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            photos=list(self.photos.get(shipment_id, [])),
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
        if self.fail_updates:
            raise RuntimeError("database unavailable")
        self.shipments[shipment_id].update(
            {
                "client_id": client_id,
                "pallets": pallets,
                "boxes": boxes,
                "gross_kg": gross_kg,
                "source_text": source_text,
                "updated_at": self.clock.now(),
            }
        )

    def add_intake_item(
        self,
        shipment_id: UUID,
        pallets: int,
        boxes: int,
        gross_kg: float,
        created_by: int | None = None,
    ) -> None:
        self.items.setdefault(shipment_id, []).append((pallets, boxes, gross_kg))

    def list_intake_items(self, shipment_id: UUID) -> list[tuple[int, int, float]]:
        return list(self.items.get(shipment_id, []))

    def finalize_shipment(self, shipment_id: UUID, totals: IntakeTotals) -> None:
        self.shipments[shipment_id].update(
            {
                "pallets": totals.pallets,
                "boxes": totals.boxes,
                "gross_kg": totals.gross_kg,
                "status": ShipmentStatus.CONFIRMED,
            }
        )


@dataclass
class InMemoryRosterRepository(RosterRepository):
    """In-memory roster repository for tests."""

    members: dict[int, RosterMember] = field(default_factory=dict)
    client_links: dict[UUID, set[int]] = field(default_factory=dict)
    manager_links: dict[UUID, set[int]] = field(default_factory=dict)
    failing: set[str] = field(default_factory=set)

    def add(
        self,
        telegram_id: int,
        role: Role = Role.USER,
        verified: bool = True,
        client_id: UUID | None = None,
        manages: UUID | None = None,
    ) -> RosterMember:
        member = RosterMember(telegram_id=telegram_id, role=role, verified=verified)
        self.members[telegram_id] = member
        if client_id is not None:
            self.client_links.setdefault(client_id, set()).add(telegram_id)
        if manages is not None:
            self.manager_links.setdefault(manages, set()).add(telegram_id)
        return member

    def get_member(self, telegram_id: int) -> RosterMember | None:
        return self.members.get(telegram_id)

    def roster_for_client(self, client_id: UUID) -> list[RosterMember]:
        self._maybe_fail("client")
        return [self.members[i] for i in sorted(self.client_links.get(client_id, set()))]

    def managers_all(self) -> list[RosterMember]:
        self._maybe_fail("managers")
        return [
            member
            for member in self.members.values()
            if member.verified and member.role in ELEVATED_ROLES
        ]

    def managers_for_client(self, client_id: UUID) -> list[RosterMember]:
        self._maybe_fail("managers")
        return [
            self.members[i] for i in sorted(self.manager_links.get(client_id, set()))
        ]

    def _maybe_fail(self, side: str) -> None:
        if side in self.failing:
            raise RuntimeError(f"{side} roster unavailable")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        telegram_bot_token="test-token",
        supabase_url="https://example.supabase.co",
        supabase_service_key="header.payload.signature",
        admin_token="admin-token",
        environment="test",
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def scheduler(clock: ManualClock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
def telegram_client() -> FakeTelegramClient:
    return FakeTelegramClient()


@pytest.fixture
def shipment_repository(clock: ManualClock) -> InMemoryShipmentRepository:
    repository = InMemoryShipmentRepository(clock=clock)
    repository.add_client("C001", "Cargo One")
    return repository


@pytest.fixture
def roster_repository(
    shipment_repository: InMemoryShipmentRepository,
) -> InMemoryRosterRepository:
    roster = InMemoryRosterRepository()
    roster.add(MANAGER_ID, Role.MANAGER)
    roster.add(OTHER_MANAGER_ID, Role.ADMIN)
    roster.add(CLIENT_USER_ID, client_id=shipment_repository.clients["C001"].id)
    return roster


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    telegram_client: FakeTelegramClient,
    shipment_repository: InMemoryShipmentRepository,
    roster_repository: InMemoryRosterRepository,
    clock: ManualClock,
    scheduler: ManualScheduler,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return assemble_container(
        settings=settings,
        telegram_client=telegram_client,
        shipment_repository=shipment_repository,
        roster_repository=roster_repository,
        clock=clock,
        scheduler=scheduler,
        close_resources=close_resources,
    )
