"""Correlation of chat items and photo bursts into shipments."""

import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from uuid import UUID

from cargo_relay.domain.shipments import EventKind
from cargo_relay.domain.submissions import (
    Attached,
    BurstBinding,
    BurstSettled,
    Committed,
    InboundItem,
    NoMatch,
    Observation,
    Orphan,
    PhotosUpdated,
)
from cargo_relay.services.clock import Clock, SystemClock
from cargo_relay.services.debounce import Debouncer
from cargo_relay.services.parsing import parse_shipment_line
from cargo_relay.services.shipments import ShipmentService
from cargo_relay.services.store import ExpiringStore

logger = logging.getLogger(__name__)

SettledHandler = Callable[[BurstSettled], Awaitable[None]]


@dataclass
class SubmissionCorrelator:
    """Turns standalone items and photo bursts into committed shipments.

    A burst is the set of items Telegram delivers for one multi-photo send,
    sharing a `media_group_id`. The captioned item opens the burst and
    commits the shipment; the other items only carry photos and are appended
    to it. Each arrival re-arms a short debounce timer and `on_settled` runs
    once the burst has been quiet for `debounce_seconds`.

    Burst bindings expire after `binding_ttl_seconds`. An expired key is
    retired and is never bound to another shipment, so a late straggler
    cannot attach itself to an unrelated burst.
    """

    shipment_service: ShipmentService
    debouncer: Debouncer
    on_settled: SettledHandler
    clock: Clock = field(default_factory=SystemClock)
    debounce_seconds: float = 1.5
    binding_ttl_seconds: float = 300
    retired_ttl_seconds: float = 86400
    _bindings: ExpiringStore[str, BurstBinding] = field(init=False, repr=False)
    _retired: ExpiringStore[str, bool] = field(init=False, repr=False)
    _burst_lock: threading.RLock = field(
        init=False, repr=False, default_factory=threading.RLock
    )

    def __post_init__(self) -> None:
        self._retired = ExpiringStore(self.retired_ttl_seconds, clock=self.clock)
        self._bindings = ExpiringStore(
            self.binding_ttl_seconds,
            clock=self.clock,
            on_expire=self._retire,
        )

    def observe(self, item: InboundItem) -> Observation:
        """Route an item to the matching observation by its burst key."""
        if item.burst_key is None:
            return self.observe_standalone(item)
        if parse_shipment_line(item.body) is not None:
            return self.observe_burst_opening(item.burst_key, item)
        return self.observe_burst_continuation(item.burst_key, item)

    def observe_standalone(self, item: InboundItem) -> Committed | NoMatch:
        """Commit a shipment from a single text line or captioned photo."""
        self._bindings.evict()
        line = parse_shipment_line(item.body)
        if line is None:
            return NoMatch()
        shipment_id = self.shipment_service.commit_line(
            line, actor_id=item.actor_id, photo=item.photo
        )
        return Committed(shipment_id=shipment_id, client_code=line.client_code)

    def observe_burst_opening(self, burst_key: str, item: InboundItem) -> Observation:
        """Commit a shipment for the captioned item of a burst."""
        self._bindings.evict()
        line = parse_shipment_line(item.body)
        if line is None:
            return NoMatch()
        with self._burst_lock:
            if self._bindings.get(burst_key) is not None:
                logger.info(
                    "Repeated burst caption ignored",
                    extra={"burst_key": burst_key, "actor_id": item.actor_id},
                )
                return self.observe_burst_continuation(burst_key, item)
            retired = self._retired.get(burst_key) is not None
            shipment_id = self.shipment_service.commit_line(
                line,
                actor_id=item.actor_id,
                photo=item.photo,
                burst_key=burst_key,
            )
            if retired:
                logger.warning(
                    "Retired burst key reused; shipment left unbound",
                    extra={"burst_key": burst_key, "shipment_id": str(shipment_id)},
                )
                return Committed(shipment_id=shipment_id, client_code=line.client_code)
            binding = BurstBinding(shipment_id=shipment_id, actor_id=item.actor_id)
            self._bindings.put(burst_key, binding)
            self._arm(burst_key, binding)
        return Committed(
            shipment_id=shipment_id, client_code=line.client_code, bound=True
        )

    def observe_burst_continuation(
        self, burst_key: str, item: InboundItem
    ) -> Attached | Orphan:
        """Append a follow-up photo to the shipment its burst opened."""
        self._bindings.evict()
        with self._burst_lock:
            binding = self._bindings.get(burst_key)
            if binding is None:
                logger.debug(
                    "Orphan burst item discarded",
                    extra={"burst_key": burst_key, "actor_id": item.actor_id},
                )
                return Orphan(burst_key=burst_key)
            if item.photo is not None:
                self.shipment_service.append_photo(binding.shipment_id, item.photo)
            self._arm(burst_key, binding)
        return Attached(shipment_id=binding.shipment_id)

    def observe_photo_update(
        self, item: InboundItem, shipment_id: UUID, replace: bool = False
    ) -> Observation:
        """Add photos to an existing shipment, or replace them.

        The item that claims the update may open a burst. Its key is then
        bound to the shipment like a captioned opening, later items of the
        burst arrive as continuations, and the burst settles as an update.
        """
        if item.photo is None:
            return NoMatch()
        self._bindings.evict()
        if item.burst_key is None:
            self._apply_photo_update(shipment_id, item, replace)
            return PhotosUpdated(shipment_id=shipment_id)
        burst_key = item.burst_key
        with self._burst_lock:
            if self._bindings.get(burst_key) is not None:
                return self.observe_burst_continuation(burst_key, item)
            self._apply_photo_update(shipment_id, item, replace)
            if self._retired.get(burst_key) is not None:
                logger.warning(
                    "Retired burst key reused; photo update left unbound",
                    extra={"burst_key": burst_key, "shipment_id": str(shipment_id)},
                )
                return PhotosUpdated(shipment_id=shipment_id)
            binding = BurstBinding(
                shipment_id=shipment_id,
                actor_id=item.actor_id,
                kind=EventKind.UPDATED,
            )
            self._bindings.put(burst_key, binding)
            self._arm(burst_key, binding)
        return PhotosUpdated(shipment_id=shipment_id, bound=True)

    def is_bound(self, burst_key: str) -> bool:
        """Return true while the burst key points at a shipment."""
        return self._bindings.get(burst_key) is not None

    def open_bursts(self) -> int:
        """Return the number of bindings currently held."""
        self._bindings.evict()
        return len(self._bindings)

    def _arm(self, burst_key: str, binding: BurstBinding) -> None:
        event = BurstSettled(
            shipment_id=binding.shipment_id,
            burst_key=burst_key,
            actor_id=binding.actor_id,
            kind=binding.kind,
        )

        async def settle() -> None:
            logger.info(
                "Burst settled",
                extra={"burst_key": burst_key, "shipment_id": str(event.shipment_id)},
            )
            await self.on_settled(event)

        self.debouncer.arm(burst_key, self.debounce_seconds, settle)

    def _apply_photo_update(
        self, shipment_id: UUID, item: InboundItem, replace: bool
    ) -> None:
        photos = [item.photo] if item.photo is not None else []
        if replace:
            self.shipment_service.replace_photos(shipment_id, photos)
        else:
            self.shipment_service.add_photos(shipment_id, photos)

    def _retire(self, burst_key: str, _binding: BurstBinding) -> None:
        self._retired.put(burst_key, True)
