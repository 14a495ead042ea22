"""Rendering and best-effort fan-out of shipment notifications."""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from zoneinfo import ZoneInfo

from cargo_relay.adapters.telegram_client import TelegramClient
from cargo_relay.domain.roster import RecipientPolicy
from cargo_relay.domain.shipments import (
    EventKind,
    FieldChanges,
    ShipmentEvent,
    ShipmentSummary,
)
from cargo_relay.domain.submissions import BurstSettled
from cargo_relay.services.clock import Scheduler
from cargo_relay.services.parsing import format_weight
from cargo_relay.services.recipients import RecipientResolver
from cargo_relay.services.shipments import ShipmentService

logger = logging.getLogger(__name__)

# Telegram rejects media groups with more than ten items.
TELEGRAM_MAX_GROUP = 10
UNKNOWN_COUNT = "—"


class MessageShape(str, Enum):
    """How a notification is delivered."""

    TEXT = "text"
    PHOTO = "photo"
    GROUP = "group"


@dataclass(frozen=True)
class OutboundMessage:
    """Rendered notification, identical for every recipient."""

    shape: MessageShape
    text: str
    photos: tuple[str, ...] = ()

    def media_group(self) -> list[dict[str, object]]:
        """Build the sendMediaGroup payload with the caption on item one."""
        media: list[dict[str, object]] = []
        for index, file_id in enumerate(self.photos):
            item: dict[str, object] = {"type": "photo", "media": file_id}
            if index == 0:
                item["caption"] = self.text
            media.append(item)
        return media


@dataclass(frozen=True)
class DispatchReport:
    """Outcome of one fan-out."""

    delivered: tuple[int, ...] = ()
    failed: tuple[int, ...] = ()


def render_caption(
    summary: ShipmentSummary,
    event: ShipmentEvent,
    timezone: ZoneInfo | None = None,
) -> str:
    """Build the notification text for a shipment event."""
    updated = event.kind is EventKind.UPDATED
    lines = ["Shipment updated" if updated else "Shipment received"]
    name = f" ({summary.client.full_name})" if summary.client.full_name else ""
    lines.append(f"Client: {summary.client.client_code}{name}")
    lines.append(f"Pallets: {_count(summary.pallets)}")
    lines.append(f"Boxes: {_count(summary.boxes)}")
    lines.append(f"Gross: {format_weight(summary.gross_kg)} kg")
    if updated:
        if summary.updated_at is not None:
            lines.append(f"Updated: {_local_time(summary.updated_at, timezone)}")
        if event.changes is not None and not event.changes.is_empty():
            lines.append(f"Changes: {describe_changes(event.changes)}")
    elif summary.created_at is not None:
        lines.append(f"Created: {_local_time(summary.created_at, timezone)}")
    return "\n".join(lines)


def describe_changes(changes: FieldChanges) -> str:
    """List changed fields with their new values."""
    parts = []
    if changes.client_code is not None:
        parts.append(f"code → {changes.client_code}")
    if changes.pallets is not None:
        parts.append(f"pallets → {changes.pallets}")
    if changes.boxes is not None:
        parts.append(f"boxes → {changes.boxes}")
    if changes.gross_kg is not None:
        parts.append(f"gross → {format_weight(changes.gross_kg)}")
    return ", ".join(parts)


def render_message(
    summary: ShipmentSummary,
    event: ShipmentEvent,
    max_photos: int = TELEGRAM_MAX_GROUP,
    timezone: ZoneInfo | None = None,
) -> OutboundMessage:
    """Pick the message shape for a shipment and attach the caption."""
    caption = render_caption(summary, event, timezone)
    photos: tuple[str, ...] = ()
    if event.sends_photos:
        limit = max(0, min(max_photos, TELEGRAM_MAX_GROUP))
        photos = tuple(photo.file_id for photo in summary.photos[:limit])
    if not photos:
        return OutboundMessage(shape=MessageShape.TEXT, text=caption)
    if len(photos) == 1:
        return OutboundMessage(shape=MessageShape.PHOTO, text=caption, photos=photos)
    return OutboundMessage(shape=MessageShape.GROUP, text=caption, photos=photos)


@dataclass
class NotificationDispatcher:
    """Delivers one rendered message to each recipient independently."""

    telegram_client: TelegramClient
    timeout_seconds: float = 10

    async def dispatch(
        self, message: OutboundMessage, recipients: Iterable[int]
    ) -> DispatchReport:
        """Send to every recipient; failures are logged and skipped."""
        delivered: list[int] = []
        failed: list[int] = []
        for chat_id in sorted(set(recipients)):
            try:
                await asyncio.wait_for(
                    self._send(chat_id, message), timeout=self.timeout_seconds
                )
            except Exception:
                logger.warning(
                    "Notification delivery failed",
                    exc_info=True,
                    extra={"chat_id": chat_id, "shape": message.shape.value},
                )
                failed.append(chat_id)
                continue
            delivered.append(chat_id)
        return DispatchReport(delivered=tuple(delivered), failed=tuple(failed))

    async def _send(self, chat_id: int, message: OutboundMessage) -> None:
        if message.shape is MessageShape.TEXT:
            await self.telegram_client.send_message(chat_id=chat_id, text=message.text)
        elif message.shape is MessageShape.PHOTO:
            await self.telegram_client.send_photo(
                chat_id=chat_id, photo=message.photos[0], caption=message.text
            )
        else:
            await self.telegram_client.send_media_group(
                chat_id=chat_id, media=message.media_group()
            )


@dataclass
class ShipmentNotifier:
    """Announces committed shipment mutations to their audience."""

    shipment_service: ShipmentService
    resolver: RecipientResolver
    dispatcher: NotificationDispatcher
    default_policy: RecipientPolicy = field(default_factory=RecipientPolicy)
    max_group_photos: int = TELEGRAM_MAX_GROUP
    display_timezone: str | None = None
    scheduler: Scheduler | None = None

    async def notify(
        self, event: ShipmentEvent, policy: RecipientPolicy | None = None
    ) -> DispatchReport:
        """Resolve recipients, render the event and deliver it."""
        summary = self.shipment_service.get_summary(event.shipment_id)
        audience = (policy or self.default_policy).without(event.actor_id)
        recipients = self.resolver.resolve(summary.client.id, audience)
        if not recipients:
            logger.info(
                "No recipients for shipment event",
                extra={"shipment_id": str(event.shipment_id), "kind": event.kind.value},
            )
            return DispatchReport()
        timezone = ZoneInfo(self.display_timezone) if self.display_timezone else None
        message = render_message(summary, event, self.max_group_photos, timezone)
        report = await self.dispatcher.dispatch(message, recipients)
        logger.info(
            "Shipment event dispatched",
            extra={
                "shipment_id": str(event.shipment_id),
                "kind": event.kind.value,
                "delivered": len(report.delivered),
                "failed": len(report.failed),
            },
        )
        return report

    def publish(
        self, event: ShipmentEvent, policy: RecipientPolicy | None = None
    ) -> None:
        """Queue delivery of an event on the scheduler and return at once."""
        if self.scheduler is None:
            raise RuntimeError("ShipmentNotifier.publish needs a scheduler")

        async def deliver() -> None:
            try:
                await self.notify(event, policy)
            except Exception:
                logger.exception(
                    "Failed to notify shipment event",
                    extra={
                        "shipment_id": str(event.shipment_id),
                        "kind": event.kind.value,
                    },
                )

        self.scheduler.call_later(0, deliver)

    async def on_burst_settled(self, settled: BurstSettled) -> None:
        """Announce a shipment once its photo burst has settled."""
        await self.notify(
            ShipmentEvent(
                kind=settled.kind,
                shipment_id=settled.shipment_id,
                actor_id=settled.actor_id,
                with_photos=True,
            )
        )


def _count(value: int | None) -> str:
    return UNKNOWN_COUNT if value is None else str(value)


def _local_time(value: datetime, timezone: ZoneInfo | None) -> str:
    local = value.astimezone(timezone) if timezone is not None else value
    return local.strftime("%Y-%m-%d %H:%M")
