"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from cargo_relay.adapters.supabase_roster_repository import SupabaseRosterRepository
from cargo_relay.adapters.supabase_shipment_repository import (
    SupabaseShipmentRepository,
)
from cargo_relay.adapters.telegram_client import HttpxTelegramClient, TelegramClient
from cargo_relay.config import Settings
from cargo_relay.services.access import AccessService
from cargo_relay.services.clock import AsyncioScheduler, Clock, Scheduler, SystemClock
from cargo_relay.services.debounce import Debouncer
from cargo_relay.services.intake import IntakeService
from cargo_relay.services.notifications import NotificationDispatcher, ShipmentNotifier
from cargo_relay.services.recipients import RecipientResolver, RosterRepository
from cargo_relay.services.replies import ReplyCorrelator
from cargo_relay.services.shipments import ShipmentRepository, ShipmentService
from cargo_relay.services.submissions import SubmissionCorrelator


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    telegram_client: TelegramClient
    shipment_service: ShipmentService
    access_service: AccessService
    submission_correlator: SubmissionCorrelator
    reply_correlator: ReplyCorrelator
    intake_service: IntakeService
    notifier: ShipmentNotifier
    close_resources: Callable[[], Awaitable[None]]


def assemble_container(  # noqa: PLR0913
    settings: Settings,
    telegram_client: TelegramClient,
    shipment_repository: ShipmentRepository,
    roster_repository: RosterRepository,
    clock: Clock,
    scheduler: Scheduler,
    close_resources: Callable[[], Awaitable[None]],
) -> AppContainer:
    """Wire services around already-built adapters."""
    shipment_service = ShipmentService(shipment_repository)
    notifier = ShipmentNotifier(
        shipment_service=shipment_service,
        resolver=RecipientResolver(roster_repository),
        dispatcher=NotificationDispatcher(
            telegram_client=telegram_client,
            timeout_seconds=settings.send_timeout_seconds,
        ),
        max_group_photos=settings.max_group_photos,
        display_timezone=settings.display_timezone,
        scheduler=scheduler,
    )
    submission_correlator = SubmissionCorrelator(
        shipment_service=shipment_service,
        debouncer=Debouncer(scheduler),
        on_settled=notifier.on_burst_settled,
        clock=clock,
        debounce_seconds=settings.burst_debounce_seconds,
        binding_ttl_seconds=settings.burst_binding_ttl_seconds,
        retired_ttl_seconds=settings.retired_burst_ttl_seconds,
    )
    return AppContainer(
        settings=settings,
        telegram_client=telegram_client,
        shipment_service=shipment_service,
        access_service=AccessService(roster_repository),
        submission_correlator=submission_correlator,
        reply_correlator=ReplyCorrelator(
            clock=clock, ttl_seconds=settings.prompt_ttl_seconds
        ),
        intake_service=IntakeService(
            repository=shipment_repository,
            clock=clock,
            ttl_seconds=settings.intake_session_ttl_seconds,
        ),
        notifier=notifier,
        close_resources=close_resources,
    )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    telegram_client = HttpxTelegramClient.create(
        resolved_settings.telegram_bot_token,
        timeout=resolved_settings.send_timeout_seconds,
    )
    scheduler = AsyncioScheduler()

    async def close_resources() -> None:
        await scheduler.drain()
        await telegram_client.close()

    return assemble_container(
        settings=resolved_settings,
        telegram_client=telegram_client,
        shipment_repository=SupabaseShipmentRepository(supabase_client),
        roster_repository=SupabaseRosterRepository(supabase_client),
        clock=SystemClock(),
        scheduler=scheduler,
        close_resources=close_resources,
    )
