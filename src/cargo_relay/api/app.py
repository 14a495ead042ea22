"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI, Request

from cargo_relay.api.admin import router as admin_router
from cargo_relay.api.telegram_models import (
    TelegramCallbackQuery,
    TelegramMessage,
    TelegramPhotoSize,
    TelegramUpdate,
)
from cargo_relay.app_logging import configure_logging
from cargo_relay.config import parse_allowed_user_ids
from cargo_relay.containers import AppContainer
from cargo_relay.domain.errors import (
    NoActiveIntakeError,
    ShipmentNotFoundError,
    UnknownClientError,
)
from cargo_relay.domain.prompts import PendingPrompt, PromptKind, prompt_id_for
from cargo_relay.domain.shipments import (
    EventKind,
    PhotoReference,
    ShipmentEvent,
    ShipmentSummary,
)
from cargo_relay.domain.submissions import Committed, InboundItem, PhotosUpdated
from cargo_relay.services.parsing import (
    format_weight,
    parse_intake_item,
    parse_shipment_line,
)
from cargo_relay.telegram_commands import (
    CHAT_MENU_BUTTON,
    HELP_TEXT,
    BotCommand,
    match_command,
    telegram_commands,
)

logger = logging.getLogger(__name__)

FORMAT_HINT = (
    "Format not recognized. Send CODE PALLETS BOXES GROSS, "
    "for example C001 1 24 345.35."
)
CANCEL_WORDS = {"cancel", "отмена"}
PHOTO_PROMPTS = {PromptKind.ADD_PHOTOS, PromptKind.REPLACE_PHOTOS}
SHIPMENT_ACTIONS = {
    "edit",
    "add_photos",
    "reup_photos",
    "del_photos",
    "del_photos_confirm",
    "del_photos_cancel",
}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    allowed_user_ids = parse_allowed_user_ids(
        container.settings.telegram_allowed_user_ids
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await app.state.container.telegram_client.set_my_commands(
                telegram_commands()
            )
            await app.state.container.telegram_client.set_chat_menu_button(
                CHAT_MENU_BUTTON
            )
        except Exception:
            logger.exception("Failed to sync Telegram bot commands")
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/telegram/webhook")
    async def telegram_webhook(update: TelegramUpdate, request: Request) -> dict[str, str]:
        """Handle Telegram webhook updates."""
        state_container: AppContainer = request.app.state.container
        user_id = _extract_user_id(update)
        if user_id is not None and not _is_user_allowed(user_id, allowed_user_ids):
            if update.callback_query:
                await state_container.telegram_client.answer_callback_query(
                    update.callback_query.id,
                    text="Not authorized.",
                )
            elif update.message:
                await state_container.telegram_client.send_message(
                    chat_id=update.message.chat.id,
                    text="This bot is private.",
                )
            return {"status": "ok"}
        if update.callback_query:
            await _handle_callback(state_container, update.callback_query)
        elif update.message:
            await _handle_message(state_container, update.message)
        return {"status": "ok"}

    return app


async def _handle_callback(
    container: AppContainer, callback: TelegramCallbackQuery
) -> None:
    parsed = _parse_shipment_callback(callback.data or "")
    if parsed is not None and parsed[0] == "del_photos_cancel":
        await container.telegram_client.answer_callback_query(
            callback.id, text="Cancelled."
        )
        return
    await container.telegram_client.answer_callback_query(callback.id)
    if parsed is None or callback.message is None:
        return
    action, shipment_id = parsed
    chat_id = callback.message.chat.id
    actor_id = callback.from_user.id
    if not container.access_service.can_manage(actor_id):
        await container.telegram_client.send_message(
            chat_id=chat_id, text="Not authorized."
        )
        return
    try:
        summary = container.shipment_service.get_summary(shipment_id)
    except ShipmentNotFoundError:
        await container.telegram_client.send_message(
            chat_id=chat_id, text="Shipment not found or deleted."
        )
        return
    if action == "edit":
        await _prompt_edit(container, chat_id, actor_id, summary)
    elif action in {"add_photos", "reup_photos"}:
        await _prompt_photos(
            container, chat_id, actor_id, summary, replace=action == "reup_photos"
        )
    elif action == "del_photos":
        await _confirm_photo_delete(container, chat_id, summary)
    else:
        await _delete_photos(container, chat_id, actor_id, summary)


async def _prompt_edit(
    container: AppContainer, chat_id: int, actor_id: int, summary: ShipmentSummary
) -> None:
    current = (
        f"{summary.client.client_code} {summary.pallets} {summary.boxes} "
        f"{format_weight(summary.gross_kg)}"
    )
    message_id = await container.telegram_client.send_message(
        chat_id=chat_id,
        text=(
            "Reply with the corrected line: CODE PALLETS BOXES GROSS.\n"
            f"Current: {current}\n"
            "Reply cancel to abort."
        ),
        reply_markup=_force_reply(current),
    )
    container.reply_correlator.register(
        prompt_id_for(chat_id, message_id),
        PromptKind.EDIT_SHIPMENT,
        actor_id=actor_id,
        payload={"shipment_id": str(summary.id)},
    )


async def _prompt_photos(
    container: AppContainer,
    chat_id: int,
    actor_id: int,
    summary: ShipmentSummary,
    replace: bool,
) -> None:
    code = summary.client.client_code
    if replace:
        text = (
            f"Reply with the new photos for {code}. "
            f"They replace the current {len(summary.photos)}."
        )
    else:
        text = f"Reply with the photos to add to {code}."
    message_id = await container.telegram_client.send_message(
        chat_id=chat_id,
        text=f"{text}\nReply cancel to abort.",
        reply_markup=_force_reply("Attach photos"),
    )
    container.reply_correlator.register(
        prompt_id_for(chat_id, message_id),
        PromptKind.REPLACE_PHOTOS if replace else PromptKind.ADD_PHOTOS,
        actor_id=actor_id,
        payload={"shipment_id": str(summary.id)},
    )


async def _confirm_photo_delete(
    container: AppContainer, chat_id: int, summary: ShipmentSummary
) -> None:
    code = summary.client.client_code
    if not summary.photos:
        await container.telegram_client.send_message(
            chat_id=chat_id, text=f"The {code} shipment has no photos."
        )
        return
    await container.telegram_client.send_message(
        chat_id=chat_id,
        text=(
            f"Delete all photos of the {code} shipment ({len(summary.photos)} in "
            "total)? This can't be undone."
        ),
        reply_markup={
            "inline_keyboard": [
                [
                    {
                        "text": "Yes, delete",
                        "callback_data": f"sh:del_photos_confirm:{summary.id}",
                    }
                ],
                [
                    {
                        "text": "Cancel",
                        "callback_data": f"sh:del_photos_cancel:{summary.id}",
                    }
                ],
            ]
        },
    )


async def _delete_photos(
    container: AppContainer, chat_id: int, actor_id: int, summary: ShipmentSummary
) -> None:
    try:
        removed = container.shipment_service.clear_photos(summary.id)
    except Exception as exc:
        logger.exception(
            "Failed to delete shipment photos", extra={"shipment_id": str(summary.id)}
        )
        await container.telegram_client.send_message(
            chat_id=chat_id,
            text=_failure_text(container, exc, "Couldn't delete the photos. Try again."),
        )
        return
    if removed == 0:
        await container.telegram_client.send_message(
            chat_id=chat_id, text="No photos to delete."
        )
        return
    await container.telegram_client.send_message(
        chat_id=chat_id,
        text="All photos deleted.",
        reply_markup=_shipment_keyboard(summary.id),
    )
    container.notifier.publish(
        ShipmentEvent(
            kind=EventKind.UPDATED,
            shipment_id=summary.id,
            actor_id=actor_id,
            with_photos=False,
        )
    )


async def _handle_message(container: AppContainer, message: TelegramMessage) -> None:
    command = match_command(message.text)
    if not container.access_service.can_manage(message.from_user.id):
        text = (
            HELP_TEXT
            if command and command[0] in {BotCommand.START, BotCommand.HELP}
            else "Not authorized."
        )
        await container.telegram_client.send_message(
            chat_id=message.chat.id, text=text
        )
        return

    item = _inbound_item(message)
    if item.reply_to_prompt_id is not None and not _continues_burst(container, item):
        prompt = container.reply_correlator.peek(item.reply_to_prompt_id)
        if prompt is not None and prompt.actor_id == item.actor_id:
            await _handle_prompt_reply(container, message, prompt)
            return
        if prompt is None and container.reply_correlator.is_spent(
            item.reply_to_prompt_id
        ):
            await container.telegram_client.send_message(
                chat_id=message.chat.id,
                text="That request has expired or was already applied.",
            )
            return

    if command is not None:
        await _handle_command(container, message, *command)
    elif item.photo is not None:
        await _handle_photo(container, message, item)
    elif message.text:
        await _handle_text(container, message, item)


async def _handle_prompt_reply(
    container: AppContainer, message: TelegramMessage, prompt: PendingPrompt
) -> None:
    chat_id = message.chat.id
    text = (message.text or "").strip()
    if text.lower() in CANCEL_WORDS:
        container.reply_correlator.cancel(prompt.prompt_id)
        await container.telegram_client.send_message(chat_id=chat_id, text="Cancelled.")
        return

    if prompt.kind in PHOTO_PROMPTS:
        await _handle_photo_reply(container, message, prompt)
        return

    if prompt.kind is PromptKind.START_INTAKE:
        code, _, reference = text.partition(" ")
        if not code:
            await container.telegram_client.send_message(
                chat_id=chat_id, text="Reply with a client code, for example C001."
            )
            return
        if container.reply_correlator.resolve(prompt.prompt_id) is None:
            await _send_stale(container, chat_id)
            return
        await _start_intake(container, message, code, reference.strip() or None)
        return

    line = parse_shipment_line(text)
    if line is None:
        await container.telegram_client.send_message(chat_id=chat_id, text=FORMAT_HINT)
        return
    claimed = container.reply_correlator.resolve(prompt.prompt_id)
    if claimed is None:
        await _send_stale(container, chat_id)
        return
    shipment_id = UUID(claimed.payload["shipment_id"])
    try:
        changes = container.shipment_service.apply_edit(shipment_id, line)
    except ShipmentNotFoundError:
        await container.telegram_client.send_message(
            chat_id=chat_id, text="Shipment not found or deleted."
        )
        return
    except Exception as exc:
        container.reply_correlator.restore(claimed)
        logger.exception(
            "Failed to apply shipment edit", extra={"shipment_id": str(shipment_id)}
        )
        await container.telegram_client.send_message(
            chat_id=chat_id,
            text=_failure_text(container, exc, "Couldn't apply the edit. Try again."),
        )
        return
    await container.telegram_client.send_message(
        chat_id=chat_id,
        text=(
            f"Updated: {line.client_code} · pallets {line.pallets} · "
            f"boxes {line.boxes} · gross {format_weight(line.gross_kg)}"
        ),
        reply_markup=_shipment_keyboard(shipment_id),
    )
    if not changes.is_empty():
        container.notifier.publish(
            ShipmentEvent(
                kind=EventKind.UPDATED,
                shipment_id=shipment_id,
                actor_id=message.from_user.id,
                changes=changes,
            )
        )


async def _handle_photo_reply(
    container: AppContainer, message: TelegramMessage, prompt: PendingPrompt
) -> None:
    chat_id = message.chat.id
    item = _inbound_item(message)
    if item.photo is None:
        await container.telegram_client.send_message(
            chat_id=chat_id, text="Reply with photos, or reply cancel to abort."
        )
        return
    claimed = container.reply_correlator.resolve(prompt.prompt_id)
    if claimed is None:
        await _send_stale(container, chat_id)
        return
    shipment_id = UUID(claimed.payload["shipment_id"])
    replace = claimed.kind is PromptKind.REPLACE_PHOTOS
    try:
        outcome = container.submission_correlator.observe_photo_update(
            item, shipment_id, replace=replace
        )
    except ShipmentNotFoundError:
        await container.telegram_client.send_message(
            chat_id=chat_id, text="Shipment not found or deleted."
        )
        return
    except Exception as exc:
        container.reply_correlator.restore(claimed)
        logger.exception(
            "Failed to update shipment photos", extra={"shipment_id": str(shipment_id)}
        )
        await container.telegram_client.send_message(
            chat_id=chat_id,
            text=_failure_text(container, exc, "Couldn't save the photos. Try again."),
        )
        return
    await container.telegram_client.send_message(
        chat_id=chat_id,
        text="Photos replaced." if replace else "Photos added.",
        reply_markup=_shipment_keyboard(shipment_id),
    )
    if isinstance(outcome, PhotosUpdated) and not outcome.bound:
        container.notifier.publish(
            ShipmentEvent(
                kind=EventKind.UPDATED,
                shipment_id=shipment_id,
                actor_id=item.actor_id,
                with_photos=True,
            )
        )


async def _handle_command(
    container: AppContainer,
    message: TelegramMessage,
    command: BotCommand,
    args: list[str],
) -> None:
    chat_id = message.chat.id
    actor_id = message.from_user.id
    if command is BotCommand.RECEIVE_START:
        if args:
            await _start_intake(container, message, args[0], " ".join(args[1:]) or None)
            return
        message_id = await container.telegram_client.send_message(
            chat_id=chat_id,
            text="Reply with the client code for the intake.",
            reply_markup=_force_reply("C001"),
        )
        container.reply_correlator.register(
            prompt_id_for(chat_id, message_id), PromptKind.START_INTAKE, actor_id
        )
    elif command is BotCommand.RECEIVE_DONE:
        await _finish_intake(container, message)
    elif command is BotCommand.CANCEL:
        prompts = container.reply_correlator.cancel_actor(actor_id)
        intake = container.intake_service.abandon(actor_id)
        text = "Cancelled." if prompts or intake else "Nothing to cancel."
        await container.telegram_client.send_message(chat_id=chat_id, text=text)
    else:
        await container.telegram_client.send_message(chat_id=chat_id, text=HELP_TEXT)


async def _handle_photo(
    container: AppContainer, message: TelegramMessage, item: InboundItem
) -> None:
    correlator = container.submission_correlator
    intake = container.intake_service.active(item.actor_id)
    captioned = parse_shipment_line(item.caption) is not None
    try:
        if item.burst_key is None:
            if captioned:
                outcome = correlator.observe_standalone(item)
                if isinstance(outcome, Committed):
                    await _ack_created(container, message, outcome, photo=True)
                    _notify_created(container, outcome, item.actor_id)
            elif intake is not None and item.photo is not None:
                container.intake_service.add_photo(item.actor_id, item.photo)
                await container.telegram_client.send_message(
                    chat_id=message.chat.id, text="Photo added to the current intake."
                )
            else:
                await container.telegram_client.send_message(
                    chat_id=message.chat.id, text=FORMAT_HINT
                )
            return

        if captioned:
            outcome = correlator.observe_burst_opening(item.burst_key, item)
            if isinstance(outcome, Committed):
                await _ack_created(container, message, outcome, photo=True)
                if not outcome.bound:
                    _notify_created(container, outcome, item.actor_id)
        elif (
            intake is not None
            and item.photo is not None
            and not correlator.is_bound(item.burst_key)
        ):
            container.intake_service.add_photo(item.actor_id, item.photo)
        else:
            correlator.observe_burst_continuation(item.burst_key, item)
    except Exception as exc:
        logger.exception(
            "Failed to save shipment photo",
            extra={"actor_id": item.actor_id, "burst_key": item.burst_key},
        )
        await container.telegram_client.send_message(
            chat_id=message.chat.id,
            text=_failure_text(container, exc, "Couldn't save the photo. Try again."),
        )


async def _handle_text(
    container: AppContainer, message: TelegramMessage, item: InboundItem
) -> None:
    try:
        outcome = container.submission_correlator.observe_standalone(item)
    except Exception as exc:
        logger.exception(
            "Failed to create shipment from text", extra={"actor_id": item.actor_id}
        )
        await container.telegram_client.send_message(
            chat_id=message.chat.id,
            text=_failure_text(
                container, exc, "Couldn't create the shipment. Try again."
            ),
        )
        return
    if isinstance(outcome, Committed):
        await _ack_created(container, message, outcome, photo=False)
        _notify_created(container, outcome, item.actor_id)
        return

    counted = parse_intake_item(message.text)
    if counted is not None and container.intake_service.active(item.actor_id):
        pallets, boxes, gross_kg = counted
        try:
            container.intake_service.add_item(item.actor_id, pallets, boxes, gross_kg)
        except Exception as exc:
            logger.exception("Failed to add intake line", extra={"actor_id": item.actor_id})
            await container.telegram_client.send_message(
                chat_id=message.chat.id,
                text=_failure_text(container, exc, "Couldn't save the line. Try again."),
            )
            return
        await container.telegram_client.send_message(
            chat_id=message.chat.id,
            text=(
                f"Added to intake: pallets {pallets}, boxes {boxes}, "
                f"gross {format_weight(gross_kg)} kg."
            ),
        )
        return
    await container.telegram_client.send_message(
        chat_id=message.chat.id, text=FORMAT_HINT
    )


async def _start_intake(
    container: AppContainer,
    message: TelegramMessage,
    client_code: str,
    reference: str | None,
) -> None:
    chat_id = message.chat.id
    actor_id = message.from_user.id
    active = container.intake_service.active(actor_id)
    if active is not None:
        await container.telegram_client.send_message(
            chat_id=chat_id,
            text=(
                f"An intake for {active.client_code} is already open. "
                "Finish it with /receive_done or /cancel it."
            ),
        )
        return
    try:
        session = container.intake_service.start(actor_id, client_code, reference)
    except UnknownClientError as exc:
        await container.telegram_client.send_message(
            chat_id=chat_id, text=f"Client {exc.client_code} not found."
        )
        return
    except Exception as exc:
        logger.exception("Failed to start intake", extra={"actor_id": actor_id})
        await container.telegram_client.send_message(
            chat_id=chat_id,
            text=_failure_text(container, exc, "Couldn't start the intake. Try again."),
        )
        return
    await container.telegram_client.send_message(
        chat_id=chat_id,
        text=(
            f"Intake started for {session.client_code}. Send lines "
            "PALLETS BOXES GROSS and photos, then /receive_done."
        ),
    )


async def _finish_intake(container: AppContainer, message: TelegramMessage) -> None:
    chat_id = message.chat.id
    actor_id = message.from_user.id
    try:
        session, totals = container.intake_service.finish(actor_id)
    except NoActiveIntakeError:
        await container.telegram_client.send_message(
            chat_id=chat_id, text="No active intake. Start one with /receive_start CODE."
        )
        return
    except Exception as exc:
        logger.exception("Failed to finish intake", extra={"actor_id": actor_id})
        await container.telegram_client.send_message(
            chat_id=chat_id,
            text=_failure_text(container, exc, "Couldn't confirm the intake. Try again."),
        )
        return
    await container.telegram_client.send_message(
        chat_id=chat_id,
        text=(
            f"Intake confirmed for {session.client_code}. Pallets {totals.pallets}, "
            f"boxes {totals.boxes}, gross {format_weight(totals.gross_kg)} kg."
        ),
    )
    container.notifier.publish(
        ShipmentEvent(
            kind=EventKind.CREATED, shipment_id=session.shipment_id, actor_id=actor_id
        )
    )


async def _ack_created(
    container: AppContainer, message: TelegramMessage, outcome: Committed, photo: bool
) -> None:
    suffix = " Photo saved." if photo else ""
    await container.telegram_client.send_message(
        chat_id=message.chat.id,
        text=f"Shipment created for {outcome.client_code}.{suffix}",
        reply_markup=_shipment_keyboard(outcome.shipment_id),
    )


def _notify_created(
    container: AppContainer, outcome: Committed, actor_id: int
) -> None:
    container.notifier.publish(
        ShipmentEvent(
            kind=EventKind.CREATED, shipment_id=outcome.shipment_id, actor_id=actor_id
        )
    )


async def _send_stale(container: AppContainer, chat_id: int) -> None:
    await container.telegram_client.send_message(
        chat_id=chat_id, text="That request has expired or was already applied."
    )


def _inbound_item(message: TelegramMessage) -> InboundItem:
    reply_to = message.reply_to_message
    return InboundItem(
        actor_id=message.from_user.id,
        chat_id=message.chat.id,
        message_id=message.message_id,
        burst_key=message.media_group_id,
        caption=message.caption,
        text=message.text,
        photo=_photo_reference(message.photo) if message.photo else None,
        reply_to_prompt_id=(
            prompt_id_for(message.chat.id, reply_to.message_id) if reply_to else None
        ),
    )


def _select_largest_photo(photos: list[TelegramPhotoSize]) -> TelegramPhotoSize:
    """Select the largest photo size from the Telegram payload."""
    return max(photos, key=lambda photo: (photo.width * photo.height))


def _photo_reference(photos: list[TelegramPhotoSize]) -> PhotoReference:
    best = _select_largest_photo(photos)
    return PhotoReference(
        file_id=best.file_id,
        file_unique_id=best.file_unique_id,
        width=best.width,
        height=best.height,
        file_size=best.file_size,
    )


def _extract_user_id(update: TelegramUpdate) -> int | None:
    """Extract Telegram user id from update, if present."""
    if update.callback_query:
        return update.callback_query.from_user.id
    if update.message:
        return update.message.from_user.id
    return None


def _is_user_allowed(user_id: int, allowed: set[int] | None) -> bool:
    """Return true when the user is allowed to interact with the bot."""
    return allowed is None or user_id in allowed


def _failure_text(container: AppContainer, exc: Exception, fallback: str) -> str:
    """Return a user-facing error message with local debug info."""
    if container.settings.environment == "local":
        detail = f"{type(exc).__name__}: {exc}".strip()
        if detail:
            return f"{fallback} (debug: {detail})"
    return fallback


def _parse_shipment_callback(data: str) -> tuple[str, UUID] | None:
    """Parse callback data in the format sh:<action>:<uuid>."""
    if not data.startswith("sh:"):
        return None
    action, _, raw_id = data.removeprefix("sh:").partition(":")
    if action not in SHIPMENT_ACTIONS:
        return None
    try:
        return action, UUID(raw_id)
    except ValueError:
        return None


def _shipment_keyboard(shipment_id: UUID) -> dict:
    key = str(shipment_id)
    return {
        "inline_keyboard": [
            [{"text": "Edit", "callback_data": f"sh:edit:{key}"}],
            [
                {"text": "Replace photos", "callback_data": f"sh:reup_photos:{key}"},
                {"text": "Add photos", "callback_data": f"sh:add_photos:{key}"},
            ],
            [{"text": "Delete photos", "callback_data": f"sh:del_photos:{key}"}],
        ]
    }


def _continues_burst(container: AppContainer, item: InboundItem) -> bool:
    """Return true for a photo that belongs to a burst already bound."""
    return (
        item.burst_key is not None
        and item.photo is not None
        and container.submission_correlator.is_bound(item.burst_key)
    )


def _force_reply(placeholder: str) -> dict:
    return {"force_reply": True, "input_field_placeholder": placeholder}
