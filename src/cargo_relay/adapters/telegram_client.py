"""Telegram Bot API client adapter."""

from dataclasses import dataclass
from typing import Protocol

import httpx


class TelegramClient(Protocol):
    """Interface for Telegram API interactions."""

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict | None = None
    ) -> int:
        """Send a text message and return its message id."""

    async def send_photo(
        self,
        chat_id: int,
        photo: str,
        caption: str | None = None,
        reply_markup: dict | None = None,
    ) -> int:
        """Send one photo by file id and return the message id."""

    async def send_media_group(
        self, chat_id: int, media: list[dict[str, object]]
    ) -> list[int]:
        """Send an album and return the message ids."""

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None
    ) -> None:
        """Answer a Telegram callback query."""

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        """Set the bot command list."""

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        """Set the chat menu button."""


class TelegramApiError(RuntimeError):
    """Raised when the Bot API answers with `ok: false`."""


@dataclass
class HttpxTelegramClient:
    """Telegram client implemented with httpx."""

    bot_token: str
    http_client: httpx.AsyncClient
    timeout: float = 10

    @classmethod
    def create(cls, bot_token: str, timeout: float = 10) -> "HttpxTelegramClient":
        """Create a Telegram client with a managed httpx session."""
        return cls(bot_token=bot_token, http_client=httpx.AsyncClient(), timeout=timeout)

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict | None = None
    ) -> int:
        """Send a message using Telegram's sendMessage API."""
        payload: dict[str, object] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        result = await self._post("sendMessage", payload)
        return _message_id(result)

    async def send_photo(
        self,
        chat_id: int,
        photo: str,
        caption: str | None = None,
        reply_markup: dict | None = None,
    ) -> int:
        """Send a photo using Telegram's sendPhoto API."""
        payload: dict[str, object] = {"chat_id": chat_id, "photo": photo}
        if caption is not None:
            payload["caption"] = caption
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        result = await self._post("sendPhoto", payload)
        return _message_id(result)

    async def send_media_group(
        self, chat_id: int, media: list[dict[str, object]]
    ) -> list[int]:
        """Send an album using Telegram's sendMediaGroup API."""
        result = await self._post("sendMediaGroup", {"chat_id": chat_id, "media": media})
        if not isinstance(result, list):
            return []
        return [_message_id(entry) for entry in result]

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None
    ) -> None:
        """Answer a callback query using Telegram's API."""
        payload: dict[str, object] = {"callback_query_id": callback_query_id}
        if text is not None:
            payload["text"] = text
        await self._post("answerCallbackQuery", payload)

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        """Set the bot command list."""
        await self._post("setMyCommands", {"commands": commands})

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        """Set the chat menu button."""
        await self._post(
            "setChatMenuButton", {"menu_button": menu_button or {"type": "commands"}}
        )

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    async def _post(self, method: str, payload: dict[str, object]) -> object:
        url = f"https://api.telegram.org/bot{self.bot_token}/{method}"
        response = await self.http_client.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        body = response.json()
        if not body.get("ok", False):
            raise TelegramApiError(body.get("description") or f"{method} failed")
        return body.get("result")


def _message_id(result: object) -> int:
    if isinstance(result, dict):
        value = result.get("message_id")
        if isinstance(value, int):
            return value
    return 0
