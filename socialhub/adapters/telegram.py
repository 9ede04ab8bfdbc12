"""
Telegram Adapter — connects via Telegram Bot API.

  - API Base URL: https://api.telegram.org/bot{token}/
  - Realtime: setWebhook pointing at /webhook/telegram
  - Auth: Bot Token from BotFather

Besides plain text, forwarded messages carry their origin and captioned
media messages are emitted with the caption as text and a media marker.
"""
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from socialhub.adapters.base import HTTP_TIMEOUT, PlatformAdapter, as_dict
from socialhub.core.config import TelegramConfig
from socialhub.models.schemas import CanonicalMessage, ForwardOrigin, Platform, SendResult

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"

MEDIA_TYPES = ("photo", "video", "animation", "document", "audio", "voice", "video_note", "sticker")


class TelegramAdapter(PlatformAdapter):
    """Telegram platform adapter using Telegram Bot API."""

    platform = Platform.TELEGRAM
    credential_field = "bot_token"
    config: TelegramConfig

    @property
    def base_url(self) -> str:
        return f"{TELEGRAM_API_BASE}/bot{self.config.bot_token}"

    async def send_message(
        self,
        chat_id: str,
        text: str,
        reply_to_message_id: Optional[str] = None,
    ) -> SendResult:
        """Send a message via Telegram Bot API, optionally as a reply."""
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_to_message_id:
            payload["reply_to_message_id"] = reply_to_message_id

        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                response = await client.post(f"{self.base_url}/sendMessage", json=payload)
                response.raise_for_status()
                data = response.json()

            logger.info(f"Telegram message sent to chat {chat_id}")
            return SendResult(success=True, data=data)

        except Exception as e:
            logger.error(f"Telegram send error for chat {chat_id}: {e}")
            return self.handle_error(e)

    def handle_webhook(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            return self.ignore("payload is not an object")

        message = payload.get("message") or payload.get("edited_message")
        if not isinstance(message, dict):
            return self.ignore("no message in update")

        text = message.get("text") or message.get("caption")
        sender = as_dict(message.get("from"))
        chat = as_dict(message.get("chat"))
        if not text or "id" not in sender or "id" not in chat or "message_id" not in message:
            return self.ignore("message has no text or is missing identifiers")

        reply_to = as_dict(message.get("reply_to_message"))

        try:
            forwarded_from = self._forward_origin(message)
            parsed = CanonicalMessage(
                platform=Platform.TELEGRAM,
                sender_id=str(sender["id"]),
                chat_id=str(chat["id"]),
                text=text,
                timestamp_millis=int(message.get("date", 0)) * 1000,
                message_id=str(message["message_id"]),
                username=sender.get("username"),
                is_forwarded=forwarded_from is not None,
                forwarded_from=forwarded_from,
                media_type=self._media_type(message),
                reply_to_message_id=(
                    str(reply_to["message_id"]) if "message_id" in reply_to else None
                ),
            )
        except (ValueError, TypeError, ValidationError):
            return self.ignore("message fields have unexpected types")

        self.emit_message(parsed)

    async def set_webhook(self, webhook_url: str) -> SendResult:
        """Register this hub's webhook endpoint with the Bot API."""
        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                response = await client.post(
                    f"{self.base_url}/setWebhook",
                    json={"url": f"{webhook_url.rstrip('/')}/webhook/telegram"},
                )
                response.raise_for_status()
                data = response.json()

            logger.info(f"Telegram webhook set to {webhook_url}")
            return SendResult(success=True, data=data)

        except Exception as e:
            logger.error(f"Telegram webhook setup error: {e}")
            return self.handle_error(e)

    @staticmethod
    def _forward_origin(message: dict) -> Optional[ForwardOrigin]:
        # Bot API 7.0+ sends forward_origin; older payloads use forward_from*
        origin = message.get("forward_origin")
        if isinstance(origin, dict):
            user = as_dict(origin.get("sender_user"))
            chat = as_dict(origin.get("sender_chat") or origin.get("chat"))
            return ForwardOrigin(
                user_id=str(user["id"]) if "id" in user else None,
                username=user.get("username") or chat.get("username"),
                sender_name=origin.get("sender_user_name"),
                chat_id=str(chat["id"]) if "id" in chat else None,
                chat_title=chat.get("title"),
            )

        user = message.get("forward_from")
        chat = message.get("forward_from_chat")
        sender_name = message.get("forward_sender_name")
        if not (user or chat or sender_name):
            return None

        user = as_dict(user)
        chat = as_dict(chat)
        return ForwardOrigin(
            user_id=str(user["id"]) if "id" in user else None,
            username=user.get("username") or chat.get("username"),
            sender_name=sender_name,
            chat_id=str(chat["id"]) if "id" in chat else None,
            chat_title=chat.get("title"),
        )

    @staticmethod
    def _media_type(message: dict) -> Optional[str]:
        for media_type in MEDIA_TYPES:
            if message.get(media_type):
                return media_type
        return None
