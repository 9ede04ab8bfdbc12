"""
Shared pieces for Meta Graph API platforms (Messenger, Instagram, WhatsApp).

  - API Base URL: https://graph.facebook.com/{version}/
  - Realtime: app-level webhook subscription verified with hub.verify_token
"""
import hmac
import logging
from typing import Any, ClassVar, Optional

import httpx
from pydantic import ValidationError

from socialhub.adapters.base import HTTP_TIMEOUT, PlatformAdapter, as_dict, as_list
from socialhub.models.schemas import CanonicalMessage, SendResult

logger = logging.getLogger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com"


class MetaWebhookMixin:
    """GET handshake Meta performs when a webhook subscription is created."""

    config: Any

    def verify_subscription(self, mode: Optional[str], token: Optional[str], challenge: Optional[str]) -> Optional[str]:
        """Return the challenge to echo back, or None when verification fails."""
        expected = self.config.verify_token
        if mode != "subscribe" or not expected or not token:
            return None
        if not hmac.compare_digest(token, expected):
            return None
        return challenge


class MessengerAdapter(MetaWebhookMixin, PlatformAdapter):
    """Messenger-style Send API and `entry[].messaging[]` webhooks."""

    webhook_object: ClassVar[str]

    @property
    def base_url(self) -> str:
        return f"{GRAPH_API_BASE}/{self.config.api_version}"

    async def send_message(self, recipient_id: str, text: str) -> SendResult:
        name = self.get_platform_name()
        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                response = await client.post(
                    f"{self.base_url}/me/messages",
                    json={"recipient": {"id": recipient_id}, "message": {"text": text}},
                    params={"access_token": getattr(self.config, self.credential_field)},
                )
                response.raise_for_status()
                data = response.json()

            logger.info(f"{name.capitalize()} message sent to {recipient_id}")
            return SendResult(success=True, data=data)

        except Exception as e:
            logger.error(f"{name.capitalize()} send error for {recipient_id}: {e}")
            return self.handle_error(e)

    def handle_webhook(self, payload: Any) -> None:
        if not isinstance(payload, dict) or payload.get("object") != self.webhook_object:
            return self.ignore(f"object is not '{self.webhook_object}'")

        for entry in as_list(payload.get("entry")):
            for event in as_list(as_dict(entry).get("messaging")):
                event = as_dict(event)
                message = as_dict(event.get("message"))
                sender = as_dict(event.get("sender"))
                if not message.get("text") or "id" not in sender or "mid" not in message:
                    self.ignore("messaging event without text")
                    continue

                try:
                    parsed = CanonicalMessage(
                        platform=self.platform,
                        sender_id=str(sender["id"]),
                        text=message["text"],
                        timestamp_millis=int(event.get("timestamp", 0)),
                        message_id=str(message["mid"]),
                    )
                except (ValueError, TypeError, ValidationError):
                    self.ignore("messaging event fields have unexpected types")
                    continue

                self.emit_message(parsed)
