"""
WhatsApp Adapter — WhatsApp Business Cloud API.

  - Send: POST /{version}/{phone_number_id}/messages (Bearer access token)
  - Webhook: entry[].changes[] with field == "messages"
  - Only `type == "text"` messages are normalized; statuses and other
    message types are ignored.
"""
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from socialhub.adapters.base import HTTP_TIMEOUT, PlatformAdapter, as_dict, as_list
from socialhub.adapters.meta import GRAPH_API_BASE, MetaWebhookMixin
from socialhub.core.config import WhatsAppConfig
from socialhub.models.schemas import CanonicalMessage, Platform, SendResult

logger = logging.getLogger(__name__)


class WhatsAppAdapter(MetaWebhookMixin, PlatformAdapter):
    """WhatsApp Cloud API platform adapter."""

    platform = Platform.WHATSAPP
    config: WhatsAppConfig

    @property
    def messages_url(self) -> str:
        return f"{GRAPH_API_BASE}/{self.config.api_version}/{self.config.phone_number_id}/messages"

    async def send_message(self, recipient_phone: str, text: str) -> SendResult:
        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                response = await client.post(
                    self.messages_url,
                    json={
                        "messaging_product": "whatsapp",
                        "to": recipient_phone,
                        "text": {"body": text},
                    },
                    headers={"Authorization": f"Bearer {self.config.access_token}"},
                )
                response.raise_for_status()
                data = response.json()

            logger.info(f"WhatsApp message sent to {recipient_phone}")
            return SendResult(success=True, data=data)

        except Exception as e:
            logger.error(f"WhatsApp send error for {recipient_phone}: {e}")
            return self.handle_error(e)

    def handle_webhook(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            return self.ignore("payload is not an object")

        for entry in as_list(payload.get("entry")):
            for change in as_list(as_dict(entry).get("changes")):
                change = as_dict(change)
                if change.get("field") != "messages":
                    continue
                value = as_dict(change.get("value"))
                for msg in as_list(value.get("messages")):
                    msg = as_dict(msg)
                    if msg.get("type") != "text":
                        self.ignore(f"message type {msg.get('type')!r}")
                        continue
                    body = as_dict(msg.get("text")).get("body")
                    if not body or "from" not in msg or "id" not in msg:
                        self.ignore("text message without body")
                        continue

                    try:
                        parsed = CanonicalMessage(
                            platform=Platform.WHATSAPP,
                            sender_id=str(msg["from"]),
                            text=body,
                            timestamp_millis=int(msg.get("timestamp", 0)) * 1000,
                            message_id=str(msg["id"]),
                        )
                    except (ValueError, TypeError, ValidationError):
                        self.ignore("text message fields have unexpected types")
                        continue

                    self.emit_message(parsed)
