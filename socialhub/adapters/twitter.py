"""
Twitter / X Adapter — Direct Messages.

  - Send: POST https://api.twitter.com/2/dm_conversations/with/{participant_id}/messages
    with an OAuth 2.0 user-context bearer token (dm.write scope)
  - Webhook: Account Activity API `direct_message_events`
"""
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from socialhub.adapters.base import HTTP_TIMEOUT, PlatformAdapter, as_dict
from socialhub.core.config import TwitterConfig
from socialhub.models.schemas import CanonicalMessage, Platform, SendResult

logger = logging.getLogger(__name__)

TWITTER_API_BASE = "https://api.twitter.com/2"


class TwitterAdapter(PlatformAdapter):
    """Twitter / X DM platform adapter."""

    platform = Platform.TWITTER
    config: TwitterConfig

    async def send_message(self, recipient_id: str, text: str) -> SendResult:
        if not self.config.access_token:
            logger.warning("Twitter DM send attempted without an access token")
            return SendResult(success=False, error="Twitter access token not configured")

        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                response = await client.post(
                    f"{TWITTER_API_BASE}/dm_conversations/with/{recipient_id}/messages",
                    headers={"Authorization": f"Bearer {self.config.access_token}"},
                    json={"text": text},
                )
                response.raise_for_status()
                data = response.json()

            logger.info(f"Twitter DM sent to {recipient_id}")
            return SendResult(success=True, data=data)

        except Exception as e:
            logger.error(f"Twitter send error for {recipient_id}: {e}")
            return self.handle_error(e)

    def handle_webhook(self, payload: Any) -> None:
        events = payload.get("direct_message_events") if isinstance(payload, dict) else None
        if not isinstance(events, list):
            return self.ignore("no direct_message_events")

        for event in events:
            if not isinstance(event, dict) or event.get("type") != "message_create":
                continue
            create = as_dict(event.get("message_create"))
            text = as_dict(create.get("message_data")).get("text")
            if not text or "sender_id" not in create or "id" not in event:
                self.ignore("message_create without text")
                continue

            try:
                parsed = CanonicalMessage(
                    platform=Platform.TWITTER,
                    sender_id=str(create["sender_id"]),
                    text=text,
                    timestamp_millis=int(event.get("created_timestamp", 0)),
                    message_id=str(event["id"]),
                )
            except (ValueError, TypeError, ValidationError):
                self.ignore("message_create fields have unexpected types")
                continue

            self.emit_message(parsed)
