"""
Slack Adapter — Slack Web API with a bot token.

  - Send: chat.postMessage
  - Realtime: Slack Events API (webhooks), configured at the app level
  - Slack answers HTTP 200 with {"ok": false, "error": ...} on failure
"""
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from socialhub.adapters.base import HTTP_TIMEOUT, PlatformAdapter
from socialhub.core.config import SlackConfig
from socialhub.models.schemas import CanonicalMessage, Platform, SendResult

logger = logging.getLogger(__name__)

SLACK_API_BASE = "https://slack.com/api"


class SlackAdapter(PlatformAdapter):
    """Slack platform adapter using Slack Web API."""

    platform = Platform.SLACK
    credential_field = "bot_token"
    config: SlackConfig

    def _get_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.config.bot_token or ''}"}

    async def send_message(self, channel: str, text: str) -> SendResult:
        """Send a message via Slack chat.postMessage."""
        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                response = await client.post(
                    f"{SLACK_API_BASE}/chat.postMessage",
                    headers=self._get_headers(),
                    json={"channel": channel, "text": text},
                )
                response.raise_for_status()
                data = response.json()

            if not data.get("ok"):
                logger.error(f"Slack send rejected for channel {channel}: {data.get('error')}")
                return SendResult(success=False, error=data.get("error"))

            logger.info(f"Slack message sent to channel {channel}")
            return SendResult(success=True, data=data)

        except Exception as e:
            logger.error(f"Slack send error for channel {channel}: {e}")
            return self.handle_error(e)

    def handle_webhook(self, payload: Any) -> None:
        event = payload.get("event") if isinstance(payload, dict) else None
        if not isinstance(event, dict) or event.get("type") != "message":
            return self.ignore("not a message event")

        # Skip the bot's own (and other bots') messages
        if event.get("bot_id"):
            return self.ignore("bot message")

        if not event.get("text") or not event.get("user") or not event.get("ts"):
            return self.ignore("message event without text")

        try:
            parsed = CanonicalMessage(
                platform=Platform.SLACK,
                sender_id=event["user"],
                channel_id=event.get("channel"),
                text=event["text"],
                timestamp_millis=self._ts_to_millis(event["ts"]),
                message_id=event.get("client_msg_id") or event["ts"],
            )
        except ValidationError:
            return self.ignore("message event fields have unexpected types")

        self.emit_message(parsed)

    @staticmethod
    def _ts_to_millis(ts: str) -> int:
        """Convert Slack timestamp (epoch.sequence) to epoch milliseconds."""
        try:
            return int(float(ts) * 1000)
        except (ValueError, TypeError):
            return 0
