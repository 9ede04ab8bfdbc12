"""
Platform adapter registry.

PlatformManager builds one adapter per platform from configuration at
startup, wires every adapter's output into the MessageBus, and routes
webhooks and sends by platform key. The registry is not modified after
construction.

Outbound sends normally use the operator credentials captured in each
adapter's config. A send made on behalf of a client reads that client's
current token from the TokenStore and goes through a fresh copy of the
adapter, so tokens renewed by the refresh sweep are used straight away.
"""
import logging
from typing import Optional

from socialhub.adapters.base import PlatformAdapter
from socialhub.adapters.facebook import FacebookAdapter
from socialhub.adapters.instagram import InstagramAdapter
from socialhub.adapters.slack import SlackAdapter
from socialhub.adapters.telegram import TelegramAdapter
from socialhub.adapters.twitter import TwitterAdapter
from socialhub.adapters.whatsapp import WhatsAppAdapter
from socialhub.core.config import PlatformConfig
from socialhub.core.errors import DecryptionError
from socialhub.core.message_bus import MessageBus
from socialhub.core.token_store import TokenStore
from socialhub.models.schemas import PlatformStatus, SendResult

logger = logging.getLogger(__name__)

ADAPTER_CLASSES: dict[str, type[PlatformAdapter]] = {
    "facebook": FacebookAdapter,
    "instagram": InstagramAdapter,
    "twitter": TwitterAdapter,
    "telegram": TelegramAdapter,
    "whatsapp": WhatsAppAdapter,
    "slack": SlackAdapter,
}


class PlatformManager:
    """Routes inbound webhooks and outbound sends to platform adapters."""

    def __init__(
        self,
        platform_configs: dict[str, PlatformConfig],
        message_bus: MessageBus,
        token_store: Optional[TokenStore] = None,
    ):
        self._message_bus = message_bus
        self._token_store = token_store
        self._configs = dict(platform_configs)
        self._adapters: dict[str, PlatformAdapter] = {}

        for name, config in self._configs.items():
            adapter_cls = ADAPTER_CLASSES.get(name)
            if adapter_cls is None:
                logger.warning(f"No adapter available for configured platform {name}")
                continue
            self._adapters[name] = adapter_cls(config, message_bus.add_message)

        logger.info(f"PlatformManager initialized with {len(self._adapters)} adapters")

    async def send_message(
        self,
        platform: str,
        recipient: str,
        text: str,
        client_id: Optional[str] = None,
    ) -> SendResult:
        adapter = self._adapters.get(platform)
        if adapter is None:
            logger.error(f"Platform not supported: {platform}")
            return SendResult(success=False, error="Platform not supported")

        if client_id is not None:
            adapter, error = await self._client_adapter(adapter, client_id, platform)
            if adapter is None:
                return SendResult(success=False, error=error)

        return await adapter.send_message(recipient, text)

    async def _client_adapter(
        self, adapter: PlatformAdapter, client_id: str, platform: str
    ) -> tuple[Optional[PlatformAdapter], Optional[str]]:
        if self._token_store is None:
            return None, "Client credentials are not available"

        try:
            token = await self._token_store.get_token(client_id, platform)
        except DecryptionError:
            logger.error(f"Stored credentials for client {client_id} on {platform} failed to decrypt")
            return None, "Stored credentials are unusable"
        except Exception as e:
            logger.error(f"Could not load credentials for client {client_id} on {platform}: {e}")
            return None, "Could not load client credentials"

        if token is None:
            return None, "No credentials stored for client"
        if token.is_expired:
            logger.warning(f"Sending with expired token for client {client_id} on {platform}")

        return adapter.with_credentials(token.access_token), None

    def handle_webhook(self, platform: str, payload: object) -> None:
        adapter = self._adapters.get(platform)
        if adapter is None:
            logger.warning(f"Webhook received for unsupported platform {platform}")
            return
        adapter.handle_webhook(payload)

    def get_adapter(self, platform: str) -> Optional[PlatformAdapter]:
        return self._adapters.get(platform)

    def get_enabled_platforms(self) -> list[str]:
        """Enabled platforms, in declaration order."""
        return [
            name for name, config in self._configs.items()
            if config.enabled and name in self._adapters
        ]

    def get_platform_statuses(self) -> list[PlatformStatus]:
        return [
            PlatformStatus(name=name, enabled=self._configs[name].enabled)
            for name in self._adapters
        ]
