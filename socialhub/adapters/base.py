"""
Abstract base class for all platform adapters.

Every platform adapter must implement:
  - send_message(): Send text to a recipient through the platform API
  - handle_webhook(): Turn a webhook payload into CanonicalMessages

Adapters never raise out of send_message: failures come back as a
SendResult with a normalized error string. Webhook payloads that do not match
the platform's envelope are ignored without logging an error.

The emit callable is injected at construction; adapters do not know where
their messages go.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Optional

from socialhub.core.config import PlatformConfig
from socialhub.core.errors import describe_http_error
from socialhub.models.schemas import CanonicalMessage, Platform, SendResult

logger = logging.getLogger(__name__)

Emit = Callable[[CanonicalMessage], None]

HTTP_TIMEOUT = 10


def _discard(message: CanonicalMessage) -> None:
    pass


def as_dict(value: Any) -> dict:
    """The value when it is a JSON object, otherwise an empty dict."""
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list:
    """The value when it is a JSON array, otherwise an empty list."""
    return value if isinstance(value, list) else []


class PlatformAdapter(ABC):
    """Base interface for platform integrations."""

    platform: ClassVar[Platform]
    # Config field holding the credential used for outbound calls
    credential_field: ClassVar[str] = "access_token"

    def __init__(self, config: PlatformConfig, emit: Optional[Emit] = None):
        self.config = config
        self._emit = emit or _discard

    @abstractmethod
    async def send_message(self, recipient: str, text: str) -> SendResult:
        """Send a text message. Always resolves to a SendResult."""
        pass

    @abstractmethod
    def handle_webhook(self, payload: Any) -> None:
        """Parse a webhook payload and emit zero or more CanonicalMessages."""
        pass

    def with_credentials(self, access_token: str) -> "PlatformAdapter":
        """A new adapter of the same kind using the given access token."""
        config = self.config.model_copy(update={self.credential_field: access_token})
        return type(self)(config, self._emit)

    def emit_message(self, message: CanonicalMessage) -> None:
        self._emit(message)

    def handle_error(self, error: BaseException) -> SendResult:
        """Normalize a failed send into a SendResult."""
        return SendResult(success=False, error=describe_http_error(error))

    def ignore(self, reason: str) -> None:
        logger.debug(f"Ignoring {self.platform.value} webhook: {reason}")

    def get_platform_name(self) -> str:
        """Return the platform identifier string."""
        return self.platform.value
