"""
Shared Pydantic models for the hub.

CanonicalMessage is the single normalized shape every adapter produces and
every consumer of the message feed reads. The hub does not deduplicate on
message_id: a platform that redelivers a webhook (retries) produces a second
identical CanonicalMessage in the feed.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

REDACTED = "***"


class Platform(str, Enum):
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    TWITTER = "twitter"
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"
    SLACK = "slack"
    YOUTUBE = "youtube"


class ConnectorStatus(str, Enum):
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"


# --- Messages ---

class ForwardOrigin(BaseModel):
    """Where a forwarded message originally came from."""
    user_id: Optional[str] = None
    username: Optional[str] = None
    sender_name: Optional[str] = None
    chat_id: Optional[str] = None
    chat_title: Optional[str] = None


class CanonicalMessage(BaseModel):
    platform: Platform
    sender_id: str
    text: str
    timestamp_millis: int
    message_id: str
    chat_id: Optional[str] = None
    channel_id: Optional[str] = None
    username: Optional[str] = None

    # Platform-specific extensions
    is_forwarded: bool = False
    forwarded_from: Optional[ForwardOrigin] = None
    media_type: Optional[str] = None
    reply_to_message_id: Optional[str] = None

    model_config = {"use_enum_values": True}


class SendResult(BaseModel):
    """Uniform outcome of an outbound send. Failures always carry an error string."""
    success: bool
    data: Any = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _ensure_error_text(self):
        if not self.success and not self.error:
            self.error = "Unknown error"
        return self


# --- Credentials ---

class TokenData(BaseModel):
    """Decrypted credential payload. Only ever persisted inside the encrypted blob."""
    access_token: str
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    token_type: str = "Bearer"
    scope: Optional[str] = None
    expires_at: Optional[datetime] = None
    extra: Optional[dict[str, Any]] = None

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) >= expires_at


class EncryptedToken(BaseModel):
    encrypted: str
    nonce: str
    auth_tag: str


class SaveTokenParams(BaseModel):
    client_id: str
    platform: Platform
    access_token: str
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    external_account_id: Optional[str] = None
    external_name: Optional[str] = None
    external_handle: Optional[str] = None
    profile: Optional[dict[str, Any]] = None

    model_config = {"use_enum_values": True}

    def expires_at(self, now: Optional[datetime] = None) -> Optional[datetime]:
        if self.expires_in is None:
            return None
        now = now or datetime.now(timezone.utc)
        return now + timedelta(seconds=self.expires_in)


class TokenRefreshLogParams(BaseModel):
    connection_id: str
    platform: str
    success: bool
    error_message: Optional[str] = None
    old_expires_at: Optional[datetime] = None
    new_expires_at: Optional[datetime] = None


class RefreshSummary(BaseModel):
    total: int = 0
    refreshed: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


# --- API Request/Response models ---

class SendRequest(BaseModel):
    """POST /api/send"""
    platform: str
    recipient: str
    text: str
    client_id: Optional[str] = None


class ReplyRequest(BaseModel):
    """POST /api/messages/reply"""
    message_id: str
    text: str


class MessageListResponse(BaseModel):
    messages: list[CanonicalMessage]
    count: int


class PlatformStatus(BaseModel):
    name: str
    enabled: bool


class TelegramWebhookSetup(BaseModel):
    webhook_url: str


class ConnectRequest(BaseModel):
    """Token material produced by an OAuth code exchange done elsewhere."""
    access_token: str
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    external_account_id: Optional[str] = None
    external_name: Optional[str] = None
    external_handle: Optional[str] = None
    profile: Optional[dict[str, Any]] = None


class ConnectionResponse(BaseModel):
    id: str
    client_id: str
    platform: str
    status: str
    token_type: Optional[str] = None
    expires_at: Optional[str] = None
    external_account_id: Optional[str] = None
    external_name: Optional[str] = None
    external_handle: Optional[str] = None
    scopes_granted: Optional[str] = None
