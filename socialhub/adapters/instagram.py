"""
Instagram Adapter — Instagram Messaging through the Graph API.

  - Send: POST /{version}/me/messages?access_token={access_token}
  - Webhook: object == "instagram"
"""
from socialhub.adapters.meta import MessengerAdapter
from socialhub.core.config import InstagramConfig
from socialhub.models.schemas import Platform


class InstagramAdapter(MessengerAdapter):
    """Instagram Direct platform adapter."""

    platform = Platform.INSTAGRAM
    webhook_object = "instagram"
    config: InstagramConfig
