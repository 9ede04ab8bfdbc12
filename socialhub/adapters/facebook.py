"""
Facebook Messenger Adapter — Send API on a Facebook Page.

  - Send: POST /{version}/me/messages?access_token={page_access_token}
  - Webhook: object == "page"
"""
from socialhub.adapters.meta import MessengerAdapter
from socialhub.core.config import FacebookConfig
from socialhub.models.schemas import Platform


class FacebookAdapter(MessengerAdapter):
    """Facebook Messenger platform adapter."""

    platform = Platform.FACEBOOK
    credential_field = "page_access_token"
    webhook_object = "page"
    config: FacebookConfig
