"""
Webhook endpoints for receiving realtime events from platforms.

Each platform pushes events to these endpoints:
  POST /webhook/slack       — Slack Events API (signed)
  GET  /webhook/{platform}  — Meta subscription handshake (facebook, instagram, whatsapp)
  POST /webhook/{platform}  — every other platform push

Inbound webhooks always answer 200 {"ok": true} once accepted, so platforms
do not retry deliveries the hub could not use.
"""
import hashlib
import hmac
import json
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from socialhub.adapters.meta import MetaWebhookMixin
from socialhub.adapters.registry import PlatformManager
from socialhub.api.deps import get_app_settings, get_platform_manager
from socialhub.core.config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])

# Slack rejects requests older than five minutes to stop replays
SLACK_MAX_REQUEST_AGE = 60 * 5


@router.post("/slack")
async def slack_webhook(
    request: Request,
    manager: PlatformManager = Depends(get_platform_manager),
    settings: Settings = Depends(get_app_settings),
):
    """
    Handle Slack Events API.
    Supports URL verification challenge and message events.
    """
    raw_body = await request.body()
    try:
        body = json.loads(raw_body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    # URL verification (one-time setup)
    if isinstance(body, dict) and body.get("type") == "url_verification":
        return {"challenge": body.get("challenge")}

    # Validate Slack request signature
    if not _verify_slack_signature(request, raw_body, settings.SLACK_SIGNING_SECRET):
        raise HTTPException(status_code=403, detail="Invalid Slack signature")

    try:
        manager.handle_webhook("slack", body)
    except Exception as e:
        logger.error(f"Slack webhook error: {e}", exc_info=True)

    return {"ok": True}


@router.get("/{platform}")
async def verify_webhook(
    platform: str,
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
    manager: PlatformManager = Depends(get_platform_manager),
):
    """Meta webhook verification: echo hub.challenge when the verify token matches."""
    adapter = manager.get_adapter(platform)
    if not isinstance(adapter, MetaWebhookMixin):
        raise HTTPException(status_code=404, detail="Platform does not support webhook verification")

    echoed = adapter.verify_subscription(mode, token, challenge)
    if echoed is None:
        logger.warning(f"Webhook verification failed for {platform}")
        raise HTTPException(status_code=403, detail="Verification failed")

    logger.info(f"Webhook verified for {platform}")
    return PlainTextResponse(echoed)


@router.post("/{platform}")
async def platform_webhook(
    platform: str,
    request: Request,
    manager: PlatformManager = Depends(get_platform_manager),
):
    """Hand a platform push to its adapter. Never fails the delivery."""
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        logger.warning(f"{platform} webhook with unreadable body")
        return {"ok": True}

    try:
        manager.handle_webhook(platform, payload)
    except Exception as e:
        logger.error(f"{platform} webhook error: {e}", exc_info=True)

    return {"ok": True}


# --- Helpers ---

def _verify_slack_signature(request: Request, body: bytes, signing_secret: str) -> bool:
    """
    Verify Slack request signature using HMAC-SHA256.
    Returns True if valid, False otherwise.
    """
    if not signing_secret:
        logger.warning("Slack signing secret not configured, skipping verification")
        return True

    timestamp = request.headers.get("X-Slack-Request-Timestamp", "")
    signature = request.headers.get("X-Slack-Signature", "")

    try:
        if abs(time.time() - int(timestamp)) > SLACK_MAX_REQUEST_AGE:
            logger.warning("Slack request timestamp outside the allowed window")
            return False
    except ValueError:
        return False

    sig_basestring = f"v0:{timestamp}:".encode("utf-8") + body
    expected = "v0=" + hmac.new(
        signing_secret.encode("utf-8"),
        sig_basestring,
        hashlib.sha256,
    ).hexdigest()

    return hmac.compare_digest(expected, signature)
