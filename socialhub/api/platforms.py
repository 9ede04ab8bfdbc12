"""
Platform API — configured platforms and Telegram webhook registration.

Endpoints:
  GET  /api/platforms       — every platform and whether it is enabled
  POST /api/setup/telegram  — point the Telegram bot at this hub
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from socialhub.adapters.registry import PlatformManager
from socialhub.adapters.telegram import TelegramAdapter
from socialhub.api.deps import get_platform_manager
from socialhub.models.schemas import Platform, SendResult, TelegramWebhookSetup

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["platforms"])


@router.get("/platforms")
async def list_platforms(manager: PlatformManager = Depends(get_platform_manager)):
    """List all supported platforms with their enabled flag."""
    return {"platforms": manager.get_platform_statuses()}


@router.post("/setup/telegram", response_model=SendResult)
async def setup_telegram_webhook(
    payload: TelegramWebhookSetup,
    manager: PlatformManager = Depends(get_platform_manager),
):
    adapter = manager.get_adapter(Platform.TELEGRAM.value)
    if not isinstance(adapter, TelegramAdapter):
        raise HTTPException(status_code=400, detail="Telegram is not configured")

    result = await adapter.set_webhook(payload.webhook_url)
    if result.success:
        logger.info(f"Telegram webhook registered at {payload.webhook_url}")
    return result
