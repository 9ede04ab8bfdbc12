"""
Messages API — outbound sends and the in-memory message feed.

Endpoints:
  POST   /api/send                    — send through a platform adapter
  GET    /api/messages                — recent messages (optionally per platform)
  GET    /api/messages/forwarded      — forwarded messages only
  GET    /api/messages/from/{user_id} — messages forwarded from a user
  POST   /api/messages/reply          — reply to a Telegram message
  DELETE /api/messages                — clear the feed
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from socialhub.adapters.registry import PlatformManager
from socialhub.adapters.telegram import TelegramAdapter
from socialhub.api.deps import get_message_bus, get_platform_manager
from socialhub.core.message_bus import MessageBus
from socialhub.models.schemas import (
    MessageListResponse,
    Platform,
    ReplyRequest,
    SendRequest,
    SendResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["messages"])


@router.post("/send", response_model=SendResult)
async def send_message(
    payload: SendRequest,
    manager: PlatformManager = Depends(get_platform_manager),
):
    """Send a message. Delivery failures are reported in the result, not as HTTP errors."""
    return await manager.send_message(
        payload.platform,
        payload.recipient,
        payload.text,
        client_id=payload.client_id,
    )


@router.get("/messages", response_model=MessageListResponse)
async def list_messages(
    limit: int = Query(50, ge=1, le=1000),
    platform: Optional[str] = None,
    bus: MessageBus = Depends(get_message_bus),
):
    if platform:
        messages = bus.get_messages_by_platform(platform, limit)
    else:
        messages = bus.get_messages(limit)
    return MessageListResponse(messages=messages, count=len(messages))


@router.get("/messages/forwarded", response_model=MessageListResponse)
async def list_forwarded_messages(
    limit: int = Query(50, ge=1, le=1000),
    bus: MessageBus = Depends(get_message_bus),
):
    messages = bus.get_forwarded_messages(limit)
    return MessageListResponse(messages=messages, count=len(messages))


@router.get("/messages/from/{user_id}", response_model=MessageListResponse)
async def list_messages_forwarded_from(
    user_id: str,
    limit: int = Query(50, ge=1, le=1000),
    bus: MessageBus = Depends(get_message_bus),
):
    """Forwarded messages whose original sender has this user id or username."""
    messages = bus.get_messages_forwarded_from(user_id, limit)
    return MessageListResponse(messages=messages, count=len(messages))


@router.post("/messages/reply", response_model=SendResult)
async def reply_to_message(
    payload: ReplyRequest,
    bus: MessageBus = Depends(get_message_bus),
    manager: PlatformManager = Depends(get_platform_manager),
):
    """Reply in the Telegram chat the original message came from."""
    original = bus.find_message(payload.message_id, Platform.TELEGRAM.value)
    if original is None or not original.chat_id:
        raise HTTPException(status_code=404, detail="Message not found")

    adapter = manager.get_adapter(Platform.TELEGRAM.value)
    if not isinstance(adapter, TelegramAdapter):
        raise HTTPException(status_code=400, detail="Telegram is not configured")

    return await adapter.send_message(
        original.chat_id,
        payload.text,
        reply_to_message_id=payload.message_id,
    )


@router.delete("/messages")
async def clear_messages(bus: MessageBus = Depends(get_message_bus)):
    bus.clear_messages()
    return {"success": True, "message": "Messages cleared"}
