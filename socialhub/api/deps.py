"""
FastAPI dependencies for the long-lived services built by create_app().
"""
from fastapi import Request

from socialhub.adapters.registry import PlatformManager
from socialhub.core.config import Settings
from socialhub.core.message_bus import MessageBus
from socialhub.core.token_store import TokenStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_message_bus(request: Request) -> MessageBus:
    return request.app.state.message_bus


def get_platform_manager(request: Request) -> PlatformManager:
    return request.app.state.platform_manager


def get_token_store(request: Request) -> TokenStore:
    return request.app.state.token_store
