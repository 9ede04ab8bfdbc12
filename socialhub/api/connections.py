"""
Client connection API — store, inspect, refresh and revoke client credentials.

The OAuth code exchange itself happens outside the hub; callers post the
resulting token material here and the hub keeps it encrypted.

Endpoints:
  GET    /api/clients/{client_id}/connections                       — list connections
  POST   /api/clients/{client_id}/connections/{platform}            — save credentials
  GET    /api/clients/{client_id}/connections/{platform}            — one connection
  DELETE /api/clients/{client_id}/connections/{platform}            — revoke credentials
  POST   /api/clients/{client_id}/connections/{platform}/refresh    — refresh now
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from socialhub.api.deps import get_app_settings, get_token_store
from socialhub.core.config import Settings
from socialhub.core.errors import TokenStorageError
from socialhub.core.token_store import TokenStore, as_utc
from socialhub.models.database import ClientPlatformConnection
from socialhub.models.schemas import (
    ConnectionResponse,
    ConnectRequest,
    Platform,
    SaveTokenParams,
)
from socialhub.tasks.token_refresh import TokenRefresher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clients/{client_id}/connections", tags=["connections"])


def _to_response(connection: ClientPlatformConnection) -> ConnectionResponse:
    expires_at = as_utc(connection.expires_at)
    return ConnectionResponse(
        id=connection.id,
        client_id=connection.client_id,
        platform=connection.platform,
        status=connection.status,
        token_type=connection.token_type,
        expires_at=expires_at.isoformat() if expires_at else None,
        external_account_id=connection.external_account_id,
        external_name=connection.external_name,
        external_handle=connection.external_handle,
        scopes_granted=connection.scopes_granted,
    )


@router.get("", response_model=list[ConnectionResponse])
async def list_connections(
    client_id: str,
    store: TokenStore = Depends(get_token_store),
):
    connections = await store.get_client_connections(client_id)
    return [_to_response(c) for c in connections]


@router.post("/{platform}", response_model=ConnectionResponse)
async def save_connection(
    client_id: str,
    platform: Platform,
    payload: ConnectRequest,
    store: TokenStore = Depends(get_token_store),
):
    """Encrypt and store credentials, replacing any previous ones for this platform."""
    params = SaveTokenParams(client_id=client_id, platform=platform, **payload.model_dump())
    try:
        await store.save_token(params)
    except TokenStorageError:
        raise HTTPException(status_code=500, detail="Failed to save credentials")

    connection = await store.get_connection(client_id, platform.value)
    if connection is None:
        raise HTTPException(status_code=500, detail="Failed to save credentials")
    return _to_response(connection)


@router.get("/{platform}", response_model=ConnectionResponse)
async def get_connection(
    client_id: str,
    platform: Platform,
    store: TokenStore = Depends(get_token_store),
):
    connection = await store.get_connection(client_id, platform.value)
    if connection is None:
        raise HTTPException(status_code=404, detail="Connection not found")
    return _to_response(connection)


@router.delete("/{platform}")
async def delete_connection(
    client_id: str,
    platform: Platform,
    store: TokenStore = Depends(get_token_store),
):
    """Revoke stored credentials. The connection stays listed as disconnected."""
    deleted = await store.delete_token(client_id, platform.value)
    if not deleted:
        raise HTTPException(status_code=404, detail="Connection not found")
    return {"success": True, "message": f"{platform.value} disconnected"}


@router.post("/{platform}/refresh")
async def refresh_connection(
    client_id: str,
    platform: Platform,
    store: TokenStore = Depends(get_token_store),
    settings: Settings = Depends(get_app_settings),
):
    connection = await store.get_connection(client_id, platform.value)
    if connection is None:
        raise HTTPException(status_code=404, detail="Connection not found")

    refreshed = await TokenRefresher(store, settings).refresh_token(client_id, platform.value)
    return {"success": refreshed}
