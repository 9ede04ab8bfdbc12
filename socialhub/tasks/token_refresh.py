"""
OAuth token refresh.

Two strategies, chosen by platform:
  - refresh-token grant: youtube (Google), slack, twitter
  - long-lived token exchange: facebook, instagram (fb_exchange_token)
Any other platform fails closed.

Every attempt on a known connection is written to the refresh log before
refresh_token() returns. The sweep refreshes connections one at a time so a
provider is never hit with parallel refreshes of the same connection, and one
failure never stops the rest.

The sweep runs in the Celery worker, triggered by Celery Beat every
TOKEN_REFRESH_INTERVAL_SECONDS.
"""
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

import httpx

from socialhub.core.celery_app import celery
from socialhub.core.config import Settings, get_settings
from socialhub.core.errors import TokenRefreshError, describe_http_error
from socialhub.core.token_store import TokenStore, as_utc
from socialhub.models.schemas import (
    Platform,
    RefreshSummary,
    SaveTokenParams,
    TokenData,
    TokenRefreshLogParams,
)

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 15

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
SLACK_TOKEN_URL = "https://slack.com/api/oauth.v2.access"
TWITTER_TOKEN_URL = "https://api.twitter.com/2/oauth2/token"
META_TOKEN_URL = "https://graph.facebook.com/{version}/oauth/access_token"

Strategy = Callable[[str, str, TokenData], Awaitable[Optional[datetime]]]


class TokenRefresher:
    """Renews stored OAuth credentials before they expire."""

    def __init__(self, storage: TokenStore, settings: Optional[Settings] = None):
        self.storage = storage
        self.settings = settings or get_settings()
        self._strategies: dict[str, Strategy] = {
            Platform.YOUTUBE.value: self._refresh_google_token,
            Platform.SLACK.value: self._refresh_slack_token,
            Platform.TWITTER.value: self._refresh_twitter_token,
            Platform.FACEBOOK.value: self._exchange_meta_token,
            Platform.INSTAGRAM.value: self._exchange_meta_token,
        }

    def supports(self, platform: str) -> bool:
        return platform in self._strategies

    async def refresh_token(self, client_id: str, platform: str) -> bool:
        """Refresh one connection's credentials. Never raises."""
        try:
            connection = await self.storage.get_connection(client_id, platform)
        except Exception as e:
            logger.error(f"Token refresh lookup failed for client {client_id} on {platform}: {e}")
            return False

        if connection is None:
            logger.warning(f"No connection to refresh for client {client_id} on {platform}")
            return False

        old_expires_at = as_utc(connection.expires_at)
        new_expires_at = None
        error_message = None

        try:
            strategy = self._strategies.get(platform)
            if strategy is None:
                raise TokenRefreshError(f"Token refresh not implemented for platform {platform}")

            token_data = await self.storage.get_token(client_id, platform)
            if token_data is None:
                raise TokenRefreshError("No stored credentials")

            new_expires_at = await strategy(client_id, platform, token_data)
            logger.info(f"Token refreshed for client {client_id} on {platform}")

        except TokenRefreshError as e:
            error_message = str(e)
            logger.warning(f"Token refresh skipped for client {client_id} on {platform}: {e}")
        except Exception as e:
            error_message = describe_http_error(e)
            logger.error(f"Token refresh failed for client {client_id} on {platform}: {error_message}")

        success = error_message is None
        await self.storage.log_token_refresh(TokenRefreshLogParams(
            connection_id=connection.id,
            platform=platform,
            success=success,
            error_message=error_message,
            old_expires_at=old_expires_at,
            new_expires_at=new_expires_at,
        ))
        return success

    async def refresh_expiring_tokens(self, within_minutes: Optional[int] = None) -> RefreshSummary:
        """Sweep: refresh every connection that expires within the window."""
        window = within_minutes if within_minutes is not None else self.settings.TOKEN_REFRESH_WINDOW_MINUTES
        summary = RefreshSummary()

        connections = await self.storage.get_expiring_tokens(window)
        summary.total = len(connections)
        logger.info(f"Found {len(connections)} expiring tokens")

        for connection in connections:
            label = f"{connection.client_id}:{connection.platform}"
            try:
                ok = await self.refresh_token(connection.client_id, connection.platform)
            except Exception as e:
                logger.error(f"Unexpected error refreshing {label}: {e}", exc_info=True)
                ok = False

            if ok:
                summary.refreshed.append(label)
            else:
                summary.failed.append(label)

        logger.info(
            f"Token refresh sweep done: {len(summary.refreshed)} refreshed, "
            f"{len(summary.failed)} failed"
        )
        return summary

    # --- Strategies ---

    async def _refresh_google_token(self, client_id: str, platform: str, token: TokenData) -> Optional[datetime]:
        return await self._refresh_grant(
            client_id,
            platform,
            token,
            GOOGLE_TOKEN_URL,
            data={
                "client_id": self.settings.GOOGLE_CLIENT_ID,
                "client_secret": self.settings.GOOGLE_CLIENT_SECRET,
            },
        )

    async def _refresh_slack_token(self, client_id: str, platform: str, token: TokenData) -> Optional[datetime]:
        return await self._refresh_grant(
            client_id,
            platform,
            token,
            SLACK_TOKEN_URL,
            data={
                "client_id": self.settings.SLACK_CLIENT_ID,
                "client_secret": self.settings.SLACK_CLIENT_SECRET,
            },
        )

    async def _refresh_twitter_token(self, client_id: str, platform: str, token: TokenData) -> Optional[datetime]:
        return await self._refresh_grant(
            client_id,
            platform,
            token,
            TWITTER_TOKEN_URL,
            data={"client_id": self.settings.TWITTER_CLIENT_ID},
            auth=(self.settings.TWITTER_CLIENT_ID, self.settings.TWITTER_CLIENT_SECRET),
        )

    async def _refresh_grant(
        self,
        client_id: str,
        platform: str,
        token: TokenData,
        url: str,
        data: dict,
        auth: Optional[tuple[str, str]] = None,
    ) -> Optional[datetime]:
        """OAuth 2.0 refresh_token grant against a provider's token endpoint."""
        if not token.refresh_token:
            raise TokenRefreshError("No refresh token available")

        form = {**data, "grant_type": "refresh_token", "refresh_token": token.refresh_token}
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            if auth is not None:
                response = await client.post(url, data=form, auth=auth)
            else:
                response = await client.post(url, data=form)
            response.raise_for_status()
            body = response.json()

        return await self._store_refreshed(client_id, platform, token, body)

    async def _exchange_meta_token(self, client_id: str, platform: str, token: TokenData) -> Optional[datetime]:
        """Exchange the current long-lived Meta token for a fresh one."""
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            response = await client.get(
                META_TOKEN_URL.format(version=self.settings.FB_API_VERSION),
                params={
                    "grant_type": "fb_exchange_token",
                    "client_id": self.settings.FB_APP_ID,
                    "client_secret": self.settings.FB_APP_SECRET,
                    "fb_exchange_token": token.access_token,
                },
            )
            response.raise_for_status()
            body = response.json()

        return await self._store_refreshed(client_id, platform, token, body)

    async def _store_refreshed(
        self, client_id: str, platform: str, current: TokenData, body: dict
    ) -> Optional[datetime]:
        # Slack reports failures as HTTP 200 with ok == false
        if body.get("ok") is False or not body.get("access_token"):
            raise TokenRefreshError(describe_provider_error(body))

        params = SaveTokenParams(
            client_id=client_id,
            platform=platform,
            access_token=body["access_token"],
            # Providers that don't rotate refresh tokens omit them
            refresh_token=body.get("refresh_token") or current.refresh_token,
            id_token=body.get("id_token") or current.id_token,
            token_type=body.get("token_type") or current.token_type,
            expires_in=body.get("expires_in"),
            scope=body.get("scope") or current.scope,
            profile=current.extra,
        )
        saved = await self.storage.save_token(params)
        return saved.expires_at


def describe_provider_error(body: dict) -> str:
    error = body.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or "Token refresh rejected")
    return str(body.get("error_description") or error or "Token response did not include an access token")


# --- Celery tasks ---

def _run_async(coro):
    """Helper to run async code in a sync Celery task."""
    return asyncio.run(coro)


@celery.task(name="socialhub.tasks.token_refresh.refresh_expiring_tokens")
def refresh_expiring_tokens():
    """
    Periodic task: refresh OAuth tokens that expire within the configured window.
    Scheduled via Celery Beat.
    """
    return _run_async(_async_refresh_expiring_tokens())


async def _async_refresh_expiring_tokens() -> dict:
    from socialhub.core.database import close_db
    from socialhub.core.security import TokenCipher

    settings = get_settings()
    storage = TokenStore(TokenCipher(settings.TOKEN_ENCRYPTION_KEY))
    try:
        summary = await TokenRefresher(storage, settings).refresh_expiring_tokens()
    finally:
        # Each task runs in a fresh event loop; pooled connections cannot be reused
        await close_db()
    return summary.model_dump()


@celery.task(name="socialhub.tasks.token_refresh.refresh_connection")
def refresh_connection(client_id: str, platform: str):
    """Refresh a single client's connection on demand."""
    return _run_async(_async_refresh_connection(client_id, platform))


async def _async_refresh_connection(client_id: str, platform: str) -> bool:
    from socialhub.core.database import close_db
    from socialhub.core.security import TokenCipher

    settings = get_settings()
    storage = TokenStore(TokenCipher(settings.TOKEN_ENCRYPTION_KEY))
    try:
        return await TokenRefresher(storage, settings).refresh_token(client_id, platform)
    finally:
        await close_db()
