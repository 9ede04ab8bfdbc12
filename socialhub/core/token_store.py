"""
Encrypted credential storage keyed by (client, platform).

Each save is one database transaction covering the client row, the
connection row and the encrypted token row, so a failure part-way leaves the
previous state untouched. The store never decides when to refresh: expired
tokens are still returned and callers inspect TokenData.is_expired.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from socialhub.core.errors import TokenStorageError
from socialhub.core.security import TokenCipher
from socialhub.models.database import (
    Client,
    ClientPlatformConnection,
    EncryptedToken,
    TokenRefreshLog,
    generate_uuid,
)
from socialhub.models.schemas import (
    REDACTED,
    ConnectorStatus,
    EncryptedToken as SealedToken,
    SaveTokenParams,
    TokenData,
    TokenRefreshLogParams,
)

logger = logging.getLogger(__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TokenStore:
    """Persists encrypted OAuth credentials for client platform connections."""

    def __init__(
        self,
        cipher: TokenCipher,
        session_factory: Optional[async_sessionmaker] = None,
    ):
        if session_factory is None:
            from socialhub.core.database import async_session_factory
            session_factory = async_session_factory
        self._cipher = cipher
        self._session_factory = session_factory

    # --- Writes ---

    async def save_token(self, params: SaveTokenParams) -> TokenData:
        """Encrypt and upsert a client's credentials for a platform, atomically."""
        expires_at = params.expires_at()
        token_data = TokenData(
            access_token=params.access_token,
            refresh_token=params.refresh_token,
            id_token=params.id_token,
            token_type=params.token_type or "Bearer",
            scope=params.scope,
            expires_at=expires_at,
            extra=params.profile,
        )
        sealed = self._cipher.encrypt(token_data)

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await self._ensure_client(session, params)
                    connection = await self._upsert_connection(session, params, expires_at)
                    await self._upsert_encrypted_token(session, connection.id, sealed)
        except Exception as e:
            logger.error(
                f"Failed to save token for client {params.client_id} on {params.platform}: {e}"
            )
            raise TokenStorageError("Failed to save token") from e

        logger.info(f"Token saved for client {params.client_id} on {params.platform}")
        return token_data

    async def _ensure_client(self, session: AsyncSession, params: SaveTokenParams) -> Client:
        client = await session.get(Client, params.client_id)
        if client is None:
            name = (
                f"{params.external_name} ({params.platform})"
                if params.external_name
                else f"Client {params.client_id[:8]}"
            )
            client = Client(id=params.client_id, name=name)
            session.add(client)
            await session.flush()
            logger.info(f"Provisioned client {params.client_id}")
        return client

    async def _upsert_connection(
        self,
        session: AsyncSession,
        params: SaveTokenParams,
        expires_at: Optional[datetime],
    ) -> ClientPlatformConnection:
        result = await session.execute(
            select(ClientPlatformConnection).where(
                ClientPlatformConnection.client_id == params.client_id,
                ClientPlatformConnection.platform == params.platform,
            )
        )
        connection = result.scalar_one_or_none()

        if connection is None:
            connection = ClientPlatformConnection(
                id=generate_uuid(),
                client_id=params.client_id,
                platform=params.platform,
            )
            session.add(connection)

        connection.status = ConnectorStatus.CONNECTED.value
        connection.access_token = REDACTED
        connection.refresh_token = REDACTED if params.refresh_token else None
        connection.token_type = params.token_type or "Bearer"
        connection.expires_at = expires_at

        # Profile fields are only overwritten when the caller supplies them,
        # so a refresh does not wipe what the original authorization recorded.
        if params.external_account_id is not None:
            connection.external_account_id = params.external_account_id
        if params.external_name is not None:
            connection.external_name = params.external_name
        if params.external_handle is not None:
            connection.external_handle = params.external_handle
        if params.scope is not None:
            connection.scopes_granted = params.scope
        if params.profile is not None:
            connection.extra = params.profile

        await session.flush()
        return connection

    async def _upsert_encrypted_token(
        self,
        session: AsyncSession,
        connection_id: str,
        sealed: SealedToken,
    ) -> None:
        result = await session.execute(
            select(EncryptedToken).where(EncryptedToken.connection_id == connection_id)
        )
        row = result.scalar_one_or_none()

        if row is None:
            row = EncryptedToken(connection_id=connection_id)
            session.add(row)

        row.encrypted_data = sealed.encrypted
        row.nonce = sealed.nonce
        row.auth_tag = sealed.auth_tag
        await session.flush()

    async def delete_token(self, client_id: str, platform: str) -> bool:
        """
        Remove the encrypted credentials and mark the connection DISCONNECTED.
        The connection row itself is kept for the audit trail.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    connection = await self._find_connection(session, client_id, platform)
                    if connection is None:
                        return False

                    await session.execute(
                        delete(EncryptedToken).where(EncryptedToken.connection_id == connection.id)
                    )
                    connection.status = ConnectorStatus.DISCONNECTED.value
                    connection.access_token = None
                    connection.refresh_token = None
                    connection.expires_at = None
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete token for client {client_id} on {platform}: {e}")
            return False

        logger.info(f"Token deleted for client {client_id} on {platform}")
        return True

    async def log_token_refresh(self, params: TokenRefreshLogParams) -> None:
        """Append one refresh attempt to the audit log."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(TokenRefreshLog(
                        connection_id=params.connection_id,
                        platform=params.platform,
                        success=params.success,
                        error_message=params.error_message,
                        old_expires_at=params.old_expires_at,
                        new_expires_at=params.new_expires_at,
                    ))
        except SQLAlchemyError as e:
            logger.error(f"Failed to log token refresh for connection {params.connection_id}: {e}")

    # --- Reads ---

    async def get_token(self, client_id: str, platform: str) -> Optional[TokenData]:
        """
        Fetch and decrypt a client's credentials for a platform.

        Returns None when nothing is stored. Expired tokens are returned as-is.
        Raises DecryptionError when the stored blob fails authentication.
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(EncryptedToken)
                    .join(
                        ClientPlatformConnection,
                        EncryptedToken.connection_id == ClientPlatformConnection.id,
                    )
                    .where(
                        ClientPlatformConnection.client_id == client_id,
                        ClientPlatformConnection.platform == platform,
                    )
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load token for client {client_id} on {platform}: {e}")
            raise TokenStorageError("Failed to load token") from e

        if row is None:
            return None

        token_data = self._cipher.decrypt(row.encrypted_data, row.nonce, row.auth_tag)

        if token_data.is_expired:
            logger.warning(f"Token is expired for client {client_id} on {platform}")
            if token_data.refresh_token:
                logger.info(f"Expired token for client {client_id} on {platform} can be refreshed")

        return token_data

    async def is_token_valid(self, client_id: str, platform: str) -> bool:
        """True when usable, unexpired credentials are stored."""
        try:
            token_data = await self.get_token(client_id, platform)
        except Exception as e:
            logger.error(f"Failed to check token validity for client {client_id} on {platform}: {e}")
            return False
        return token_data is not None and not token_data.is_expired

    async def get_connection(
        self, client_id: str, platform: str
    ) -> Optional[ClientPlatformConnection]:
        try:
            async with self._session_factory() as session:
                return await self._find_connection(session, client_id, platform)
        except SQLAlchemyError as e:
            logger.error(f"Failed to get {platform} connection for client {client_id}: {e}")
            return None

    async def get_client_connections(self, client_id: str) -> list[ClientPlatformConnection]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ClientPlatformConnection)
                    .where(ClientPlatformConnection.client_id == client_id)
                    .order_by(ClientPlatformConnection.platform)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to get connections for client {client_id}: {e}")
            return []

    async def get_expiring_tokens(self, within_minutes: int = 30) -> list[ClientPlatformConnection]:
        """
        CONNECTED connections expiring within the window that hold a refresh token.
        Connections without one can only be renewed by the end user re-authorizing.
        """
        now = datetime.now(timezone.utc)
        threshold = now + timedelta(minutes=within_minutes)

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ClientPlatformConnection)
                    .where(
                        ClientPlatformConnection.status == ConnectorStatus.CONNECTED.value,
                        ClientPlatformConnection.expires_at >= now,
                        ClientPlatformConnection.expires_at <= threshold,
                        ClientPlatformConnection.refresh_token.is_not(None),
                    )
                    .order_by(ClientPlatformConnection.expires_at)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to get expiring tokens: {e}")
            return []

    async def get_refresh_logs(self, connection_id: str) -> list[TokenRefreshLog]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(TokenRefreshLog)
                    .where(TokenRefreshLog.connection_id == connection_id)
                    .order_by(TokenRefreshLog.created_at)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to get refresh logs for connection {connection_id}: {e}")
            return []

    @staticmethod
    async def _find_connection(
        session: AsyncSession, client_id: str, platform: str
    ) -> Optional[ClientPlatformConnection]:
        result = await session.execute(
            select(ClientPlatformConnection).where(
                ClientPlatformConnection.client_id == client_id,
                ClientPlatformConnection.platform == platform,
            )
        )
        return result.scalar_one_or_none()
