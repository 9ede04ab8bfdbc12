"""
SQLAlchemy ORM models for clients, platform connections and their
encrypted credentials.

Plaintext tokens never land in these tables: the connection row only keeps
the redaction marker ("***") in access_token / refresh_token, and the real
material lives in encrypted_tokens as AES-GCM ciphertext.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Index,
    JSON,
)
from sqlalchemy.orm import relationship

from socialhub.core.database import Base
from socialhub.models.schemas import ConnectorStatus


def utcnow():
    return datetime.now(timezone.utc)


def generate_uuid():
    return str(uuid.uuid4())


class Client(Base):
    __tablename__ = "clients"

    id = Column(String(64), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    connections = relationship("ClientPlatformConnection", back_populates="client")

    def __repr__(self):
        return f"<Client {self.id}>"


class ClientPlatformConnection(Base):
    """One client's connection to one platform. Kept after disconnect for audit."""
    __tablename__ = "client_platform_connections"

    id = Column(String(64), primary_key=True, default=generate_uuid)
    client_id = Column(String(64), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default=ConnectorStatus.CONNECTED.value)
    access_token = Column(String(16), nullable=True)   # redaction marker only
    refresh_token = Column(String(16), nullable=True)  # redaction marker only
    token_type = Column(String(50), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    external_account_id = Column(String(255), nullable=True)
    external_name = Column(String(255), nullable=True)
    external_handle = Column(String(255), nullable=True)
    scopes_granted = Column(Text, nullable=True)
    extra = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Unique constraint: one connection per client per platform
    __table_args__ = (
        UniqueConstraint("client_id", "platform", name="uq_client_platform"),
        Index("idx_connections_expiry", "status", "expires_at"),
    )

    # Relationships
    client = relationship("Client", back_populates="connections")
    encrypted_token = relationship(
        "EncryptedToken",
        back_populates="connection",
        uselist=False,
        cascade="all, delete-orphan",
    )
    refresh_logs = relationship("TokenRefreshLog", back_populates="connection")

    def __repr__(self):
        return f"<ClientPlatformConnection {self.platform} for client {self.client_id}>"


class EncryptedToken(Base):
    """AES-256-GCM sealed TokenData for a connection (hex encoded)."""
    __tablename__ = "encrypted_tokens"

    id = Column(String(64), primary_key=True, default=generate_uuid)
    connection_id = Column(
        String(64),
        ForeignKey("client_platform_connections.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    encrypted_data = Column(Text, nullable=False)
    nonce = Column(String(64), nullable=False)
    auth_tag = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    connection = relationship("ClientPlatformConnection", back_populates="encrypted_token")


class TokenRefreshLog(Base):
    """Append-only audit trail: one row per refresh attempt."""
    __tablename__ = "token_refresh_logs"

    id = Column(String(64), primary_key=True, default=generate_uuid)
    connection_id = Column(
        String(64),
        ForeignKey("client_platform_connections.id", ondelete="CASCADE"),
        nullable=False,
    )
    platform = Column(String(50), nullable=False)
    success = Column(Boolean, nullable=False)
    error_message = Column(Text, nullable=True)
    old_expires_at = Column(DateTime(timezone=True), nullable=True)
    new_expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_refresh_logs_connection", "connection_id"),
    )

    # Relationships
    connection = relationship("ClientPlatformConnection", back_populates="refresh_logs")

    def __repr__(self):
        return f"<TokenRefreshLog {self.platform} success={self.success}>"
