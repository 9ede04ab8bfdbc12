"""Initial schema — clients, platform connections, encrypted tokens, refresh logs

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Clients
    op.create_table(
        'clients',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # One connection per client per platform; token columns hold redaction markers only
    op.create_table(
        'client_platform_connections',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('client_id', sa.String(64), sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('platform', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='CONNECTED'),
        sa.Column('access_token', sa.String(16), nullable=True),
        sa.Column('refresh_token', sa.String(16), nullable=True),
        sa.Column('token_type', sa.String(50), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('external_account_id', sa.String(255), nullable=True),
        sa.Column('external_name', sa.String(255), nullable=True),
        sa.Column('external_handle', sa.String(255), nullable=True),
        sa.Column('scopes_granted', sa.Text, nullable=True),
        sa.Column('extra', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('client_id', 'platform', name='uq_client_platform'),
    )
    op.create_index('idx_connections_expiry', 'client_platform_connections', ['status', 'expires_at'])

    # Encrypted token material (AES-256-GCM, hex)
    op.create_table(
        'encrypted_tokens',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column(
            'connection_id', sa.String(64),
            sa.ForeignKey('client_platform_connections.id', ondelete='CASCADE'),
            nullable=False, unique=True,
        ),
        sa.Column('encrypted_data', sa.Text, nullable=False),
        sa.Column('nonce', sa.String(64), nullable=False),
        sa.Column('auth_tag', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Refresh audit log
    op.create_table(
        'token_refresh_logs',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column(
            'connection_id', sa.String(64),
            sa.ForeignKey('client_platform_connections.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('platform', sa.String(50), nullable=False),
        sa.Column('success', sa.Boolean, nullable=False),
        sa.Column('error_message', sa.Text, nullable=True),
        sa.Column('old_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('new_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_refresh_logs_connection', 'token_refresh_logs', ['connection_id'])


def downgrade() -> None:
    op.drop_table('token_refresh_logs')
    op.drop_table('encrypted_tokens')
    op.drop_table('client_platform_connections')
    op.drop_table('clients')
