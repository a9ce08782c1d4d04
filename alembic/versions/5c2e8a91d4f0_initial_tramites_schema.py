"""initial_tramites_schema

Crea las tablas de trámites (requisiciones, reposiciones), el directorio de
roles y las tablas de notificaciones push.

Revision ID: 5c2e8a91d4f0
Revises:
Create Date: 2026-03-02 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5c2e8a91d4f0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _tramite_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('folio', sa.String(length=20), nullable=False, unique=True),
        sa.Column('estado', sa.String(length=30), nullable=False, server_default='pendiente'),
        sa.Column('solicitado_por', sa.String(length=64), nullable=False),
        sa.Column('autorizador_id', sa.String(length=64), nullable=True),
        sa.Column('asunto', sa.String(length=300), nullable=True),
        sa.Column('justificacion', sa.Text(), nullable=True),
        sa.Column('monto', sa.Numeric(15, 2), nullable=True),
        sa.Column('justificacion_rechazo', sa.Text(), nullable=True),
        sa.Column('autorizado_por', sa.String(length=64), nullable=True),
    ]


def upgrade() -> None:
    # Requisiciones
    op.create_table(
        'requisiciones',
        *_tramite_columns(),
        sa.Column('fecha_autorizacion_real', sa.DateTime(timezone=True), nullable=True),
        sa.Column('licitado_por', sa.String(length=64), nullable=True),
        sa.Column('fecha_licitacion', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pedido_colocado_por', sa.String(length=64), nullable=True),
        sa.Column('fecha_pedido_colocado', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pedido_autorizado_por', sa.String(length=64), nullable=True),
        sa.Column('fecha_pedido_autorizado', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pagado_por', sa.String(length=64), nullable=True),
        sa.Column('fecha_pago', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    for column in ('estado', 'solicitado_por', 'autorizador_id'):
        op.create_index(f'ix_requisiciones_{column}', 'requisiciones', [column])

    # Reposiciones
    op.create_table(
        'reposiciones',
        *_tramite_columns(),
        sa.Column('fecha_autorizacion', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pagado_por', sa.String(length=64), nullable=True),
        sa.Column('fecha_pago', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    for column in ('estado', 'solicitado_por', 'autorizador_id'):
        op.create_index(f'ix_reposiciones_{column}', 'reposiciones', [column])

    # Directorio de roles
    op.create_table(
        'user_roles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])
    op.create_index('ix_user_roles_role', 'user_roles', ['role'])

    # Notificaciones
    op.create_table(
        'notification_preferences',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(length=64), nullable=False, unique=True),
        sa.Column('notify_requisiciones', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notify_reposiciones', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_table(
        'push_subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(length=64), nullable=False, unique=True),
        sa.Column('endpoint', sa.Text(), nullable=False),
        sa.Column('p256dh', sa.String(length=255), nullable=False),
        sa.Column('auth', sa.String(length=255), nullable=False),
        *_timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_table(
        'scheduled_notifications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('created_by', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('notification_type', sa.String(length=20), nullable=False),
        sa.Column('target_role', sa.String(length=50), nullable=True),
        sa.Column('target_user_id', sa.String(length=64), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('recipients_count', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_scheduled_notifications_scheduled_at', 'scheduled_notifications', ['scheduled_at'])
    op.create_index('ix_scheduled_notifications_status', 'scheduled_notifications', ['status'])


def downgrade() -> None:
    op.drop_table('scheduled_notifications')
    op.drop_table('push_subscriptions')
    op.drop_table('notification_preferences')
    op.drop_table('user_roles')
    op.drop_table('reposiciones')
    op.drop_table('requisiciones')
