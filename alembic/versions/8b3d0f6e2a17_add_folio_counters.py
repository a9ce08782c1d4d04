"""add_folio_counters

Agrega la tabla de contadores de folio. Cada prefijo (REQ, REP) guarda el
último número emitido; el contador se inicializa desde los folios existentes
la primera vez que se emite un folio con ese prefijo.

Revision ID: 8b3d0f6e2a17
Revises: 5c2e8a91d4f0
Create Date: 2026-10-18 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '8b3d0f6e2a17'
down_revision: Union[str, None] = '5c2e8a91d4f0'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'folio_counters',
        sa.Column('prefijo', sa.String(length=10), primary_key=True),
        sa.Column('ultimo', sa.Integer(), nullable=False, server_default='0'),
    )


def downgrade() -> None:
    op.drop_table('folio_counters')
