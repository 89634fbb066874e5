"""add_time_entry_version

Revision ID: 5c9e2a7d4f13
Revises: d47c1b9e3a52
Create Date: 2026-10-18 09:12:44.201517

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c9e2a7d4f13'
down_revision: Union[str, Sequence[str], None] = 'd47c1b9e3a52'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column(
        'time_entries',
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table('time_entries') as batch_op:
        batch_op.drop_column('version_id')
