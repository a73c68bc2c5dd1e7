"""Cart submission status and write revision

Revision ID: 20261020_cart_status
Revises: 20261019_cart_entries
Create Date: 2026-10-20

This migration adds:
1. cart_entries.status (OPEN | SUBMITTING while a sale is in flight)
2. cart_entries.revision (bumped on every save; stale writers are refused)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261020_cart_status'
down_revision = '20261019_cart_entries'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('cart_entries', schema=None) as batch_op:
        batch_op.add_column(sa.Column('status', sa.String(length=16), server_default='OPEN', nullable=False))
        batch_op.add_column(sa.Column('revision', sa.Integer(), server_default='0', nullable=False))


def downgrade():
    with op.batch_alter_table('cart_entries', schema=None) as batch_op:
        batch_op.drop_column('revision')
        batch_op.drop_column('status')
