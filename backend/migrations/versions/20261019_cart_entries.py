"""Durable per-operator carts

Revision ID: 20261019_cart_entries
Revises:
Create Date: 2026-10-19

This migration adds:
1. cart_entries (one serialized in-progress cart per operator storage key)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_cart_entries'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('cart_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('storage_key', sa.String(length=191), nullable=False),
        sa.Column('operator_id', sa.Integer(), nullable=True),
        sa.Column('operator_username', sa.String(length=150), nullable=True),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('line_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('storage_key', name='uq_cart_entries_storage_key'),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table('cart_entries', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cart_entries_operator_id'), ['operator_id'], unique=False)


def downgrade():
    with op.batch_alter_table('cart_entries', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_cart_entries_operator_id'))

    op.drop_table('cart_entries')
