"""Customers, buys and buy items

Revision ID: 001
Revises:
Create Date: 2026-10-16

WHY: The invoice email is generated from a buy, its line items and its
customer; these are the tables it reads.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create customers, buys and buy_items."""
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_customers_id', 'customers', ['id'])
    op.create_index('ix_customers_email', 'customers', ['email'])

    op.create_table(
        'buys',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('purchased_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_buys_id', 'buys', ['id'])
    op.create_index('ix_buys_customer_id', 'buys', ['customer_id'])

    op.create_table(
        'buy_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('buy_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['buy_id'], ['buys.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_buy_items_id', 'buy_items', ['id'])
    op.create_index('ix_buy_items_buy_id', 'buy_items', ['buy_id'])


def downgrade() -> None:
    """Drop buy_items, buys and customers."""
    op.drop_index('ix_buy_items_buy_id', table_name='buy_items')
    op.drop_index('ix_buy_items_id', table_name='buy_items')
    op.drop_table('buy_items')

    op.drop_index('ix_buys_customer_id', table_name='buys')
    op.drop_index('ix_buys_id', table_name='buys')
    op.drop_table('buys')

    op.drop_index('ix_customers_email', table_name='customers')
    op.drop_index('ix_customers_id', table_name='customers')
    op.drop_table('customers')
