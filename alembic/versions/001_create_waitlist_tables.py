"""create registrants and stories tables

Revision ID: 001
Revises: 
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'registrants',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('external_profile', sa.JSON(), nullable=True),
        sa.Column('source', sa.String(20), nullable=False, server_default='manual'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('referral_code', sa.String(16), nullable=False),
        sa.Column('referred_by', sa.String(), nullable=True),
        sa.Column('referral_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('referral_rewards', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('referral_credited', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['referred_by'], ['registrants.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_registrants_id', 'registrants', ['id'])
    op.create_index('uq_registrants_email', 'registrants', ['email'], unique=True)
    # Unique indexes admit any number of NULLs, which gives the sparse semantics
    op.create_index('uq_registrants_external_id', 'registrants', ['external_id'], unique=True)
    op.create_index('uq_registrants_referral_code', 'registrants', ['referral_code'], unique=True)
    op.create_index('ix_registrants_referred_by', 'registrants', ['referred_by'])
    op.create_index('ix_registrants_joined_at', 'registrants', ['joined_at'])

    op.create_table(
        'stories',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('registrant_id', sa.String(), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('source', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['registrant_id'], ['registrants.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stories_id', 'stories', ['id'])
    op.create_index('ix_stories_email_created_at', 'stories', ['email', 'created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_stories_email_created_at', table_name='stories')
    op.drop_index('ix_stories_id', table_name='stories')
    op.drop_table('stories')

    op.drop_index('ix_registrants_joined_at', table_name='registrants')
    op.drop_index('ix_registrants_referred_by', table_name='registrants')
    op.drop_index('uq_registrants_referral_code', table_name='registrants')
    op.drop_index('uq_registrants_external_id', table_name='registrants')
    op.drop_index('uq_registrants_email', table_name='registrants')
    op.drop_index('ix_registrants_id', table_name='registrants')
    op.drop_table('registrants')
