"""Initial schema for cases, case_history and active_devices

Revision ID: 001_board_schema
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_board_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the three board tables."""
    op.create_table(
        'cases',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('casenumber', sa.String(length=200), nullable=False),
        sa.Column('department', sa.String(length=20), nullable=False),
        sa.Column('due', sa.DateTime(timezone=True), nullable=False),
        sa.Column('priority', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('modifiers', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_cases_casenumber', 'cases', ['casenumber'])
    op.create_index('ix_cases_department', 'cases', ['department'])
    op.create_index('ix_cases_due', 'cases', ['due'])
    op.create_index('ix_cases_archived', 'cases', ['archived'])

    op.create_table(
        'case_history',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('case_id', sa.String(length=36), nullable=False),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('user_name', sa.String(length=100), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_case_history_case_id', 'case_history', ['case_id'])
    op.create_index('ix_case_history_created_at', 'case_history', ['created_at'])

    op.create_table(
        'active_devices',
        sa.Column('user_name', sa.String(length=100), nullable=False),
        sa.Column('app_version', sa.String(length=50), nullable=False),
        sa.Column('last_seen', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('user_name')
    )


def downgrade() -> None:
    """Drop the board tables."""
    op.drop_table('active_devices')
    op.drop_index('ix_case_history_created_at', table_name='case_history')
    op.drop_index('ix_case_history_case_id', table_name='case_history')
    op.drop_table('case_history')
    op.drop_index('ix_cases_archived', table_name='cases')
    op.drop_index('ix_cases_due', table_name='cases')
    op.drop_index('ix_cases_department', table_name='cases')
    op.drop_index('ix_cases_casenumber', table_name='cases')
    op.drop_table('cases')
