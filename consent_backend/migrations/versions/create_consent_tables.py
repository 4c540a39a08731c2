"""create policy_versions and user_consents

Revision ID: create_consent_tables
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'create_consent_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


policy_type_enum = sa.Enum('privacy_policy', 'terms_of_service', name='policy_type')


def upgrade() -> None:
    op.create_table(
        'policy_versions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('policy_type', policy_type_enum, nullable=False),
        sa.Column('version', sa.String(50), nullable=False),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('is_current', sa.Boolean(), nullable=False, server_default='false'),
        sa.UniqueConstraint('policy_type', 'version', name='uq_policy_versions_type_version'),
    )
    op.create_index(
        'uq_policy_versions_current',
        'policy_versions',
        ['policy_type'],
        unique=True,
        postgresql_where=sa.text('is_current'),
    )

    op.create_table(
        'user_consents',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('privacy_policy_accepted', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('privacy_policy_version', sa.String(50), nullable=True),
        sa.Column('privacy_policy_accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('terms_of_service_accepted', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('terms_of_service_version', sa.String(50), nullable=True),
        sa.Column('terms_of_service_accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', name='uq_user_consents_user_id'),
    )


def downgrade() -> None:
    op.drop_table('user_consents')
    op.drop_index('uq_policy_versions_current', table_name='policy_versions')
    op.drop_table('policy_versions')
    policy_type_enum.drop(op.get_bind(), checkfirst=True)
