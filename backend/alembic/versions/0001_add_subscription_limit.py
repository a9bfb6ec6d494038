"""Add subscription_limit table

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_add_subscription_limit'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


COUNTER_COLUMNS = ('ai_nums', 'enhance_nums', 'upload_limit', 'deploy_limit', 'project_nums')


def upgrade() -> None:
    """Create subscription_limit table for the annual quota ledger."""

    op.create_table(
        'subscription_limit',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.String(255), nullable=False, index=True),

        # Subscription details
        sa.Column('plan_name', sa.String(64), nullable=False),
        sa.Column('billing_interval', sa.String(16), server_default='month', nullable=False),
        sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=False),

        # Billing period dates
        sa.Column('period_start', sa.DateTime(timezone=True)),
        sa.Column('period_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_quota_refresh', sa.DateTime(timezone=True)),

        # Remaining allowances
        sa.Column('ai_nums', sa.Integer, server_default='0', nullable=False),
        sa.Column('enhance_nums', sa.Integer, server_default='0', nullable=False),
        sa.Column('upload_limit', sa.Integer, server_default='0', nullable=False),
        sa.Column('deploy_limit', sa.Integer, server_default='0', nullable=False),
        sa.Column('project_nums', sa.Integer, server_default='0', nullable=False),
        sa.Column('seats', sa.Integer, server_default='1', nullable=False),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),

        *(
            sa.CheckConstraint(f'{column} >= 0', name=f'ck_subscription_limit_{column}_nonnegative')
            for column in COUNTER_COLUMNS
        ),
    )

    # Lookup index for the eligible-row query
    op.create_index(
        'ix_subscription_limit_org_active_interval',
        'subscription_limit',
        ['organization_id', 'is_active', 'billing_interval']
    )


def downgrade() -> None:
    """Drop subscription_limit table."""

    op.drop_index('ix_subscription_limit_org_active_interval', table_name='subscription_limit')
    op.drop_table('subscription_limit')
