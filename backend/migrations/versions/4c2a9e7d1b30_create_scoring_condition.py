"""create scoring_condition table

Revision ID: 4c2a9e7d1b30
Revises:
Create Date: 2026-10-16 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9e7d1b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if 'scoring_condition' in insp.get_table_names():
        return
    op.create_table(
        'scoring_condition',
        sa.Column('id', sa.String(length=128), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('source', sa.Text(), nullable=False),
        sa.Column('compiled_source', sa.Text(), nullable=True),
        sa.Column('target_contribution', sa.Float(), nullable=False, server_default='0'),
        sa.Column('is_global', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('test_cases', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )


def downgrade():
    op.drop_table('scoring_condition')
