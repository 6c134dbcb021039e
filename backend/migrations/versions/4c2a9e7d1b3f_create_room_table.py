"""create room table

Revision ID: 4c2a9e7d1b3f
Revises:
Create Date: 2026-10-17 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9e7d1b3f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if 'room' in insp.get_table_names():
        return
    op.create_table(
        'room',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_id', sa.String(length=8), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('users', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
    )
    with op.batch_alter_table('room') as batch_op:
        batch_op.create_index('ix_room_room_id', ['room_id'], unique=True)
        batch_op.create_index('ix_room_created_at', ['created_at'])
        batch_op.create_index('ix_room_is_active', ['is_active'])


def downgrade():
    with op.batch_alter_table('room') as batch_op:
        batch_op.drop_index('ix_room_is_active')
        batch_op.drop_index('ix_room_created_at')
        batch_op.drop_index('ix_room_room_id')
    op.drop_table('room')
