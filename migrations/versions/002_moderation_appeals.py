"""Moderation appeals

Revision ID: 002
Revises: 001
Create Date: 2025-04-02 11:30:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


APPEAL_STATUSES = ('pending', 'approved', 'rejected')


def upgrade() -> None:
    appeal_status = postgresql.ENUM(*APPEAL_STATUSES, name='appealstatus')
    appeal_status.create(op.get_bind(), checkfirst=True)

    op.add_column('moderation_queue', sa.Column('author_id', sa.Uuid(), nullable=True))
    op.create_foreign_key('fk_moderation_queue_author_id', 'moderation_queue', 'users', ['author_id'], ['id'])

    op.create_table('moderation_appeals',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('queue_item_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('additional_info', sa.Text(), nullable=True),
        sa.Column('status', postgresql.ENUM(*APPEAL_STATUSES, name='appealstatus', create_type=False), nullable=False),
        sa.Column('moderator_notes', sa.Text(), nullable=True),
        sa.Column('reviewed_by', sa.Uuid(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['queue_item_id'], ['moderation_queue.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['reviewed_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_moderation_appeals_queue_item_id', 'moderation_appeals', ['queue_item_id'], unique=False)
    op.create_index('idx_moderation_appeals_user_id', 'moderation_appeals', ['user_id'], unique=False)
    op.create_index('idx_moderation_appeals_status', 'moderation_appeals', ['status'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_moderation_appeals_status', table_name='moderation_appeals')
    op.drop_index('idx_moderation_appeals_user_id', table_name='moderation_appeals')
    op.drop_index('idx_moderation_appeals_queue_item_id', table_name='moderation_appeals')
    op.drop_table('moderation_appeals')

    op.drop_constraint('fk_moderation_queue_author_id', 'moderation_queue', type_='foreignkey')
    op.drop_column('moderation_queue', 'author_id')

    postgresql.ENUM(name='appealstatus').drop(op.get_bind(), checkfirst=True)
