"""AgriSmart trust and safety schema

Revision ID: 001
Revises:
Create Date: 2025-03-10 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


ENUMS = {
    'userrole': ('user', 'vendor', 'moderator', 'admin'),
    'contenttype': ('post', 'comment', 'review', 'product', 'message', 'profile', 'resource'),
    'moderationpriority': ('low', 'normal', 'high', 'urgent'),
    'moderationaction': ('approved', 'rejected', 'warning', 'edited', 'removed'),
    'moderationstatus': ('pending', 'in_review', 'needs_review', 'auto_approved', 'auto_rejected', 'approved', 'rejected'),
    'ruletype': ('keyword', 'image', 'user_reputation', 'short_content', 'spam_detection', 'new_user_content'),
    'reviewstatus': ('published', 'flagged', 'hidden'),
    'reviewmoderationstatus': ('pending', 'approved', 'rejected'),
    'reportreason': ('spam', 'offensive', 'irrelevant', 'misleading', 'other'),
    'reportstatus': ('pending', 'dismissed', 'resolved'),
}


def enum(name):
    # Types are created once up front; tables only reference them
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table('users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('role', enum('userrole'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index('idx_users_role', 'users', ['role'], unique=False)

    op.create_table('user_reputations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('reputation_score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )

    op.create_table('moderation_rules',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('content_type', enum('contenttype'), nullable=False),
        sa.Column('rule_type', enum('ruletype'), nullable=False),
        sa.Column('keywords', sa.Text(), nullable=True),
        sa.Column('threshold', sa.Float(), nullable=True),
        sa.Column('priority', enum('moderationpriority'), nullable=False),
        sa.Column('auto_action', enum('moderationaction'), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', 'content_type', name='uq_rule_name_content_type')
    )
    op.create_index('idx_moderation_rules_content_type', 'moderation_rules', ['content_type', 'enabled'], unique=False)

    op.create_table('moderation_queue',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('content_id', sa.String(length=255), nullable=False),
        sa.Column('content_type', enum('contenttype'), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('priority', enum('moderationpriority'), nullable=False),
        sa.Column('status', enum('moderationstatus'), nullable=False),
        sa.Column('action_taken', enum('moderationaction'), nullable=True),
        sa.Column('reporter_id', sa.Uuid(), nullable=True),
        sa.Column('moderator_id', sa.Uuid(), nullable=True),
        sa.Column('auto_flagged', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ai_confidence_score', sa.Float(), nullable=True),
        sa.Column('matched_rules', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['reporter_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['moderator_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_moderation_queue_content', 'moderation_queue', ['content_type', 'content_id'], unique=False)
    op.create_index('idx_moderation_queue_status', 'moderation_queue', ['status'], unique=False)
    op.create_index('idx_moderation_queue_priority', 'moderation_queue', ['priority'], unique=False)
    op.create_index('idx_moderation_queue_created_at', 'moderation_queue', ['created_at'], unique=False)

    op.create_table('moderation_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('queue_item_id', sa.Uuid(), nullable=False),
        sa.Column('status', enum('moderationstatus'), nullable=False),
        sa.Column('action_taken', enum('moderationaction'), nullable=True),
        sa.Column('moderator_id', sa.Uuid(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['queue_item_id'], ['moderation_queue.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['moderator_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_moderation_history_queue_item_id', 'moderation_history', ['queue_item_id'], unique=False)

    op.create_table('marketplace_products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('seller_id', sa.Uuid(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('price', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_marketplace_products_category', 'marketplace_products', ['category'], unique=False)

    op.create_table('marketplace_reviews',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('status', enum('reviewstatus'), nullable=False),
        sa.Column('moderation_status', enum('reviewmoderationstatus'), nullable=True),
        sa.Column('report_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('automatically_flagged', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('moderation_reason', sa.Text(), nullable=True),
        sa.Column('moderated_by', sa.Uuid(), nullable=True),
        sa.Column('moderated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['marketplace_products.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['moderated_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_marketplace_reviews_product_id', 'marketplace_reviews', ['product_id'], unique=False)
    op.create_index('idx_marketplace_reviews_moderation', 'marketplace_reviews', ['moderation_status', 'report_count'], unique=False)

    op.create_table('marketplace_review_reports',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('review_id', sa.Uuid(), nullable=False),
        sa.Column('reporter_id', sa.Uuid(), nullable=False),
        sa.Column('reason', enum('reportreason'), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', enum('reportstatus'), nullable=False),
        sa.Column('resolved_by', sa.Uuid(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['review_id'], ['marketplace_reviews.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reporter_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['resolved_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_review_reports_review_id', 'marketplace_review_reports', ['review_id'], unique=False)
    op.create_index('idx_review_reports_reporter_id', 'marketplace_review_reports', ['reporter_id'], unique=False)
    op.create_index('idx_review_reports_status', 'marketplace_review_reports', ['status'], unique=False)

    op.create_table('audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('action_type', sa.String(length=50), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('user_role', sa.String(length=50), nullable=True),
        sa.Column('action_data', sa.JSON(), nullable=False),
        sa.Column('previous_state', sa.JSON(), nullable=True),
        sa.Column('new_state', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('correlation_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_audit_logs_action_type', 'audit_logs', ['action_type'], unique=False)
    op.create_index('idx_audit_logs_entity', 'audit_logs', ['entity_type', 'entity_id'], unique=False)
    op.create_index('idx_audit_logs_user_id', 'audit_logs', ['user_id'], unique=False)
    op.create_index('idx_audit_logs_created_at', 'audit_logs', ['created_at'], unique=False)

    op.create_table('settings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key')
    )


def downgrade() -> None:
    op.drop_table('settings')

    op.drop_index('idx_audit_logs_created_at', table_name='audit_logs')
    op.drop_index('idx_audit_logs_user_id', table_name='audit_logs')
    op.drop_index('idx_audit_logs_entity', table_name='audit_logs')
    op.drop_index('idx_audit_logs_action_type', table_name='audit_logs')
    op.drop_table('audit_logs')

    op.drop_index('idx_review_reports_status', table_name='marketplace_review_reports')
    op.drop_index('idx_review_reports_reporter_id', table_name='marketplace_review_reports')
    op.drop_index('idx_review_reports_review_id', table_name='marketplace_review_reports')
    op.drop_table('marketplace_review_reports')

    op.drop_index('idx_marketplace_reviews_moderation', table_name='marketplace_reviews')
    op.drop_index('idx_marketplace_reviews_product_id', table_name='marketplace_reviews')
    op.drop_table('marketplace_reviews')

    op.drop_index('idx_marketplace_products_category', table_name='marketplace_products')
    op.drop_table('marketplace_products')

    op.drop_index('idx_moderation_history_queue_item_id', table_name='moderation_history')
    op.drop_table('moderation_history')

    op.drop_index('idx_moderation_queue_created_at', table_name='moderation_queue')
    op.drop_index('idx_moderation_queue_priority', table_name='moderation_queue')
    op.drop_index('idx_moderation_queue_status', table_name='moderation_queue')
    op.drop_index('idx_moderation_queue_content', table_name='moderation_queue')
    op.drop_table('moderation_queue')

    op.drop_index('idx_moderation_rules_content_type', table_name='moderation_rules')
    op.drop_table('moderation_rules')

    op.drop_table('user_reputations')

    op.drop_index('idx_users_role', table_name='users')
    op.drop_table('users')

    for name in reversed(list(ENUMS)):
        op.execute(f'DROP TYPE IF EXISTS {name}')
