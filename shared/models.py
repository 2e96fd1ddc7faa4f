"""SQLAlchemy models for the AgriSmart trust and safety services"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean, Float, JSON,
    ForeignKey, Enum, Index, UniqueConstraint, Uuid, case
)
from sqlalchemy.orm import relationship
import uuid
import enum

from .database import Base
from .rbac import Role


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_class, name: str) -> Enum:
    """Store enum values (not member names) in a named database enum"""
    return Enum(enum_class, name=name, values_callable=lambda x: [e.value for e in x])


class ContentType(enum.Enum):
    """Kinds of user content that can be moderated"""
    POST = "post"
    COMMENT = "comment"
    REVIEW = "review"
    PRODUCT = "product"
    MESSAGE = "message"
    PROFILE = "profile"
    RESOURCE = "resource"


class ModerationPriority(enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_RANK = {
    ModerationPriority.LOW: 0,
    ModerationPriority.NORMAL: 1,
    ModerationPriority.HIGH: 2,
    ModerationPriority.URGENT: 3,
}


class ModerationAction(enum.Enum):
    """Action taken on moderated content, automatically or by a moderator"""
    APPROVED = "approved"
    REJECTED = "rejected"
    WARNING = "warning"
    EDITED = "edited"
    REMOVED = "removed"


class ModerationStatus(enum.Enum):
    """Status of a moderation queue item"""
    PENDING = "pending"
    IN_REVIEW = "in_review"
    NEEDS_REVIEW = "needs_review"
    AUTO_APPROVED = "auto_approved"
    AUTO_REJECTED = "auto_rejected"
    APPROVED = "approved"
    REJECTED = "rejected"


RESOLVED_STATUSES = frozenset({
    ModerationStatus.APPROVED,
    ModerationStatus.REJECTED,
    ModerationStatus.AUTO_APPROVED,
    ModerationStatus.AUTO_REJECTED,
})


class AppealStatus(enum.Enum):
    """Outcome of an author's appeal against a rejection"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


APPEALABLE_STATUSES = frozenset({
    ModerationStatus.REJECTED,
    ModerationStatus.AUTO_REJECTED,
})


class RuleType(enum.Enum):
    """Predicate a moderation rule evaluates besides its keyword list"""
    KEYWORD = "keyword"
    IMAGE = "image"
    USER_REPUTATION = "user_reputation"
    SHORT_CONTENT = "short_content"
    SPAM_DETECTION = "spam_detection"
    NEW_USER_CONTENT = "new_user_content"


class ReviewStatus(enum.Enum):
    PUBLISHED = "published"
    FLAGGED = "flagged"
    HIDDEN = "hidden"


class ReviewModerationStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReportReason(enum.Enum):
    SPAM = "spam"
    OFFENSIVE = "offensive"
    IRRELEVANT = "irrelevant"
    MISLEADING = "misleading"
    OTHER = "other"


class ReportStatus(enum.Enum):
    PENDING = "pending"
    DISMISSED = "dismissed"
    RESOLVED = "resolved"


class User(Base):
    """Platform account; authentication itself happens upstream"""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255))
    role = Column(_enum(Role, 'userrole'), nullable=False, default=Role.USER)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    reputation = relationship("UserReputation", back_populates="user", uselist=False)

    __table_args__ = (
        Index('idx_users_role', 'role'),
    )


class UserReputation(Base):
    __tablename__ = "user_reputations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, unique=True)
    reputation_score = Column(Float, nullable=False, default=0.0)

    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="reputation")


class ModerationRule(Base):
    """Configured predicate with a priority and an optional automatic action"""
    __tablename__ = "moderation_rules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    content_type = Column(_enum(ContentType, 'contenttype'), nullable=False)
    rule_type = Column(_enum(RuleType, 'ruletype'), nullable=False, default=RuleType.KEYWORD)

    keywords = Column(Text)  # comma separated, matched case-insensitively
    threshold = Column(Float)  # overrides the configured default for the rule type
    priority = Column(_enum(ModerationPriority, 'moderationpriority'), nullable=False, default=ModerationPriority.NORMAL)
    auto_action = Column(_enum(ModerationAction, 'moderationaction'))
    enabled = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    __table_args__ = (
        Index('idx_moderation_rules_content_type', 'content_type', 'enabled'),
        UniqueConstraint('name', 'content_type', name='uq_rule_name_content_type'),
    )


class ModerationQueueItem(Base):
    """Content waiting for, or resolved by, moderation"""
    __tablename__ = "moderation_queue"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    content_id = Column(String(255), nullable=False)
    content_type = Column(_enum(ContentType, 'contenttype'), nullable=False)
    reason = Column(Text)
    priority = Column(_enum(ModerationPriority, 'moderationpriority'), nullable=False, default=ModerationPriority.NORMAL)
    status = Column(_enum(ModerationStatus, 'moderationstatus'), nullable=False, default=ModerationStatus.PENDING)
    action_taken = Column(_enum(ModerationAction, 'moderationaction'))

    reporter_id = Column(Uuid, ForeignKey("users.id"))
    author_id = Column(Uuid, ForeignKey("users.id"))
    moderator_id = Column(Uuid, ForeignKey("users.id"))

    auto_flagged = Column(Boolean, nullable=False, default=False)
    ai_confidence_score = Column(Float)
    matched_rules = Column(JSON, default=list)
    notes = Column(Text)

    assigned_at = Column(DateTime(timezone=True))
    resolved_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    history = relationship(
        "ModerationHistory",
        back_populates="queue_item",
        cascade="all, delete-orphan",
        order_by="ModerationHistory.created_at.desc()",
    )

    __table_args__ = (
        Index('idx_moderation_queue_content', 'content_type', 'content_id'),
        Index('idx_moderation_queue_status', 'status'),
        Index('idx_moderation_queue_priority', 'priority'),
        Index('idx_moderation_queue_created_at', 'created_at'),
    )

    @classmethod
    def priority_order(cls):
        """SQL expression ranking priorities LOW=0 .. URGENT=3"""
        return case(
            *[(cls.priority == priority, rank) for priority, rank in PRIORITY_RANK.items()],
            else_=0,
        )


class ModerationHistory(Base):
    __tablename__ = "moderation_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    queue_item_id = Column(Uuid, ForeignKey("moderation_queue.id"), nullable=False)
    status = Column(_enum(ModerationStatus, 'moderationstatus'), nullable=False)
    action_taken = Column(_enum(ModerationAction, 'moderationaction'))
    moderator_id = Column(Uuid, ForeignKey("users.id"))
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    queue_item = relationship("ModerationQueueItem", back_populates="history")

    __table_args__ = (
        Index('idx_moderation_history_queue_item_id', 'queue_item_id'),
    )


class ModerationAppeal(Base):
    """Author's request to overturn a rejected queue item"""
    __tablename__ = "moderation_appeals"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    queue_item_id = Column(Uuid, ForeignKey("moderation_queue.id"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    reason = Column(Text, nullable=False)
    additional_info = Column(Text)
    status = Column(_enum(AppealStatus, 'appealstatus'), nullable=False, default=AppealStatus.PENDING)

    moderator_notes = Column(Text)
    reviewed_by = Column(Uuid, ForeignKey("users.id"))
    reviewed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    queue_item = relationship("ModerationQueueItem")

    __table_args__ = (
        Index('idx_moderation_appeals_queue_item_id', 'queue_item_id'),
        Index('idx_moderation_appeals_user_id', 'user_id'),
        Index('idx_moderation_appeals_status', 'status'),
    )


class MarketplaceProduct(Base):
    __tablename__ = "marketplace_products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id = Column(Uuid, ForeignKey("users.id"))
    name = Column(String(255), nullable=False)
    description = Column(Text)
    category = Column(String(100))
    price = Column(Float)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index('idx_marketplace_products_category', 'category'),
    )


class MarketplaceReview(Base):
    """Buyer review of a marketplace product"""
    __tablename__ = "marketplace_reviews"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id = Column(Uuid, ForeignKey("marketplace_products.id"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    content = Column(Text)

    status = Column(_enum(ReviewStatus, 'reviewstatus'), nullable=False, default=ReviewStatus.PUBLISHED)
    moderation_status = Column(_enum(ReviewModerationStatus, 'reviewmoderationstatus'))
    report_count = Column(Integer, nullable=False, default=0)
    automatically_flagged = Column(Boolean, nullable=False, default=False)

    moderation_reason = Column(Text)
    moderated_by = Column(Uuid, ForeignKey("users.id"))
    moderated_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    reports = relationship("ReviewReport", back_populates="review", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_marketplace_reviews_product_id', 'product_id'),
        Index('idx_marketplace_reviews_moderation', 'moderation_status', 'report_count'),
    )


class ReviewReport(Base):
    __tablename__ = "marketplace_review_reports"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    review_id = Column(Uuid, ForeignKey("marketplace_reviews.id"), nullable=False)
    reporter_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    reason = Column(_enum(ReportReason, 'reportreason'), nullable=False)
    description = Column(Text)
    status = Column(_enum(ReportStatus, 'reportstatus'), nullable=False, default=ReportStatus.PENDING)

    resolved_by = Column(Uuid, ForeignKey("users.id"))
    resolved_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    review = relationship("MarketplaceReview", back_populates="reports")

    __table_args__ = (
        Index('idx_review_reports_review_id', 'review_id'),
        Index('idx_review_reports_reporter_id', 'reporter_id'),
        Index('idx_review_reports_status', 'status'),
    )


class AuditLog(Base):
    """Audit logging for moderation decisions and session administration"""
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    action_type = Column(String(50), nullable=False)  # queue_update, review_moderation, session_revoke, ...
    entity_type = Column(String(50), nullable=False)  # queue_item, review, session, ...
    entity_id = Column(String(255), nullable=False)

    user_id = Column(String(255))
    user_role = Column(String(50))

    action_data = Column(JSON, nullable=False)
    previous_state = Column(JSON)
    new_state = Column(JSON)

    ip_address = Column(String(45))
    user_agent = Column(Text)
    correlation_id = Column(String(255))

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index('idx_audit_logs_action_type', 'action_type'),
        Index('idx_audit_logs_entity', 'entity_type', 'entity_id'),
        Index('idx_audit_logs_user_id', 'user_id'),
        Index('idx_audit_logs_created_at', 'created_at'),
    )


class Setting(Base):
    """Key/value JSON settings edited from the admin dashboards"""
    __tablename__ = "settings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    key = Column(String(100), nullable=False, unique=True)
    value = Column(JSON, nullable=False, default=dict)

    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
