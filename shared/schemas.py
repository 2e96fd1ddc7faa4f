"""Pydantic models for API request/response validation"""
from datetime import datetime
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field, field_validator
from enum import Enum
import uuid

from .models import (
    AppealStatus, ContentType, ModerationAction, ModerationPriority, ModerationStatus,
    ReportReason, ReportStatus, ReviewModerationStatus, ReviewStatus, RuleType,
)


class BaseSchema(BaseModel):
    """Base schema with common configuration"""
    class Config:
        from_attributes = True
        use_enum_values = True


# Session schemas
class SessionCreateRequest(BaseModel):
    """Open a session for a user the identity provider has already authenticated"""
    user_id: uuid.UUID


class SessionResponse(BaseSchema):
    id: str
    user_id: str
    device: str
    browser: str
    ip: str
    location: str
    last_active: datetime
    created_at: datetime
    expires_at: datetime
    current: bool = False


class RevokeSessionsResponse(BaseModel):
    revoked: int


class PermissionsResponse(BaseModel):
    user_id: str
    role: str
    permissions: List[str]


# AI moderation schemas
class AICheckContentType(str, Enum):
    COMMENT = "comment"
    POST = "post"
    MESSAGE = "message"
    PROFILE = "profile"
    OTHER = "other"


class AICheckRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)
    content_id: Optional[str] = None
    content_type: AICheckContentType = AICheckContentType.COMMENT
    sensitivity_level: float = Field(0.7, ge=0.0, le=1.0)
    categories: Optional[List[str]] = Field(None, description="Only these categories count towards the sensitivity check")


class AICheckResponse(BaseModel):
    content_id: str
    flagged: bool
    categories: Dict[str, bool]
    category_scores: Dict[str, float]
    flagged_categories: List[str]
    confidence: float
    provider: str


# Moderation queue schemas
class QueueSubmitRequest(BaseModel):
    content_id: str = Field(..., min_length=1, max_length=255)
    content_type: ContentType
    reason: Optional[str] = None
    priority: Optional[ModerationPriority] = None
    content: Optional[str] = Field(None, description="Content text for AI and rule checks")
    author_id: Optional[uuid.UUID] = Field(None, description="Author of the content; defaults to the submitting user")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class QueueSubmitResponse(BaseSchema):
    id: uuid.UUID
    status: ModerationStatus
    priority: ModerationPriority
    auto_flagged: bool
    matched_rules: List[str] = Field(default_factory=list)
    already_queued: bool = False


class HistoryEntryResponse(BaseSchema):
    id: uuid.UUID
    status: ModerationStatus
    action_taken: Optional[ModerationAction]
    moderator_id: Optional[uuid.UUID]
    notes: Optional[str]
    created_at: Optional[datetime]


class QueueItemResponse(BaseSchema):
    id: uuid.UUID
    content_id: str
    content_type: ContentType
    reason: Optional[str]
    priority: ModerationPriority
    status: ModerationStatus
    action_taken: Optional[ModerationAction]
    reporter_id: Optional[uuid.UUID]
    author_id: Optional[uuid.UUID] = None
    moderator_id: Optional[uuid.UUID]
    auto_flagged: bool
    ai_confidence_score: Optional[float]
    matched_rules: Optional[List[str]]
    notes: Optional[str]
    assigned_at: Optional[datetime]
    resolved_at: Optional[datetime]
    created_at: Optional[datetime]
    history: List[HistoryEntryResponse] = Field(default_factory=list)


class QueueUpdateRequest(BaseModel):
    status: ModerationStatus
    action: Optional[ModerationAction] = None
    notes: Optional[str] = None


class QueuePagination(BaseModel):
    page: int
    limit: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class QueuePage(BaseModel):
    items: List[QueueItemResponse]
    pagination: QueuePagination


# Rule schemas
class RuleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    content_type: ContentType
    rule_type: RuleType = RuleType.KEYWORD
    keywords: Optional[str] = None
    threshold: Optional[float] = Field(None, ge=0)
    priority: ModerationPriority = ModerationPriority.NORMAL
    auto_action: Optional[ModerationAction] = None
    enabled: bool = True

    @field_validator("keywords")
    @classmethod
    def normalise_keywords(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        keywords = [k.strip() for k in value.split(",") if k.strip()]
        return ",".join(keywords) or None


class RuleResponse(BaseSchema):
    id: uuid.UUID
    name: str
    description: Optional[str]
    content_type: ContentType
    rule_type: RuleType
    keywords: Optional[str]
    threshold: Optional[float]
    priority: ModerationPriority
    auto_action: Optional[ModerationAction]
    enabled: bool


class RuleEvaluationResponse(BaseModel):
    auto_flagged: bool
    status: ModerationStatus
    priority: Optional[ModerationPriority] = None
    auto_action: Optional[ModerationAction] = None
    reason: Optional[str] = None
    matched_rules: List[str] = Field(default_factory=list)

    class Config:
        use_enum_values = True


class RuleEvaluationRequest(BaseModel):
    content_type: ContentType
    content: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


# Appeal schemas
class AppealSubmitRequest(BaseModel):
    queue_item_id: uuid.UUID
    reason: str = Field(..., min_length=10, max_length=1000)
    additional_info: Optional[str] = Field(None, max_length=2000)


class AppealDecisionRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class AppealResponse(BaseSchema):
    id: uuid.UUID
    queue_item_id: uuid.UUID
    user_id: uuid.UUID
    reason: str
    additional_info: Optional[str]
    status: AppealStatus
    moderator_notes: Optional[str]
    reviewed_by: Optional[uuid.UUID]
    reviewed_at: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class AppealPage(BaseModel):
    appeals: List[AppealResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# Review schemas
class ReviewReportRequest(BaseModel):
    reason: ReportReason
    description: Optional[str] = Field(None, max_length=2000)


class ReviewReportResponse(BaseSchema):
    id: uuid.UUID
    review_id: uuid.UUID
    reporter_id: uuid.UUID
    reason: ReportReason
    description: Optional[str]
    status: ReportStatus
    created_at: Optional[datetime]


class ReviewResponse(BaseSchema):
    id: uuid.UUID
    product_id: uuid.UUID
    user_id: uuid.UUID
    rating: int
    content: Optional[str]
    status: ReviewStatus
    moderation_status: Optional[ReviewModerationStatus]
    report_count: int
    automatically_flagged: bool
    moderation_reason: Optional[str]
    moderated_by: Optional[uuid.UUID]
    moderated_at: Optional[datetime]
    created_at: Optional[datetime]


class ReviewModerationRequest(BaseModel):
    action: Literal["approve", "reject", "hide"]
    reason: Optional[str] = None
    update_reports: bool = True


class ReviewPagination(BaseModel):
    total: int
    pages: int
    current_page: int
    page_size: int


class ReviewQueuePage(BaseModel):
    reviews: List[ReviewResponse]
    pagination: ReviewPagination


# Search schemas
class ProductHit(BaseSchema):
    id: uuid.UUID
    name: str
    description: Optional[str]
    category: Optional[str]
    price: Optional[float]


class SearchResponse(BaseModel):
    query: str
    terms: List[str]
    results: List[ProductHit]
    suggestions: List[str] = Field(default_factory=list)
    alternative_queries: List[str] = Field(default_factory=list)
