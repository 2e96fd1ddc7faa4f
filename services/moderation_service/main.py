"""
Content Moderation Service

FastAPI service for AI content checks, the moderation rule engine, the
moderation queue and marketplace review reports.
"""

import time
import uuid
from typing import List, Optional

from fastapi import FastAPI, Depends, BackgroundTasks, HTTPException, Request, Query
from fastapi.responses import Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import redis.asyncio as redis

from shared.auth import get_current_user, get_optional_user, require_moderator, require_role
from shared.config import get_config
from shared.database import check_database_health, get_db_manager, get_db_session
from shared.exceptions import AgriSmartError, ConflictError, NotFoundError
from shared.logging import get_logger
from shared.middleware import add_middleware
from shared.models import (
    ContentType, ModerationPriority, ModerationRule, ModerationStatus, ReportStatus, User,
)
from shared.rate_limiter import ActionRateLimiter, enforce_rate_limit, get_rate_limiter
from shared.rbac import Role
from shared.redis_client import check_redis_health, close_redis, get_redis
from shared.schemas import (
    AICheckRequest, AICheckResponse, AppealDecisionRequest, AppealPage, AppealResponse, AppealSubmitRequest,
    QueueItemResponse, QueuePage, QueueSubmitRequest,
    QueueSubmitResponse, QueueUpdateRequest, ReviewModerationRequest, ReviewQueuePage,
    ReviewReportRequest, ReviewReportResponse, ReviewResponse, RuleCreateRequest,
    RuleEvaluationRequest, RuleEvaluationResponse, RuleResponse,
)

from .appeals import AppealService
from .providers import AIModerationService, build_moderation_provider
from .queue import ModerationQueueService
from .reviews import ReviewModerationService
from .rules import RuleEngine
from .tracking import ModerationTracker

# Prometheus metrics
AI_CHECKS = Counter('moderation_service_ai_checks_total', 'AI moderation checks', ['provider', 'flagged'])
AI_CHECK_DURATION = Histogram('moderation_service_ai_check_duration_seconds', 'AI moderation check duration')
QUEUE_SUBMISSIONS = Counter('moderation_service_queue_submissions_total', 'Moderation queue submissions', ['content_type', 'status'])
QUEUE_DECISIONS = Counter('moderation_service_queue_decisions_total', 'Moderator decisions', ['status'])
REVIEW_REPORTS = Counter('moderation_service_review_reports_total', 'Review reports filed', ['reason'])
REVIEW_ACTIONS = Counter('moderation_service_review_actions_total', 'Review moderation actions', ['action'])
APPEAL_EVENTS = Counter('moderation_service_appeals_total', 'Appeal submissions and decisions', ['event'])

app = FastAPI(title="Content Moderation Service", version="1.0.0")
logger = get_logger(__name__)
config = get_config()

add_middleware(app)

# Global service instance
ai_moderation_service: Optional[AIModerationService] = None


def get_ai_moderation_service() -> AIModerationService:
    """Get the AI moderation service, building it on first use"""
    global ai_moderation_service
    if ai_moderation_service is None:
        ai_moderation_service = AIModerationService(
            build_moderation_provider(config),
            get_redis(),
            cache_ttl=config.ai_moderation_cache_ttl,
            concurrency=config.ai_moderation_concurrency,
        )
    return ai_moderation_service


def get_moderation_tracker(redis_client: redis.Redis = Depends(get_redis)) -> ModerationTracker:
    return ModerationTracker(redis_client)


def get_queue_service(
    db: AsyncSession = Depends(get_db_session),
    ai_service: AIModerationService = Depends(get_ai_moderation_service),
) -> ModerationQueueService:
    return ModerationQueueService(db, ai_service=ai_service if config.ai_moderation_enabled else None)


def get_review_service(db: AsyncSession = Depends(get_db_session)) -> ReviewModerationService:
    return ReviewModerationService(db)


def get_appeal_service(db: AsyncSession = Depends(get_db_session)) -> AppealService:
    return AppealService(db)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@app.on_event("startup")
async def on_startup():
    """Initialize database and AI moderation on startup"""
    await get_db_manager().initialize()
    get_ai_moderation_service()
    logger.info("Moderation service initialized")


@app.on_event("shutdown")
async def on_shutdown():
    """Cleanup on shutdown"""
    await get_db_manager().close()
    await close_redis()
    logger.info("Moderation service shutdown complete")


@app.get("/health")
async def health_check(deep: bool = False):
    """Health check endpoint with optional deep checks"""
    health_status = {"status": "healthy", "service": "moderation-service"}

    if deep:
        database = await check_database_health()
        cache = await check_redis_health()
        health_status["database"] = database["status"]
        health_status["redis"] = cache["status"]
        if database["status"] != "healthy":
            health_status["status"] = "unhealthy"

    return health_status


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/")
async def root():
    """Root endpoint"""
    return {"message": "Content Moderation Service API", "version": "1.0.0"}


# AI checks

@app.post("/moderation/ai-check", response_model=AICheckResponse)
async def ai_check(
    payload: AICheckRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    user: Optional[User] = Depends(get_optional_user),
    service: AIModerationService = Depends(get_ai_moderation_service),
    tracker: ModerationTracker = Depends(get_moderation_tracker),
    limiter: ActionRateLimiter = Depends(get_rate_limiter),
):
    """Check content with the AI provider, applying the caller's sensitivity"""
    subject = str(user.id) if user is not None else f"ip:{_client_ip(request)}"
    await enforce_rate_limit(limiter, subject, "ai_moderation")

    content_type = payload.content_type.value
    content_id = payload.content_id or f"{content_type}:{uuid.uuid4().hex}"

    start = time.time()
    try:
        result = await service.moderate_content(payload.content, content_type)
    except Exception as e:
        logger.error(f"Error in AI moderation check: {e}")
        raise HTTPException(status_code=500, detail="Failed to process moderation request")
    AI_CHECK_DURATION.observe(time.time() - start)

    selected = payload.categories or list(result.category_scores)
    over_threshold = [
        category for category in selected
        if result.category_scores.get(category, 0.0) >= payload.sensitivity_level
    ]
    flagged_categories = list(dict.fromkeys(result.flagged_categories + over_threshold))
    flagged = result.is_flagged or bool(over_threshold)

    AI_CHECKS.labels(provider=result.provider, flagged=str(flagged).lower()).inc()
    background_tasks.add_task(
        tracker.track_decision,
        decision_id=content_id,
        content=payload.content,
        is_flagged=flagged,
        flagged_categories=flagged_categories,
        content_type=content_type,
        confidence=result.confidence,
        user_id=str(user.id) if user is not None else None,
    )

    return AICheckResponse(
        content_id=content_id,
        flagged=flagged,
        categories=result.categories,
        category_scores=result.category_scores,
        flagged_categories=flagged_categories,
        confidence=result.confidence,
        provider=result.provider,
    )


@app.get("/moderation/ai-check")
async def ai_check_status(
    user: User = Depends(require_moderator),
    service: AIModerationService = Depends(get_ai_moderation_service),
):
    """Report the AI moderation service status"""
    return {
        "status": "operational",
        "enabled": config.ai_moderation_enabled,
        "provider": service.provider_name,
        "features": {
            "text_moderation": True,
            "queueing": True,
            "analytics_tracking": True,
        },
    }


@app.get("/moderation/stats")
async def moderation_stats(
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(require_moderator),
    tracker: ModerationTracker = Depends(get_moderation_tracker),
):
    """Decision counters and the most recent AI moderation decisions"""
    return {
        "stats": await tracker.get_stats(),
        "recent": await tracker.get_recent(limit),
    }


@app.get("/moderation/decisions/{decision_id}")
async def moderation_decision(
    decision_id: str,
    user: User = Depends(require_moderator),
    tracker: ModerationTracker = Depends(get_moderation_tracker),
):
    decision = await tracker.get_decision(decision_id)
    if decision is None:
        raise NotFoundError("Moderation decision not found")
    return decision


# Rules

@app.get("/moderation/rules", response_model=List[RuleResponse])
async def list_rules(
    content_type: Optional[ContentType] = Query(None),
    user: User = Depends(require_moderator),
    db: AsyncSession = Depends(get_db_session),
):
    stmt = select(ModerationRule).order_by(ModerationRule.content_type, ModerationRule.name)
    if content_type is not None:
        stmt = stmt.where(ModerationRule.content_type == content_type)
    rules = (await db.execute(stmt)).scalars().all()
    return [RuleResponse.model_validate(rule) for rule in rules]


@app.post("/moderation/rules", response_model=RuleResponse, status_code=201)
async def create_rule(
    payload: RuleCreateRequest,
    user: User = Depends(require_role(Role.ADMIN)),
    db: AsyncSession = Depends(get_db_session),
):
    stmt = select(ModerationRule.id).where(
        ModerationRule.name == payload.name,
        ModerationRule.content_type == payload.content_type,
    )
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError("A rule with this name already exists for the content type")

    rule = ModerationRule(**payload.model_dump())
    db.add(rule)
    await db.flush()
    logger.info("Moderation rule created", extra={"rule_id": str(rule.id), "rule_name": rule.name})
    return RuleResponse.model_validate(rule)


@app.post("/moderation/rules/evaluate", response_model=RuleEvaluationResponse)
async def evaluate_rules(
    payload: RuleEvaluationRequest,
    user: User = Depends(require_moderator),
    db: AsyncSession = Depends(get_db_session),
):
    """Dry-run the rule engine without queueing anything"""
    result = await RuleEngine(db).apply_moderation_rules(payload.content_type, payload.content, payload.metadata)
    return RuleEvaluationResponse(**result.model_dump())


# Moderation queue

@app.post("/moderation/queue", response_model=QueueSubmitResponse)
async def submit_to_queue(
    payload: QueueSubmitRequest,
    user: User = Depends(get_current_user),
    queue: ModerationQueueService = Depends(get_queue_service),
    limiter: ActionRateLimiter = Depends(get_rate_limiter),
):
    await enforce_rate_limit(limiter, str(user.id), "queue_submit")

    item, already_queued = await queue.submit_content(
        content_id=payload.content_id,
        content_type=payload.content_type,
        reporter=user,
        author_id=payload.author_id or user.id,
        reason=payload.reason,
        priority=payload.priority,
        content=payload.content,
        metadata=payload.metadata,
    )
    if not already_queued:
        QUEUE_SUBMISSIONS.labels(content_type=item.content_type.value, status=item.status.value).inc()

    return QueueSubmitResponse(
        id=item.id,
        status=item.status,
        priority=item.priority,
        auto_flagged=item.auto_flagged,
        matched_rules=item.matched_rules or [],
        already_queued=already_queued,
    )


@app.get("/moderation/queue", response_model=QueuePage)
async def get_queue(
    status: Optional[ModerationStatus] = Query(None),
    content_type: Optional[ContentType] = Query(None),
    priority: Optional[ModerationPriority] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(require_moderator),
    queue: ModerationQueueService = Depends(get_queue_service),
):
    """Get items in the moderation queue, highest priority first"""
    try:
        result = await queue.list_queue(status, content_type, priority, page, limit)
    except AgriSmartError:
        raise
    except Exception as e:
        logger.error(f"Failed to get moderation queue: {e}")
        raise HTTPException(status_code=500, detail="Failed to retrieve moderation queue")

    return QueuePage(
        items=[QueueItemResponse.model_validate(item) for item in result["items"]],
        pagination=result["pagination"],
    )


@app.get("/moderation/queue/{item_id}", response_model=QueueItemResponse)
async def get_queue_item(
    item_id: uuid.UUID,
    user: User = Depends(require_moderator),
    queue: ModerationQueueService = Depends(get_queue_service),
):
    item = await queue.get_item(item_id, user)
    return QueueItemResponse.model_validate(item)


@app.put("/moderation/queue/{item_id}", response_model=QueueItemResponse)
async def update_queue_item(
    item_id: uuid.UUID,
    payload: QueueUpdateRequest,
    request: Request,
    user: User = Depends(require_moderator),
    queue: ModerationQueueService = Depends(get_queue_service),
):
    """Submit a moderator decision for a queue item"""
    item = await queue.update_item(
        item_id, user, payload.status, action=payload.action, notes=payload.notes, request=request
    )
    QUEUE_DECISIONS.labels(status=item.status.value).inc()
    return QueueItemResponse.model_validate(item)


# Appeals

@app.post("/moderation/appeals", response_model=AppealResponse, status_code=201)
async def submit_appeal(
    payload: AppealSubmitRequest,
    user: User = Depends(get_current_user),
    appeals: AppealService = Depends(get_appeal_service),
    limiter: ActionRateLimiter = Depends(get_rate_limiter),
):
    """Contest the rejection of the caller's own content"""
    await enforce_rate_limit(limiter, str(user.id), "appeal_submit")
    appeal = await appeals.submit_appeal(
        payload.queue_item_id, user, payload.reason, additional_info=payload.additional_info
    )
    APPEAL_EVENTS.labels(event="submitted").inc()
    return AppealResponse.model_validate(appeal)


@app.get("/moderation/appeals", response_model=AppealPage)
async def list_appeals(
    status: str = Query("pending"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    user: User = Depends(require_moderator),
    appeals: AppealService = Depends(get_appeal_service),
):
    result = await appeals.list_appeals(status, page=page, page_size=page_size)
    return AppealPage(
        **{**result, "appeals": [AppealResponse.model_validate(appeal) for appeal in result["appeals"]]}
    )


@app.get("/moderation/appeals/mine", response_model=AppealPage)
async def my_appeals(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    appeals: AppealService = Depends(get_appeal_service),
):
    result = await appeals.list_appeals("all", user_id=user.id, page=page, page_size=page_size)
    return AppealPage(
        **{**result, "appeals": [AppealResponse.model_validate(appeal) for appeal in result["appeals"]]}
    )


@app.get("/moderation/appeals/{appeal_id}", response_model=AppealResponse)
async def get_appeal(
    appeal_id: uuid.UUID,
    user: User = Depends(get_current_user),
    appeals: AppealService = Depends(get_appeal_service),
):
    return AppealResponse.model_validate(await appeals.get_appeal(appeal_id, user))


@app.post("/moderation/appeals/{appeal_id}/approve", response_model=AppealResponse)
async def approve_appeal(
    appeal_id: uuid.UUID,
    payload: AppealDecisionRequest,
    request: Request,
    user: User = Depends(require_moderator),
    appeals: AppealService = Depends(get_appeal_service),
):
    appeal = await appeals.approve_appeal(appeal_id, user, notes=payload.notes, request=request)
    APPEAL_EVENTS.labels(event="approved").inc()
    return AppealResponse.model_validate(appeal)


@app.post("/moderation/appeals/{appeal_id}/reject", response_model=AppealResponse)
async def reject_appeal(
    appeal_id: uuid.UUID,
    payload: AppealDecisionRequest,
    request: Request,
    user: User = Depends(require_moderator),
    appeals: AppealService = Depends(get_appeal_service),
):
    appeal = await appeals.reject_appeal(appeal_id, user, notes=payload.notes, request=request)
    APPEAL_EVENTS.labels(event="rejected").inc()
    return AppealResponse.model_validate(appeal)


# Marketplace reviews

@app.post("/reviews/{review_id}/report", response_model=ReviewReportResponse)
async def report_review(
    review_id: uuid.UUID,
    payload: ReviewReportRequest,
    user: User = Depends(get_current_user),
    reviews: ReviewModerationService = Depends(get_review_service),
    limiter: ActionRateLimiter = Depends(get_rate_limiter),
):
    await enforce_rate_limit(limiter, str(user.id), "review_report")
    report = await reviews.report_review(review_id, user, payload.reason, payload.description)
    REVIEW_REPORTS.labels(reason=payload.reason.value).inc()
    return ReviewReportResponse.model_validate(report)


@app.get("/reviews/reports")
async def list_review_reports(
    review_id: Optional[uuid.UUID] = Query(None),
    status: Optional[ReportStatus] = Query(None),
    user: User = Depends(require_moderator),
    reviews: ReviewModerationService = Depends(get_review_service),
):
    reports = await reviews.list_reports(review_id, status)
    return {"reports": [ReviewReportResponse.model_validate(report) for report in reports]}


@app.get("/reviews/moderation", response_model=ReviewQueuePage)
async def review_moderation_queue(
    status: str = Query("pending"),
    take: int = Query(10, ge=1, le=100),
    skip: int = Query(0, ge=0),
    user: User = Depends(require_moderator),
    reviews: ReviewModerationService = Depends(get_review_service),
):
    """Reviews waiting for a moderator, most reported first"""
    result = await reviews.get_moderation_queue(status, take, skip)
    return ReviewQueuePage(
        reviews=[ReviewResponse.model_validate(review) for review in result["reviews"]],
        pagination=result["pagination"],
    )


@app.post("/reviews/{review_id}/moderate", response_model=ReviewResponse)
async def moderate_review(
    review_id: uuid.UUID,
    payload: ReviewModerationRequest,
    user: User = Depends(require_moderator),
    reviews: ReviewModerationService = Depends(get_review_service),
):
    review = await reviews.moderate_review(
        review_id, user, payload.action, reason=payload.reason, update_reports=payload.update_reports
    )
    REVIEW_ACTIONS.labels(action=payload.action).inc()
    return ReviewResponse.model_validate(review)


@app.post("/reviews/{review_id}/screen")
async def screen_review(
    review_id: uuid.UUID,
    user: User = Depends(require_moderator),
    reviews: ReviewModerationService = Depends(get_review_service),
):
    """Run the review rules over an existing review"""
    review, result = await reviews.screen_review(review_id)
    return {
        "review": ReviewResponse.model_validate(review),
        "evaluation": RuleEvaluationResponse(**result.model_dump()),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
