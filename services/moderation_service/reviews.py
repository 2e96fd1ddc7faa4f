"""Marketplace review reports and the review moderation queue"""
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import Settings, get_config
from shared.database import BaseRepository
from shared.exceptions import NotFoundError, ValidationError
from shared.models import (
    ContentType, MarketplaceReview, ModerationAction, ReportReason, ReportStatus,
    ReviewModerationStatus, ReviewReport, ReviewStatus, User,
)

from .rules import ModerationRuleResult, RuleEngine

logger = logging.getLogger(__name__)

# action -> (review status, moderation status)
MODERATION_OUTCOMES = {
    "approve": (ReviewStatus.PUBLISHED, ReviewModerationStatus.APPROVED),
    "reject": (ReviewStatus.HIDDEN, ReviewModerationStatus.REJECTED),
    "hide": (ReviewStatus.HIDDEN, ReviewModerationStatus.APPROVED),
}

UNSCOPED_REPORT_LIMIT = 50


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReviewModerationService(BaseRepository):

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        super().__init__(session, MarketplaceReview)
        self.settings = settings or get_config()

    async def get_review(self, review_id: uuid.UUID) -> MarketplaceReview:
        review = await self.get_by_id(review_id)
        if review is None:
            raise NotFoundError("Review not found")
        return review

    async def report_review(
        self,
        review_id: uuid.UUID,
        reporter: User,
        reason: ReportReason,
        description: Optional[str] = None
    ) -> ReviewReport:
        """
        File a report against a review.

        A reporter may report a review again only after their earlier report
        was dismissed. Once the review collects ``review_report_threshold``
        reports it is flagged and waits for a moderator.
        """
        review = await self.get_review(review_id)

        stmt = select(ReviewReport.id).where(
            ReviewReport.review_id == review.id,
            ReviewReport.reporter_id == reporter.id,
            ReviewReport.status != ReportStatus.DISMISSED,
        ).limit(1)
        if (await self.session.execute(stmt)).first() is not None:
            raise ValidationError("You have already reported this review")

        report = ReviewReport(
            review_id=review.id,
            reporter_id=reporter.id,
            reason=reason,
            description=description,
        )
        self.session.add(report)

        await self.session.execute(
            update(MarketplaceReview)
            .where(MarketplaceReview.id == review.id)
            .values(report_count=MarketplaceReview.report_count + 1)
        )
        await self.session.refresh(review, ["report_count"])

        if review.report_count >= self.settings.review_report_threshold:
            review.status = ReviewStatus.FLAGGED
            review.moderation_status = ReviewModerationStatus.PENDING

        await self.session.flush()
        logger.info(
            "Review reported",
            extra={
                "review_id": str(review.id),
                "reason": reason.value,
                "report_count": review.report_count,
            }
        )
        return report

    async def list_reports(
        self,
        review_id: Optional[uuid.UUID] = None,
        status: Optional[ReportStatus] = None
    ) -> List[ReviewReport]:
        stmt = select(ReviewReport).order_by(ReviewReport.created_at.desc())
        if review_id is not None:
            stmt = stmt.where(ReviewReport.review_id == review_id)
        else:
            stmt = stmt.limit(UNSCOPED_REPORT_LIMIT)
        if status is not None:
            stmt = stmt.where(ReviewReport.status == status)
        return list((await self.session.execute(stmt)).scalars().all())

    async def get_moderation_queue(self, status: str = "pending", take: int = 10, skip: int = 0) -> Dict[str, Any]:
        needs_attention = or_(
            MarketplaceReview.report_count > 0,
            MarketplaceReview.automatically_flagged.is_(True),
        )

        stmt = select(MarketplaceReview)
        if status == "pending":
            stmt = stmt.where(
                MarketplaceReview.moderation_status == ReviewModerationStatus.PENDING,
                needs_attention,
            )
        elif status == "flagged":
            stmt = stmt.where(needs_attention)
        elif status != "all":
            try:
                moderation_status = ReviewModerationStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown review moderation status: {status}")
            stmt = stmt.where(MarketplaceReview.moderation_status == moderation_status)

        stmt = stmt.order_by(MarketplaceReview.report_count.desc(), MarketplaceReview.created_at.desc())
        reviews, total = await self.paginate(stmt, limit=take, offset=skip)

        return {
            "reviews": reviews,
            "pagination": {
                "total": total,
                "pages": math.ceil(total / take) if take else 0,
                "current_page": skip // take + 1 if take else 1,
                "page_size": take,
            },
        }

    async def moderate_review(
        self,
        review_id: uuid.UUID,
        moderator: User,
        action: str,
        reason: Optional[str] = None,
        update_reports: bool = True
    ) -> MarketplaceReview:
        if action not in MODERATION_OUTCOMES:
            raise ValidationError(f"Unknown moderation action: {action}")

        review = await self.get_review(review_id)
        now = _utcnow()

        review.status, review.moderation_status = MODERATION_OUTCOMES[action]
        review.moderation_reason = reason
        review.moderated_by = moderator.id
        review.moderated_at = now

        if update_reports:
            await self.session.execute(
                update(ReviewReport)
                .where(
                    ReviewReport.review_id == review.id,
                    ReviewReport.status == ReportStatus.PENDING,
                )
                .values(status=ReportStatus.RESOLVED, resolved_by=moderator.id, resolved_at=now)
                .execution_options(synchronize_session=False)
            )

        await self.session.flush()
        logger.info(
            "Review moderated",
            extra={"review_id": str(review.id), "action": action, "moderator_id": str(moderator.id)}
        )
        return review

    async def screen_review(
        self,
        review_id: uuid.UUID,
        rule_engine: Optional[RuleEngine] = None
    ) -> Tuple[MarketplaceReview, ModerationRuleResult]:
        """Run the review rules over a review and flag it for moderators on a match"""
        review = await self.get_review(review_id)
        engine = rule_engine or RuleEngine(self.session, self.settings)
        result = await engine.apply_moderation_rules(
            ContentType.REVIEW,
            review.content or "",
            {"user_id": str(review.user_id)},
        )

        if result.auto_flagged:
            review.automatically_flagged = True
            review.moderation_reason = result.reason
            if result.auto_action == ModerationAction.REJECTED:
                review.status = ReviewStatus.HIDDEN
                review.moderation_status = ReviewModerationStatus.REJECTED
            elif result.auto_action == ModerationAction.APPROVED:
                review.moderation_status = ReviewModerationStatus.APPROVED
            else:
                review.moderation_status = ReviewModerationStatus.PENDING
            await self.session.flush()

        return review, result
