"""
Moderation queue

Content enters the queue through ``submit_content``, which runs the AI check
and the rule engine before creating the item. Moderators pick items up with
``get_item`` and resolve them with ``update_item``; every status change is
written to the item's history.
"""

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.audit import create_audit_log
from shared.database import BaseRepository
from shared.exceptions import NotFoundError, ValidationError
from shared.models import (
    ContentType, ModerationAction, ModerationHistory, ModerationPriority,
    ModerationQueueItem, ModerationStatus, RESOLVED_STATUSES, User,
)

from .providers import AIModerationService
from .rules import RuleEngine

logger = logging.getLogger(__name__)

OPEN_STATUSES = (ModerationStatus.PENDING, ModerationStatus.IN_REVIEW)
TIMESTAMPED_RESOLUTIONS = (ModerationStatus.APPROVED, ModerationStatus.REJECTED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _snapshot(item: ModerationQueueItem) -> Dict[str, Any]:
    return {
        "status": item.status.value,
        "action_taken": item.action_taken.value if item.action_taken else None,
        "moderator_id": str(item.moderator_id) if item.moderator_id else None,
        "notes": item.notes,
    }


class ModerationQueueService(BaseRepository):
    """Queue operations bound to one database session"""

    def __init__(
        self,
        session: AsyncSession,
        ai_service: Optional[AIModerationService] = None,
        rule_engine: Optional[RuleEngine] = None
    ):
        super().__init__(session, ModerationQueueItem)
        self.ai_service = ai_service
        self.rule_engine = rule_engine or RuleEngine(session)

    def _with_history(self):
        return select(ModerationQueueItem).options(selectinload(ModerationQueueItem.history))

    async def find_open_item(self, content_id: str, content_type: ContentType) -> Optional[ModerationQueueItem]:
        stmt = self._with_history().where(
            ModerationQueueItem.content_id == content_id,
            ModerationQueueItem.content_type == content_type,
            ModerationQueueItem.status.in_(OPEN_STATUSES),
        ).limit(1)
        return (await self.session.execute(stmt)).scalars().first()

    async def submit_content(
        self,
        content_id: str,
        content_type: ContentType,
        reporter: Optional[User] = None,
        author_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
        priority: Optional[ModerationPriority] = None,
        content: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Tuple[ModerationQueueItem, bool]:
        """Queue content for moderation; returns the item and whether it was already queued"""
        existing = await self.find_open_item(content_id, content_type)
        if existing is not None:
            logger.info(
                "Content already in moderation queue",
                extra={"queue_item_id": str(existing.id), "content_id": content_id}
            )
            return existing, True

        ai_confidence = None
        ai_flagged = False
        if content and self.ai_service is not None:
            ai_result = await self.ai_service.moderate_content(content, content_type.value)
            ai_confidence = ai_result.confidence
            ai_flagged = ai_result.is_flagged

        rule_result = await self.rule_engine.apply_moderation_rules(content_type, content or "", metadata)

        history = []
        if rule_result.auto_action is not None:
            status = rule_result.status
            history.append(ModerationHistory(
                status=status,
                action_taken=rule_result.auto_action,
                notes=f"Automated action: {rule_result.reason}",
            ))
        else:
            status = ModerationStatus.PENDING

        item = await self.create(
            content_id=content_id,
            content_type=content_type,
            reason=reason or rule_result.reason,
            priority=priority or rule_result.priority or ModerationPriority.NORMAL,
            status=status,
            action_taken=rule_result.auto_action,
            reporter_id=reporter.id if reporter is not None else None,
            author_id=author_id,
            auto_flagged=ai_flagged or rule_result.auto_flagged,
            ai_confidence_score=ai_confidence,
            matched_rules=rule_result.matched_rules,
            resolved_at=_utcnow() if status in RESOLVED_STATUSES else None,
            history=history,
        )

        logger.info(
            "Content submitted to moderation queue",
            extra={
                "queue_item_id": str(item.id),
                "content_type": content_type.value,
                "status": status.value,
                "auto_flagged": item.auto_flagged,
            }
        )
        return item, False

    async def list_queue(
        self,
        status: Optional[ModerationStatus] = None,
        content_type: Optional[ContentType] = None,
        priority: Optional[ModerationPriority] = None,
        page: int = 1,
        limit: int = 20
    ) -> Dict[str, Any]:
        stmt = self._with_history()
        if status is not None:
            stmt = stmt.where(ModerationQueueItem.status == status)
        if content_type is not None:
            stmt = stmt.where(ModerationQueueItem.content_type == content_type)
        if priority is not None:
            stmt = stmt.where(ModerationQueueItem.priority == priority)
        stmt = stmt.order_by(
            ModerationQueueItem.priority_order().desc(),
            ModerationQueueItem.created_at.desc(),
        )

        items, total = await self.paginate(stmt, limit=limit, offset=(page - 1) * limit)
        total_pages = math.ceil(total / limit) if limit else 0

        return {
            "items": items,
            "pagination": {
                "page": page,
                "limit": limit,
                "total_items": total,
                "total_pages": total_pages,
                "has_next_page": page < total_pages,
                "has_prev_page": page > 1,
            },
        }

    async def _load(self, item_id: uuid.UUID) -> ModerationQueueItem:
        stmt = self._with_history().where(ModerationQueueItem.id == item_id)
        item = (await self.session.execute(stmt)).scalars().first()
        if item is None:
            raise NotFoundError("Moderation queue item not found")
        return item

    async def get_item(self, item_id: uuid.UUID, moderator: User) -> ModerationQueueItem:
        """Fetch an item, assigning it to ``moderator`` when nobody has picked it up"""
        item = await self._load(item_id)

        if item.moderator_id is None and item.status == ModerationStatus.PENDING:
            item.moderator_id = moderator.id
            item.status = ModerationStatus.IN_REVIEW
            item.assigned_at = _utcnow()
            item.history.insert(0, ModerationHistory(
                status=ModerationStatus.IN_REVIEW,
                moderator_id=moderator.id,
                notes="Item assigned for review",
            ))
            await self.session.flush()
            logger.info(
                "Moderation item assigned",
                extra={"queue_item_id": str(item.id), "moderator_id": str(moderator.id)}
            )

        return item

    async def update_item(
        self,
        item_id: uuid.UUID,
        moderator: User,
        status: ModerationStatus,
        action: Optional[ModerationAction] = None,
        notes: Optional[str] = None,
        request: Optional[Request] = None
    ) -> ModerationQueueItem:
        item = await self._load(item_id)

        if item.status in RESOLVED_STATUSES:
            raise ValidationError("Cannot update a resolved moderation item")

        previous_state = _snapshot(item)

        item.status = status
        item.moderator_id = moderator.id
        item.assigned_at = item.assigned_at or _utcnow()
        item.resolved_at = _utcnow() if status in TIMESTAMPED_RESOLUTIONS else None
        item.action_taken = action
        item.notes = notes
        item.history.insert(0, ModerationHistory(
            status=status,
            action_taken=action,
            moderator_id=moderator.id,
            notes=notes,
        ))
        await self.session.flush()

        await create_audit_log(
            self.session,
            action_type="queue_update",
            entity_type="queue_item",
            entity_id=str(item.id),
            user=moderator,
            action_data={"status": status.value, "action": action.value if action else None},
            previous_state=previous_state,
            new_state=_snapshot(item),
            request=request,
        )

        logger.info(
            "Moderation item updated",
            extra={"queue_item_id": str(item.id), "status": status.value}
        )
        return item
