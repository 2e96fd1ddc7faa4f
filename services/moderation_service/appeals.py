"""
Moderation appeals

The author of a rejected queue item may contest the decision once at a
time. Approving an appeal resolves the queue item as APPROVED and records
the reversal in the item's history; rejecting it leaves the item rejected.
"""

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.audit import create_audit_log
from shared.database import BaseRepository
from shared.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from shared.models import (
    APPEALABLE_STATUSES, AppealStatus, ModerationAction, ModerationAppeal, ModerationHistory,
    ModerationQueueItem, ModerationStatus, User,
)
from shared.rbac import Permission, has_permission

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AppealService(BaseRepository):
    """Appeal operations bound to one database session"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ModerationAppeal)

    async def submit_appeal(
        self,
        queue_item_id: uuid.UUID,
        user: User,
        reason: str,
        additional_info: Optional[str] = None
    ) -> ModerationAppeal:
        item = await self.session.get(ModerationQueueItem, queue_item_id)
        if item is None:
            raise NotFoundError("Moderation queue item not found")
        if item.author_id != user.id:
            raise PermissionDeniedError("You can only appeal your own content")
        if item.status not in APPEALABLE_STATUSES:
            raise ValidationError("This content has not been rejected")

        stmt = select(ModerationAppeal.id).where(
            ModerationAppeal.queue_item_id == item.id,
            ModerationAppeal.user_id == user.id,
            ModerationAppeal.status == AppealStatus.PENDING,
        )
        if (await self.session.execute(stmt)).first() is not None:
            raise ConflictError("An appeal is already pending for this content")

        appeal = await self.create(
            queue_item_id=item.id,
            user_id=user.id,
            reason=reason,
            additional_info=additional_info,
            status=AppealStatus.PENDING,
        )
        logger.info(
            "Appeal submitted",
            extra={"appeal_id": str(appeal.id), "queue_item_id": str(item.id), "user_id": str(user.id)}
        )
        return appeal

    async def get_appeal(self, appeal_id: uuid.UUID, user: User) -> ModerationAppeal:
        """An appeal visible to its author and to moderators"""
        appeal = await self.get_by_id(appeal_id)
        if appeal is None:
            raise NotFoundError("Appeal not found")
        if appeal.user_id != user.id and not has_permission(user, Permission.MODERATE_CONTENT):
            raise NotFoundError("Appeal not found")
        return appeal

    async def list_appeals(
        self,
        status: Optional[str] = "pending",
        user_id: Optional[uuid.UUID] = None,
        page: int = 1,
        page_size: int = 10
    ) -> Dict[str, Any]:
        """Newest first; ``status`` of None or ``"all"`` lists every appeal"""
        stmt = select(ModerationAppeal).order_by(ModerationAppeal.created_at.desc())
        if status and status != "all":
            try:
                stmt = stmt.where(ModerationAppeal.status == AppealStatus(status.lower()))
            except ValueError:
                raise ValidationError(f"Unknown appeal status: {status}")
        if user_id is not None:
            stmt = stmt.where(ModerationAppeal.user_id == user_id)

        appeals, total = await self.paginate(stmt, limit=page_size, offset=(page - 1) * page_size)
        return {
            "appeals": appeals,
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": math.ceil(total / page_size) if page_size else 0,
        }

    async def _load_pending(self, appeal_id: uuid.UUID) -> ModerationAppeal:
        stmt = (
            select(ModerationAppeal)
            .options(selectinload(ModerationAppeal.queue_item).selectinload(ModerationQueueItem.history))
            .where(ModerationAppeal.id == appeal_id)
            .execution_options(populate_existing=True)
        )
        appeal = (await self.session.execute(stmt)).scalars().first()
        if appeal is None:
            raise NotFoundError("Appeal not found")
        if appeal.status != AppealStatus.PENDING:
            raise ValidationError("This appeal has already been reviewed")
        return appeal

    async def approve_appeal(
        self,
        appeal_id: uuid.UUID,
        moderator: User,
        notes: Optional[str] = None,
        request: Optional[Request] = None
    ) -> ModerationAppeal:
        """Accept the appeal and resolve the queue item as approved"""
        appeal = await self._load_pending(appeal_id)
        item = appeal.queue_item
        previous_status = item.status

        now = _utcnow()
        appeal.status = AppealStatus.APPROVED
        appeal.reviewed_by = moderator.id
        appeal.reviewed_at = now
        appeal.moderator_notes = notes

        item.status = ModerationStatus.APPROVED
        item.action_taken = ModerationAction.APPROVED
        item.moderator_id = moderator.id
        item.resolved_at = now
        item.history.insert(0, ModerationHistory(
            status=ModerationStatus.APPROVED,
            action_taken=ModerationAction.APPROVED,
            moderator_id=moderator.id,
            notes=f"Appeal approved: {notes}" if notes else "Appeal approved",
        ))
        await self.session.flush()

        await create_audit_log(
            self.session,
            action_type="appeal_approved",
            entity_type="appeal",
            entity_id=str(appeal.id),
            user=moderator,
            action_data={"queue_item_id": str(item.id), "notes": notes},
            previous_state={"appeal": AppealStatus.PENDING.value, "queue_item": previous_status.value},
            new_state={"appeal": appeal.status.value, "queue_item": item.status.value},
            request=request,
        )

        logger.info(
            "Appeal approved",
            extra={"appeal_id": str(appeal.id), "queue_item_id": str(item.id), "moderator_id": str(moderator.id)}
        )
        return appeal

    async def reject_appeal(
        self,
        appeal_id: uuid.UUID,
        moderator: User,
        notes: Optional[str] = None,
        request: Optional[Request] = None
    ) -> ModerationAppeal:
        """Decline the appeal; the queue item stays rejected"""
        appeal = await self._load_pending(appeal_id)
        item = appeal.queue_item

        appeal.status = AppealStatus.REJECTED
        appeal.reviewed_by = moderator.id
        appeal.reviewed_at = _utcnow()
        appeal.moderator_notes = notes

        item.history.insert(0, ModerationHistory(
            status=item.status,
            action_taken=item.action_taken,
            moderator_id=moderator.id,
            notes=f"Appeal rejected: {notes}" if notes else "Appeal rejected",
        ))
        await self.session.flush()

        await create_audit_log(
            self.session,
            action_type="appeal_rejected",
            entity_type="appeal",
            entity_id=str(appeal.id),
            user=moderator,
            action_data={"queue_item_id": str(item.id), "notes": notes},
            previous_state={"appeal": AppealStatus.PENDING.value},
            new_state={"appeal": appeal.status.value},
            request=request,
        )

        logger.info(
            "Appeal rejected",
            extra={"appeal_id": str(appeal.id), "queue_item_id": str(item.id), "moderator_id": str(moderator.id)}
        )
        return appeal
