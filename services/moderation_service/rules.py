"""
Moderation rule engine

Rules are evaluated highest priority first. Every matching rule flags the
content; the first rule carrying an automatic action decides the outcome and
stops evaluation.
"""

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import Settings, get_config
from shared.models import (
    ContentType, ModerationAction, ModerationPriority, ModerationRule,
    ModerationStatus, PRIORITY_RANK, RuleType, User, UserReputation,
)

logger = logging.getLogger(__name__)

LINK_PATTERN = re.compile(r"https?://", re.IGNORECASE)

AUTO_ACTION_STATUS = {
    ModerationAction.APPROVED: ModerationStatus.AUTO_APPROVED,
    ModerationAction.REJECTED: ModerationStatus.AUTO_REJECTED,
}

_datetime_adapter = TypeAdapter(datetime)


class ModerationRuleResult(BaseModel):
    auto_flagged: bool = False
    status: ModerationStatus = ModerationStatus.PENDING
    priority: Optional[ModerationPriority] = None
    auto_action: Optional[ModerationAction] = None
    reason: Optional[str] = None
    matched_rules: List[str] = Field(default_factory=list)


def parse_keywords(keywords: Optional[str]) -> List[str]:
    if not keywords:
        return []
    return [k.strip().lower() for k in keywords.split(",") if k.strip()]


def count_links(content: str) -> int:
    return len(LINK_PATTERN.findall(content or ""))


def _as_utc(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        parsed = _datetime_adapter.validate_python(value)
    except ValidationError:
        logger.warning(f"Ignoring unparseable timestamp in rule metadata: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class RuleEngine:
    """Evaluates the enabled rules for a content type against submitted content"""

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None, now: Optional[datetime] = None):
        self.session = session
        self.settings = settings or get_config()
        self._now = now

    @property
    def now(self) -> datetime:
        return self._now or datetime.now(timezone.utc)

    async def load_rules(self, content_type: ContentType) -> List[ModerationRule]:
        stmt = select(ModerationRule).where(
            ModerationRule.content_type == content_type,
            ModerationRule.enabled.is_(True),
        )
        rules = (await self.session.execute(stmt)).scalars().all()
        return sorted(rules, key=lambda rule: (-PRIORITY_RANK[rule.priority], rule.name))

    async def apply_moderation_rules(
        self,
        content_type: ContentType,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ModerationRuleResult:
        result = ModerationRuleResult()
        metadata = metadata or {}

        rules = await self.load_rules(content_type)
        if not rules:
            return result

        for rule in rules:
            if not await self.check_rule_match(rule, content, metadata):
                continue

            result.matched_rules.append(rule.name)
            if not result.auto_flagged:
                # Rules are sorted, so the first match carries the highest priority
                result.priority = rule.priority
                result.reason = f"Matched rule: {rule.name}"
            result.auto_flagged = True

            if rule.auto_action is not None:
                result.auto_action = rule.auto_action
                result.status = AUTO_ACTION_STATUS.get(rule.auto_action, ModerationStatus.NEEDS_REVIEW)
                result.reason = f"Matched rule: {rule.name}"
                break

            result.status = ModerationStatus.NEEDS_REVIEW

        if result.auto_flagged:
            logger.info(
                "Content flagged by moderation rules",
                extra={
                    "content_type": content_type.value,
                    "matched_rules": result.matched_rules,
                    "status": result.status.value,
                }
            )
        return result

    async def check_rule_match(self, rule: ModerationRule, content: str, metadata: Dict[str, Any]) -> bool:
        content = content or ""
        content_lower = content.lower()
        if any(keyword in content_lower for keyword in parse_keywords(rule.keywords)):
            return True

        rule_type = rule.rule_type
        if rule_type == RuleType.IMAGE:
            return bool(metadata.get("has_image"))

        if rule_type == RuleType.USER_REPUTATION:
            threshold = self._threshold(rule, self.settings.low_reputation_threshold)
            score = await self._reputation_score(metadata.get("user_id"))
            return score is not None and score < threshold

        if rule_type == RuleType.SHORT_CONTENT:
            threshold = self._threshold(rule, self.settings.short_content_min_length)
            return len(content) < threshold

        if rule_type == RuleType.SPAM_DETECTION:
            threshold = self._threshold(rule, self.settings.spam_link_threshold)
            return count_links(content) > threshold

        if rule_type == RuleType.NEW_USER_CONTENT:
            threshold = self._threshold(rule, self.settings.new_account_days)
            created_at = _as_utc(metadata.get("user_created_at"))
            if created_at is None:
                created_at = await self._user_created_at(metadata.get("user_id"))
            if created_at is None:
                return False
            age_days = (self.now - created_at).total_seconds() / 86400
            return age_days < threshold

        return False

    @staticmethod
    def _threshold(rule: ModerationRule, default: float) -> float:
        return rule.threshold if rule.threshold is not None else default

    async def _reputation_score(self, user_id: Any) -> Optional[float]:
        user_uuid = _as_uuid(user_id)
        if user_uuid is None:
            return None
        stmt = select(UserReputation.reputation_score).where(UserReputation.user_id == user_uuid)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def _user_created_at(self, user_id: Any) -> Optional[datetime]:
        user_uuid = _as_uuid(user_id)
        if user_uuid is None:
            return None
        stmt = select(User.created_at).where(User.id == user_uuid)
        return _as_utc((await self.session.execute(stmt)).scalar_one_or_none())


async def apply_moderation_rules(
    session: AsyncSession,
    content_type: ContentType,
    content: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> ModerationRuleResult:
    """Convenience wrapper evaluating rules with the configured defaults"""
    return await RuleEngine(session).apply_moderation_rules(content_type, content, metadata)
