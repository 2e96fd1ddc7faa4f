#!/usr/bin/env python3
"""
Insert the default moderation rules for every content type.

Existing rules (same name and content type) are left untouched, so the
script can be re-run after adding new defaults.
"""
import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from sqlalchemy import select

from shared.database import get_db_manager
from shared.logging import get_logger
from shared.models import ContentType, ModerationAction, ModerationPriority, ModerationRule, RuleType

logger = get_logger(__name__)

DEFAULT_RULES = [
    {
        "name": "Prohibited language",
        "description": "Slurs and threats are rejected outright",
        "rule_type": RuleType.KEYWORD,
        "keywords": "kill yourself,racist,nazi",
        "priority": ModerationPriority.URGENT,
        "auto_action": ModerationAction.REJECTED,
    },
    {
        "name": "Link spam",
        "description": "More than three links in one submission",
        "rule_type": RuleType.SPAM_DETECTION,
        "keywords": "buy now,free money,click here",
        "priority": ModerationPriority.HIGH,
    },
    {
        "name": "Low reputation author",
        "rule_type": RuleType.USER_REPUTATION,
        "priority": ModerationPriority.NORMAL,
    },
    {
        "name": "New account",
        "description": "Accounts younger than a week",
        "rule_type": RuleType.NEW_USER_CONTENT,
        "priority": ModerationPriority.NORMAL,
    },
    {
        "name": "Very short content",
        "rule_type": RuleType.SHORT_CONTENT,
        "priority": ModerationPriority.LOW,
    },
]

IMAGE_CONTENT_TYPES = (ContentType.POST, ContentType.PRODUCT, ContentType.RESOURCE)


def rules_for(content_type: ContentType):
    rules = list(DEFAULT_RULES)
    if content_type in IMAGE_CONTENT_TYPES:
        rules.append({
            "name": "Image attached",
            "description": "Images are checked by a moderator before publishing",
            "rule_type": RuleType.IMAGE,
            "priority": ModerationPriority.LOW,
        })
    return rules


async def seed() -> int:
    created = 0
    async with get_db_manager().get_session() as session:
        existing = {
            (name, content_type)
            for name, content_type in (
                await session.execute(select(ModerationRule.name, ModerationRule.content_type))
            ).all()
        }
        for content_type in ContentType:
            for rule in rules_for(content_type):
                if (rule["name"], content_type) in existing:
                    continue
                session.add(ModerationRule(content_type=content_type, **rule))
                created += 1

    await get_db_manager().close()
    logger.info(f"Seeded {created} moderation rules")
    return created


if __name__ == "__main__":
    asyncio.run(seed())
