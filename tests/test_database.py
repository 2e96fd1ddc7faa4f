"""Tests for database utilities and operations"""
import uuid

import pytest
from sqlalchemy import select

from shared.database import BaseRepository, DatabaseManager
from shared.models import ContentType, ModerationPriority, ModerationRule, RuleType


class TestDatabaseManager:
    """Tests for DatabaseManager class"""

    async def test_initialize_and_close(self):
        """Test database manager lifecycle"""
        manager = DatabaseManager()
        assert manager.engine is None
        assert manager._initialized is False

        await manager.initialize("sqlite+aiosqlite:///:memory:")
        assert manager.engine is not None
        assert manager.session_factory is not None
        assert manager._initialized is True

        await manager.close()
        assert manager._initialized is False

    async def test_session_rolls_back_on_error(self):
        manager = DatabaseManager()
        await manager.initialize("sqlite+aiosqlite:///:memory:")

        with pytest.raises(RuntimeError):
            async with manager.get_session() as session:
                assert session.is_active
                raise RuntimeError("boom")

        await manager.close()


class TestBaseRepository:
    """Tests for BaseRepository class"""

    async def test_create_applies_defaults(self, test_session):
        repo = BaseRepository(test_session, ModerationRule)

        rule = await repo.create(name="Spam words", content_type=ContentType.POST, keywords="spam")

        assert rule.id is not None
        assert rule.rule_type == RuleType.KEYWORD
        assert rule.priority == ModerationPriority.NORMAL
        assert rule.enabled is True
        assert rule.created_at is not None

    async def test_get_update_delete(self, test_session):
        repo = BaseRepository(test_session, ModerationRule)
        rule = await repo.create(name="Spam words", content_type=ContentType.POST)

        assert await repo.get_by_id(rule.id) is rule

        await repo.update(rule, enabled=False, not_a_column="ignored")
        assert rule.enabled is False
        assert not hasattr(rule, "not_a_column")

        assert await repo.delete(rule.id) is True
        assert await repo.get_by_id(rule.id) is None
        assert await repo.delete(uuid.uuid4()) is False

    async def test_paginate_counts_whole_result(self, test_session):
        repo = BaseRepository(test_session, ModerationRule)
        for i in range(5):
            await repo.create(name=f"Rule {i}", content_type=ContentType.COMMENT)
        await repo.create(name="Other", content_type=ContentType.POST)

        stmt = (
            select(ModerationRule)
            .where(ModerationRule.content_type == ContentType.COMMENT)
            .order_by(ModerationRule.name)
        )
        items, total = await repo.paginate(stmt, limit=2, offset=2)

        assert total == 5
        assert [rule.name for rule in items] == ["Rule 2", "Rule 3"]
