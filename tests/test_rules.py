"""
Tests for the moderation rule engine

Covers keyword matching, every rule type predicate, rule ordering and the
short-circuit on automatic actions.
"""

from datetime import datetime, timedelta, timezone

import pytest

from services.moderation_service.rules import (
    RuleEngine, apply_moderation_rules, count_links, parse_keywords,
)
from shared.config import Settings
from shared.models import (
    ContentType, ModerationAction, ModerationPriority, ModerationStatus, RuleType,
)


@pytest.fixture
def engine(test_session):
    return RuleEngine(test_session, settings=Settings())


class TestHelpers:

    def test_parse_keywords_trims_and_lowercases(self):
        assert parse_keywords(" Spam , BUY NOW,, ") == ["spam", "buy now"]

    def test_parse_keywords_empty(self):
        assert parse_keywords(None) == []
        assert parse_keywords("") == []

    def test_count_links(self):
        assert count_links("see http://a.example and HTTPS://b.example") == 2
        assert count_links("no links here") == 0
        assert count_links(None) == 0


class TestRuleEngine:
    """Rule evaluation against a real (in-memory) database"""

    async def test_no_rules_returns_unflagged(self, engine):
        result = await engine.apply_moderation_rules(ContentType.POST, "hello farmers")
        assert result.auto_flagged is False
        assert result.status == ModerationStatus.PENDING
        assert result.priority is None
        assert result.matched_rules == []

    async def test_keyword_match_is_case_insensitive(self, engine, make_rule):
        await make_rule(name="Spam words", keywords="free money", priority=ModerationPriority.HIGH)

        result = await engine.apply_moderation_rules(ContentType.POST, "Get FREE Money today")

        assert result.auto_flagged is True
        assert result.status == ModerationStatus.NEEDS_REVIEW
        assert result.priority == ModerationPriority.HIGH
        assert result.reason == "Matched rule: Spam words"

    async def test_rules_for_other_content_types_are_ignored(self, engine, make_rule):
        await make_rule(name="Spam words", keywords="spam", content_type=ContentType.COMMENT)

        result = await engine.apply_moderation_rules(ContentType.POST, "spam spam")
        assert result.auto_flagged is False

    async def test_disabled_rules_are_ignored(self, engine, make_rule):
        await make_rule(name="Spam words", keywords="spam", enabled=False)

        result = await engine.apply_moderation_rules(ContentType.POST, "spam spam")
        assert result.auto_flagged is False

    async def test_auto_reject_short_circuits(self, engine, make_rule):
        await make_rule(
            name="Slurs", keywords="badword", priority=ModerationPriority.URGENT,
            auto_action=ModerationAction.REJECTED,
        )
        await make_rule(name="Everything short", rule_type=RuleType.SHORT_CONTENT, threshold=100)

        result = await engine.apply_moderation_rules(ContentType.POST, "badword")

        assert result.status == ModerationStatus.AUTO_REJECTED
        assert result.auto_action == ModerationAction.REJECTED
        assert result.priority == ModerationPriority.URGENT
        assert result.matched_rules == ["Slurs"]

    async def test_auto_approve(self, engine, make_rule):
        await make_rule(name="Trusted phrase", keywords="weekly market report", auto_action=ModerationAction.APPROVED)

        result = await engine.apply_moderation_rules(ContentType.POST, "Weekly market report: maize up 3%")
        assert result.status == ModerationStatus.AUTO_APPROVED

    async def test_other_auto_actions_need_review(self, engine, make_rule):
        await make_rule(name="Warn", keywords="scam", auto_action=ModerationAction.WARNING)

        result = await engine.apply_moderation_rules(ContentType.POST, "this looks like a scam")
        assert result.status == ModerationStatus.NEEDS_REVIEW
        assert result.auto_action == ModerationAction.WARNING

    async def test_priority_comes_from_highest_ranked_match(self, engine, make_rule):
        await make_rule(name="Low rule", keywords="tractor", priority=ModerationPriority.LOW)
        await make_rule(name="High rule", keywords="tractor", priority=ModerationPriority.HIGH)

        result = await engine.apply_moderation_rules(ContentType.POST, "selling my tractor")

        assert result.priority == ModerationPriority.HIGH
        assert result.matched_rules == ["High rule", "Low rule"]

    async def test_image_rule(self, engine, make_rule):
        await make_rule(name="Images", rule_type=RuleType.IMAGE)

        flagged = await engine.apply_moderation_rules(ContentType.POST, "look at my crop", {"has_image": True})
        clean = await engine.apply_moderation_rules(ContentType.POST, "look at my crop", {"has_image": False})

        assert flagged.auto_flagged is True
        assert clean.auto_flagged is False

    async def test_short_content_uses_configured_default(self, engine, make_rule):
        await make_rule(name="Too short", rule_type=RuleType.SHORT_CONTENT)

        assert (await engine.apply_moderation_rules(ContentType.POST, "ok")).auto_flagged is True
        assert (await engine.apply_moderation_rules(ContentType.POST, "long enough")).auto_flagged is False

    async def test_rule_threshold_overrides_default(self, engine, make_rule):
        await make_rule(name="Too short", rule_type=RuleType.SHORT_CONTENT, threshold=20)

        result = await engine.apply_moderation_rules(ContentType.POST, "long enough")
        assert result.auto_flagged is True

    async def test_spam_detection_counts_links(self, engine, make_rule):
        await make_rule(name="Links", rule_type=RuleType.SPAM_DETECTION)

        three = " ".join(f"http://x{i}.example" for i in range(3))
        four = " ".join(f"http://x{i}.example" for i in range(4))

        assert (await engine.apply_moderation_rules(ContentType.POST, three)).auto_flagged is False
        assert (await engine.apply_moderation_rules(ContentType.POST, four)).auto_flagged is True

    async def test_user_reputation(self, engine, make_rule, set_reputation, user, other_user):
        await make_rule(name="Low reputation", rule_type=RuleType.USER_REPUTATION)
        await set_reputation(user, 2.5)
        await set_reputation(other_user, 50)

        low = await engine.apply_moderation_rules(ContentType.POST, "hello there", {"user_id": str(user.id)})
        high = await engine.apply_moderation_rules(ContentType.POST, "hello there", {"user_id": str(other_user.id)})

        assert low.auto_flagged is True
        assert high.auto_flagged is False

    async def test_user_reputation_without_record_does_not_match(self, engine, make_rule, user):
        await make_rule(name="Low reputation", rule_type=RuleType.USER_REPUTATION)

        result = await engine.apply_moderation_rules(ContentType.POST, "hello there", {"user_id": str(user.id)})
        assert result.auto_flagged is False

    async def test_user_reputation_without_user_does_not_match(self, engine, make_rule):
        await make_rule(name="Low reputation", rule_type=RuleType.USER_REPUTATION)

        result = await engine.apply_moderation_rules(ContentType.POST, "hello there", {"user_id": "not-a-uuid"})
        assert result.auto_flagged is False

    async def test_new_user_content_from_metadata(self, engine, make_rule):
        await make_rule(name="New account", rule_type=RuleType.NEW_USER_CONTENT)
        recent = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        old = (datetime.now(timezone.utc) - timedelta(days=30)).isoformat()

        assert (await engine.apply_moderation_rules(
            ContentType.POST, "hello there", {"user_created_at": recent}
        )).auto_flagged is True
        assert (await engine.apply_moderation_rules(
            ContentType.POST, "hello there", {"user_created_at": old}
        )).auto_flagged is False

    async def test_new_user_content_falls_back_to_account(self, engine, make_rule, new_user, user):
        await make_rule(name="New account", rule_type=RuleType.NEW_USER_CONTENT)

        fresh = await engine.apply_moderation_rules(ContentType.POST, "hello there", {"user_id": str(new_user.id)})
        established = await engine.apply_moderation_rules(ContentType.POST, "hello there", {"user_id": str(user.id)})

        assert fresh.auto_flagged is True
        assert established.auto_flagged is False

    async def test_new_user_content_with_bad_timestamp(self, engine, make_rule):
        await make_rule(name="New account", rule_type=RuleType.NEW_USER_CONTENT)

        result = await engine.apply_moderation_rules(ContentType.POST, "hello", {"user_created_at": "yesterday-ish"})
        assert result.auto_flagged is False

    async def test_keywords_apply_to_any_rule_type(self, engine, make_rule):
        await make_rule(name="Links", rule_type=RuleType.SPAM_DETECTION, keywords="click here")

        result = await engine.apply_moderation_rules(ContentType.POST, "Click here for seeds")
        assert result.auto_flagged is True

    async def test_module_level_wrapper(self, test_session, make_rule):
        await make_rule(name="Spam words", keywords="spam")

        result = await apply_moderation_rules(test_session, ContentType.POST, "spam")
        assert result.matched_rules == ["Spam words"]
