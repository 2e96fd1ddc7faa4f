"""
Search relevance settings

Admins edit stopwords and synonyms through the ``search_relevance`` row of the
settings table. The row is read at most once per ``search_settings_cache_ttl``
seconds per process.
"""

import logging
import time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import get_config
from shared.models import Setting

logger = logging.getLogger(__name__)

SEARCH_SETTINGS_KEY = "search_relevance"

DEFAULT_STOPWORDS = [
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to",
    "for", "with", "by", "about", "from", "as", "of", "is", "are",
    "was", "were", "be", "been", "being", "have", "has", "had",
    "do", "does", "did", "can", "could", "shall", "should", "will",
    "would", "may", "might", "must", "that", "which", "who", "whom",
    "this", "these", "those", "my", "your", "his", "her", "its",
    "our", "their", "i", "you", "he", "she", "it", "we", "they",
]


class SynonymEntry(BaseModel):
    original: str
    synonyms: List[str] = Field(default_factory=list)


DEFAULT_SYNONYMS = [
    SynonymEntry(original="organic", synonyms=["natural", "bio", "chemical-free"]),
    SynonymEntry(original="fertilizer", synonyms=["plant food", "soil enhancer", "nutrient"]),
]


class SearchRelevanceSettings(BaseModel):
    """Stored as camelCase JSON by the admin dashboard"""
    model_config = ConfigDict(populate_by_name=True)

    enable_stopwords: bool = Field(True, alias="enableStopwords")
    stopwords: List[str] = Field(default_factory=lambda: list(DEFAULT_STOPWORDS))
    enable_synonyms: bool = Field(True, alias="enableSynonyms")
    synonyms: List[SynonymEntry] = Field(default_factory=list)

    @classmethod
    def defaults(cls) -> "SearchRelevanceSettings":
        return cls(synonyms=list(DEFAULT_SYNONYMS))

    @classmethod
    def from_value(cls, value) -> "SearchRelevanceSettings":
        """Parse a stored row; a row without ``stopwords`` keeps the default list"""
        if isinstance(value, str):
            return cls.model_validate_json(value)
        return cls.model_validate(value or {})


_cached: Optional[SearchRelevanceSettings] = None
_cached_at: float = 0.0


def clear_search_settings_cache():
    global _cached, _cached_at
    _cached = None
    _cached_at = 0.0


async def get_search_settings(session: AsyncSession) -> SearchRelevanceSettings:
    global _cached, _cached_at

    now = time.monotonic()
    if _cached is not None and now - _cached_at < get_config().search_settings_cache_ttl:
        return _cached

    try:
        stmt = select(Setting.value).where(Setting.key == SEARCH_SETTINGS_KEY)
        value = (await session.execute(stmt)).scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching search relevance settings: {e}")
        return SearchRelevanceSettings.defaults()

    if value is None:
        settings = SearchRelevanceSettings.defaults()
    else:
        try:
            settings = SearchRelevanceSettings.from_value(value)
        except PydanticValidationError as e:
            logger.error(f"Invalid search relevance settings, using defaults: {e}")
            return SearchRelevanceSettings.defaults()

    _cached, _cached_at = settings, now
    return settings
