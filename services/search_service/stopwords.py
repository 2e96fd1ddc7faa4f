"""Stopword filtering for search queries"""
import re
from typing import List, Optional

from .settings import SearchRelevanceSettings

PUNCTUATION = re.compile(r"[^\w\s]")


def _active_stopwords(settings: Optional[SearchRelevanceSettings]) -> List[str]:
    settings = settings or SearchRelevanceSettings.defaults()
    if not settings.enable_stopwords:
        return []
    return settings.stopwords


def get_stop_words(settings: Optional[SearchRelevanceSettings] = None) -> List[str]:
    """Configured stopwords, or an empty list when filtering is disabled"""
    return list(_active_stopwords(settings))


def remove_stop_words(text: str, settings: Optional[SearchRelevanceSettings] = None) -> str:
    stopwords = _active_stopwords(settings)
    if not stopwords:
        return text

    pattern = re.compile(r"\b(" + "|".join(re.escape(word) for word in stopwords) + r")\b", re.IGNORECASE)
    return re.sub(r"\s+", " ", pattern.sub("", text)).strip()


def filter_stop_words(words: List[str], settings: Optional[SearchRelevanceSettings] = None) -> List[str]:
    stopwords = {word.lower() for word in _active_stopwords(settings)}
    return [word for word in words if word.lower() not in stopwords]


def extract_meaningful_words(text: str, settings: Optional[SearchRelevanceSettings] = None) -> List[str]:
    """Lowercased words of ``text`` without punctuation, single characters or stopwords"""
    if not text:
        return []
    words = [word for word in PUNCTUATION.sub("", text.lower()).split() if len(word) > 1]
    return filter_stop_words(words, settings)
