"""Synonym expansion for search queries"""
from typing import Dict, List, Optional

from .settings import SearchRelevanceSettings, SynonymEntry


def _dictionary(settings: Optional[SearchRelevanceSettings]) -> List[SynonymEntry]:
    settings = settings or SearchRelevanceSettings.defaults()
    return settings.synonyms


def _enabled(settings: Optional[SearchRelevanceSettings]) -> bool:
    return settings is None or settings.enable_synonyms


def _matches(entry: SynonymEntry, word: str) -> bool:
    return entry.original.lower() == word or any(s.lower() == word for s in entry.synonyms)


def expand_query_terms(query: str, settings: Optional[SearchRelevanceSettings] = None) -> List[str]:
    """Query words plus every synonym group they belong to, in first-seen order"""
    words = query.lower().split()
    if not _enabled(settings):
        return words

    terms: Dict[str, None] = dict.fromkeys(words)
    for word in words:
        if len(word) < 3:
            continue
        for entry in _dictionary(settings):
            if _matches(entry, word):
                terms[entry.original.lower()] = None
                for synonym in entry.synonyms:
                    terms[synonym.lower()] = None
    return list(terms)


def expand_query_with_synonyms(query: str, settings: Optional[SearchRelevanceSettings] = None) -> str:
    """Expanded query joined with the ``|`` OR operator"""
    if not _enabled(settings):
        return query
    return " | ".join(expand_query_terms(query, settings))


def create_synonym_index(settings: Optional[SearchRelevanceSettings] = None) -> Dict[str, List[str]]:
    index = {}
    for entry in _dictionary(settings):
        index[entry.original.lower()] = [entry.original] + entry.synonyms
        for synonym in entry.synonyms:
            index[synonym.lower()] = [entry.original] + [s for s in entry.synonyms if s != synonym]
    return index


def find_synonyms(word: str, settings: Optional[SearchRelevanceSettings] = None) -> List[str]:
    if not word or len(word) < 3:
        return []

    word = word.lower()
    for entry in _dictionary(settings):
        if entry.original.lower() == word:
            return list(entry.synonyms)
        for index, synonym in enumerate(entry.synonyms):
            if synonym.lower() == word:
                return [entry.original] + [s for i, s in enumerate(entry.synonyms) if i != index]
    return []


def suggest_alternative_queries(
    query: str,
    max_suggestions: int = 3,
    settings: Optional[SearchRelevanceSettings] = None
) -> List[str]:
    """Queries with one word swapped for a synonym, at most ``max_suggestions``"""
    if not _enabled(settings):
        return []

    words = query.lower().split()
    suggestions: List[str] = []

    def replaced(position: int, replacement: str) -> str:
        return " ".join(words[:position] + [replacement] + words[position + 1:])

    for position, word in enumerate(words):
        if len(word) < 3:
            continue
        for entry in _dictionary(settings):
            if entry.original.lower() == word:
                for synonym in entry.synonyms:
                    suggestions.append(replaced(position, synonym))
                    if len(suggestions) >= max_suggestions:
                        return suggestions

            matched = [i for i, s in enumerate(entry.synonyms) if s.lower() == word]
            if matched:
                suggestions.append(replaced(position, entry.original))
                if len(suggestions) >= max_suggestions:
                    return suggestions
                for i, synonym in enumerate(entry.synonyms):
                    if i == matched[0]:
                        continue
                    suggestions.append(replaced(position, synonym))
                    if len(suggestions) >= max_suggestions:
                        return suggestions

    return suggestions
