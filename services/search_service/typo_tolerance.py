"""Fuzzy word matching for marketplace search"""
from typing import Dict, Iterable, List, Tuple


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between ``a`` and ``b`` (insert, delete, substitute)"""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(a) + 1))
    for i, char_b in enumerate(b, start=1):
        current = [i]
        for j, char_a in enumerate(a, start=1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j - 1], current[j - 1], previous[j]) + 1)
        previous = current
    return previous[-1]


def is_similar(word1: str, word2: str, max_distance: int = 2) -> bool:
    """
    Whether two words are close enough to count as the same search term.

    Words shorter than three characters must match exactly. Longer words may
    differ by one edit per four characters of the longer word, at least one
    and at most ``max_distance``.
    """
    if len(word1) < 3 or len(word2) < 3:
        return word1 == word2

    distance = levenshtein_distance(word1.lower(), word2.lower())
    length_based = max(len(word1), len(word2)) // 4
    return distance <= min(max_distance, max(1, length_based))


def find_similar_words(query: str, word_list: Iterable[str]) -> List[str]:
    query_words = [word for word in query.lower().split() if len(word) >= 3]
    results = []
    for word in word_list:
        if len(word) < 3 or word in results:
            continue
        word_lower = word.lower()
        if any(is_similar(query_word, word_lower) for query_word in query_words):
            results.append(word)
    return results


def apply_typo_tolerance(
    query: str,
    searchable_content: Iterable[Tuple[str, str]],
    max_distance: int = 2,
    min_word_length: int = 3
) -> List[str]:
    """Ids of the ``(id, text)`` items sharing at least one fuzzy word with the query"""
    query_words = [word for word in query.lower().split() if len(word) >= min_word_length]
    matched: Dict[str, None] = {}

    for item_id, text in searchable_content:
        item_words = [word for word in (text or "").lower().split() if len(word) >= min_word_length]
        for query_word in query_words:
            if any(is_similar(query_word, item_word, max_distance) for item_word in item_words):
                matched[item_id] = None
                break

    return list(matched)


def generate_spelling_suggestions(query: str, dictionary: Iterable[str], max_suggestions: int = 3) -> List[str]:
    dictionary = [word for word in dictionary if len(word) >= 3]
    suggestions: List[str] = []

    for word in query.lower().split():
        if len(word) < 3:
            continue
        limit = max(2, len(word) // 3)
        candidates = []
        for dict_word in dictionary:
            distance = levenshtein_distance(word, dict_word)
            if distance <= limit:
                candidates.append((distance, dict_word))
        # Stable sort keeps dictionary order among equal distances
        candidates.sort(key=lambda candidate: candidate[0])
        suggestions.extend(dict_word for _, dict_word in candidates[:max_suggestions])

    return list(dict.fromkeys(suggestions))
