from __future__ import annotations

import math
import re
from collections.abc import Iterable
from dataclasses import dataclass

from app.services.models import PostingContent

_WHITESPACE_RE = re.compile(r"\s+")

DEFAULT_DUPLICATE_THRESHOLD = 70


@dataclass(slots=True)
class DuplicateMatch:
    posting_id: str
    similarity: int


def find_duplicate_posting(
    *,
    incoming: PostingContent,
    existing: Iterable[tuple[str, PostingContent]],
    threshold: int = DEFAULT_DUPLICATE_THRESHOLD,
) -> DuplicateMatch | None:
    """Return the first existing posting whose similarity reaches ``threshold``."""
    for posting_id, content in existing:
        similarity = posting_similarity(incoming, content)
        if similarity >= threshold:
            return DuplicateMatch(posting_id=posting_id, similarity=similarity)
    return None


def posting_similarity(left: PostingContent, right: PostingContent) -> int:
    similarity = 0

    left_title = _folded(left.title)
    right_title = _folded(right.title)
    if left_title and right_title:
        if left_title == right_title:
            similarity += 40
        elif left_title in right_title or right_title in left_title:
            similarity += 20

    left_words = _words(left.description)
    right_words = _words(right.description)
    if left_words and right_words:
        overlap = len(left_words & right_words) / max(len(left_words), len(right_words))
        similarity += math.floor(overlap * 30 + 0.5)

    left_location = _folded(left.location)
    if left_location and left_location == _folded(right.location):
        similarity += 15

    if _same_salary(left.salary, right.salary):
        similarity += 15

    return similarity


def _folded(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped.casefold() or None


def _words(value: object) -> set[str]:
    folded = _folded(value)
    if not folded:
        return set()
    return {word for word in _WHITESPACE_RE.split(folded) if word}


def _same_salary(left: object, right: object) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    if not isinstance(left, (int, float)) or not isinstance(right, (int, float)):
        return False
    return left == right
