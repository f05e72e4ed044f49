from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any

from app.services.models import PostingContent

_UPPERCASE_RE = re.compile(r"[A-Z]")

MAX_REASONABLE_SALARY = 10_000_000
ENTRY_LEVEL_SALARY_CEILING = 5_000_000

DEFAULT_SPAM_KEYWORDS: tuple[str, ...] = (
    "work from home earn",
    "quick money",
    "easy cash",
    "get rich",
    "guaranteed income",
    "no experience needed",
    "earn daily",
    "make money fast",
    "limited time offer",
    "act now",
    "free money",
    "risk-free",
    "click here",
    "congratulations",
    "investment opportunity",
    "multilevel marketing",
    "mlm",
    "pyramid scheme",
    "send money",
    "wire transfer",
    "western union",
    "bitcoin wallet",
    "crypto investment",
    "forex trading",
    "binary options",
    "online survey",
    "data entry job",
    "envelope stuffing",
    "assembly work",
    "rebate processing",
)

DEFAULT_SUSPICIOUS_PATTERNS: tuple[str, ...] = (
    # per-hour/per-day rate ranges
    r"\$\d+k?-\$\d+k?\s*per\s*(day|hour)",
    r"earn\s*\$?\d+k?\+?\s*(daily|hourly|weekly)",
    # off-platform contact
    r"(whatsapp|telegram|email)\s*(me|us)\s*at",
    r"contact\s*@",
    r"\+?\d{10,}",
    r"bit\.ly|tinyurl|goo\.gl",
    r"https?://\S+",
)


@dataclass(frozen=True, slots=True)
class SpamRules:
    keywords: tuple[str, ...]
    patterns: tuple[re.Pattern[str], ...]

    @classmethod
    def build(cls, *, keywords: list[str] | tuple[str, ...], patterns: list[str] | tuple[str, ...]) -> SpamRules:
        normalized_keywords: list[str] = []
        for keyword in keywords:
            if not isinstance(keyword, str) or not keyword.strip():
                raise ValueError("spam keywords must be non-empty strings")
            lowered = keyword.strip().lower()
            if lowered not in normalized_keywords:
                normalized_keywords.append(lowered)

        compiled: list[re.Pattern[str]] = []
        for pattern in patterns:
            if not isinstance(pattern, str) or not pattern:
                raise ValueError("spam patterns must be non-empty strings")
            try:
                compiled.append(re.compile(pattern, re.IGNORECASE))
            except re.error as exc:
                raise ValueError(f"invalid spam pattern {pattern!r}: {exc}") from exc

        return cls(keywords=tuple(normalized_keywords), patterns=tuple(compiled))


DEFAULT_SPAM_RULES = SpamRules.build(keywords=DEFAULT_SPAM_KEYWORDS, patterns=DEFAULT_SUSPICIOUS_PATTERNS)


@dataclass(slots=True)
class SpamScore:
    score: int
    reasons: list[str]


def load_spam_rules(raw: str | None) -> SpamRules:
    """Build spam rules from a JSON override document.

    The document may carry ``keywords`` and ``patterns`` lists. They extend the
    defaults unless ``replace`` is true. Raises ``ValueError`` on malformed input.
    """
    if raw is None or not raw.strip():
        return DEFAULT_SPAM_RULES

    try:
        document = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"spam rules must be valid JSON: {exc.msg}") from exc
    if not isinstance(document, dict):
        raise ValueError("spam rules must be a JSON object")

    unsupported = sorted(set(document) - {"keywords", "patterns", "replace"})
    if unsupported:
        raise ValueError(f"spam rules contain unsupported keys: {', '.join(unsupported)}")

    keywords = document.get("keywords", [])
    patterns = document.get("patterns", [])
    if not isinstance(keywords, list) or not isinstance(patterns, list):
        raise ValueError("spam rules keywords and patterns must be lists")

    if document.get("replace") is True:
        return SpamRules.build(keywords=keywords, patterns=patterns)
    return SpamRules.build(
        keywords=[*DEFAULT_SPAM_KEYWORDS, *keywords],
        patterns=[*DEFAULT_SUSPICIOUS_PATTERNS, *patterns],
    )


def score_quality(content: PostingContent) -> int:
    score = 0

    title = _text(content.title)
    if title is not None:
        title_length = len(title)
        if 10 <= title_length <= 100:
            score += 15
        elif 5 <= title_length < 10:
            score += 8
        elif title_length > 100:
            score += 5

    description = _text(content.description)
    if description is not None:
        description_length = len(description)
        if 200 <= description_length <= 5000:
            score += 25
        elif 100 <= description_length < 200:
            score += 15
        elif 50 <= description_length < 100:
            score += 8

    requirement_count = len(_requirement_entries(content.requirements))
    if requirement_count >= 5:
        score += 15
    elif requirement_count >= 3:
        score += 10
    elif requirement_count >= 1:
        score += 5

    salary = _number(content.salary)
    if salary:
        if 0 < salary < MAX_REASONABLE_SALARY:
            score += 15
        elif salary > 0:
            score += 5

    experience_level = _number(content.experience_level)
    if experience_level is not None and experience_level >= 0:
        score += 10

    location = _text(content.location)
    if location is not None and len(location) >= 3:
        score += 10

    position = _number(content.position)
    if position is not None and 0 < position <= 100:
        score += 10

    return min(score, 100)


def score_spam(content: PostingContent, rules: SpamRules = DEFAULT_SPAM_RULES) -> SpamScore:
    score = 0
    reasons: list[str] = []

    title = _text(content.title) or ""
    corpus = " ".join(
        [title, _text(content.description) or "", " ".join(_requirement_entries(content.requirements, strip=False))]
    ).lower()

    keyword_matches = sum(1 for keyword in rules.keywords if keyword in corpus)
    if keyword_matches > 0:
        score += min(keyword_matches * 10, 40)
        reasons.append(f"Contains {keyword_matches} spam keyword(s)")

    pattern_matches = sum(1 for pattern in rules.patterns if pattern.search(corpus))
    if pattern_matches > 0:
        score += min(pattern_matches * 15, 30)
        reasons.append(f"Contains {pattern_matches} suspicious pattern(s)")

    if title:
        upper_ratio = len(_UPPERCASE_RE.findall(title)) / len(title)
        if upper_ratio > 0.5 and len(title) > 10:
            score += 15
            reasons.append("Excessive capitalization in title")

    salary = _number(content.salary)
    if salary:
        if salary > MAX_REASONABLE_SALARY:
            score += 15
            reasons.append("Unrealistic salary amount")
        elif _number(content.experience_level) == 0 and salary > ENTRY_LEVEL_SALARY_CEILING:
            score += 10
            reasons.append("Unrealistic salary for experience level")

    return SpamScore(score=min(score, 100), reasons=reasons)


def _text(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    return None


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _requirement_entries(value: Any, *, strip: bool = True) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    if not strip:
        return [item for item in value if isinstance(item, str)]
    return [item for item in value if isinstance(item, str) and item.strip()]
