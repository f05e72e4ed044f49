"""
Shared fixtures for moderation tests.
"""

from __future__ import annotations

import os
from typing import Any

import pytest

os.environ.setdefault("SJ_OTEL_ENABLED", "false")

CLEAN_SENTENCE = "We design, build and operate the services behind our payments product. "


@pytest.fixture
def strong_posting() -> dict[str, Any]:
    """A well-specified posting that should score full quality and zero spam."""
    return {
        "title": "Senior Backend Engineer for Payments Platform Team",
        "description": (CLEAN_SENTENCE * 20)[:1000],
        "requirements": [
            "Python",
            "PostgreSQL",
            "Distributed systems",
            "Code review",
            "On-call rotation",
            "Testing",
        ],
        "salary": 800000,
        "experience_level": 3,
        "location": "Remote",
        "position": 2,
    }


@pytest.fixture
def scam_posting(strong_posting: dict[str, Any]) -> dict[str, Any]:
    """High quality shape, but carrying spam keywords and off-platform contact patterns."""
    return {
        **strong_posting,
        "description": (
            "Make money fast with no experience needed! Guaranteed income: earn $500 daily. "
            "Whatsapp me at +15551234567 to start. " + CLEAN_SENTENCE * 3
        ),
    }
