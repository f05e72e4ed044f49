from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

ModerationStatus = Literal["pending", "approved", "flagged", "rejected"]
CompanyVerificationStatus = Literal["pending", "approved", "rejected", "resubmitted"]
ReportReason = Literal["spam", "inappropriate", "fraud", "duplicate", "other"]
ReportStatus = Literal["pending", "resolved", "dismissed"]
ReportOutcome = Literal["resolved", "dismissed"]
ReviewAction = Literal["approve", "reject", "flag"]

REPORT_REASONS: frozenset[str] = frozenset({"spam", "inappropriate", "fraud", "duplicate", "other"})
REPORT_OUTCOMES: frozenset[str] = frozenset({"resolved", "dismissed"})
REVIEW_ACTIONS: frozenset[str] = frozenset({"approve", "reject", "flag"})


@dataclass(slots=True)
class PostingContent:
    """Scoring inputs. Values stay untyped so malformed input degrades scores instead of failing."""

    title: Any = None
    description: Any = None
    requirements: Any = None
    salary: Any = None
    experience_level: Any = None
    location: Any = None
    position: Any = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> PostingContent:
        return cls(
            title=payload.get("title"),
            description=payload.get("description"),
            requirements=payload.get("requirements"),
            salary=payload.get("salary"),
            experience_level=payload.get("experience_level"),
            location=payload.get("location"),
            position=payload.get("position"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "requirements": self.requirements,
            "salary": self.salary,
            "experience_level": self.experience_level,
            "location": self.location,
            "position": self.position,
        }


@dataclass(slots=True)
class ModerationVerdict:
    status: ModerationStatus
    quality_score: int
    spam_score: int
    auto_approved: bool
    flagged: bool
    flag_reasons: list[str]


@dataclass(slots=True)
class ModerationState:
    status: ModerationStatus = "pending"
    quality_score: int = 0
    spam_score: int = 0
    auto_approved: bool = False
    flagged: bool = False
    flag_reasons: list[str] = field(default_factory=list)
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    duplicate_of: str | None = None
    duplicate_similarity: int | None = None

    def apply_verdict(self, verdict: ModerationVerdict) -> None:
        self.status = verdict.status
        self.quality_score = verdict.quality_score
        self.spam_score = verdict.spam_score
        self.auto_approved = verdict.auto_approved
        self.flagged = verdict.flagged
        self.flag_reasons = list(verdict.flag_reasons)


@dataclass(slots=True)
class Report:
    id: str
    reported_by: str
    reason: ReportReason
    description: str
    status: ReportStatus
    created_at: datetime
    resolved_by: str | None = None
    resolved_at: datetime | None = None
