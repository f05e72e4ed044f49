from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.services.models import PostingContent

ModerationStatus = Literal["pending", "approved", "flagged", "rejected"]
CompanyVerificationStatus = Literal["pending", "approved", "rejected", "resubmitted"]
ReportStatus = Literal["pending", "resolved", "dismissed"]


class PostingContentIn(BaseModel):
    title: str | None = None
    description: str | None = None
    requirements: list[str] = Field(default_factory=list)
    salary: float | None = Field(default=None, allow_inf_nan=False)
    experience_level: float | None = Field(default=None, allow_inf_nan=False)
    location: str | None = None
    position: int | None = None

    def to_content(self) -> PostingContent:
        return PostingContent(
            title=self.title,
            description=self.description,
            requirements=list(self.requirements),
            salary=self.salary,
            experience_level=self.experience_level,
            location=self.location,
            position=self.position,
        )


class PostingRegisterRequest(PostingContentIn):
    company_id: str = Field(min_length=1)
    created_by: str | None = None
    company_verification_status: CompanyVerificationStatus = "pending"


class PostingUpdateRequest(PostingContentIn):
    company_verification_status: CompanyVerificationStatus = "pending"


class VerdictRequest(PostingContentIn):
    company_verification_status: CompanyVerificationStatus = "pending"


class VerdictOut(BaseModel):
    status: ModerationStatus
    quality_score: int = Field(ge=0, le=100)
    spam_score: int = Field(ge=0, le=100)
    auto_approved: bool
    flagged: bool
    flag_reasons: list[str] = Field(default_factory=list)


class ModerationOut(VerdictOut):
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    duplicate_of: str | None = None
    duplicate_similarity: int | None = None


class ReportOut(BaseModel):
    id: str
    reported_by: str
    reason: str
    description: str = ""
    status: ReportStatus
    created_at: datetime
    resolved_by: str | None = None
    resolved_at: datetime | None = None


class PostingOut(BaseModel):
    id: str
    company_id: str | None = None
    created_by: str | None = None
    title: str | None = None
    description: str | None = None
    requirements: list[str] = Field(default_factory=list)
    salary: float | None = None
    experience_level: float | None = None
    location: str | None = None
    position: int | None = None
    is_active: bool
    moderation: ModerationOut
    reports: list[ReportOut] = Field(default_factory=list)
    pending_report_count: int = 0
    version: int = 0
    created_at: datetime
    updated_at: datetime
