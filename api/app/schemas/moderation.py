from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.postings import PostingOut, ReportOut


class ReportCreateRequest(BaseModel):
    # Validated by the report ledger so unsupported values surface as invalid-reason errors.
    reason: str = Field(min_length=1, max_length=64)
    description: str | None = Field(default=None, max_length=2000)


class ReportFiledOut(BaseModel):
    report: ReportOut
    posting_id: str
    posting_status: str
    is_active: bool
    pending_report_count: int


class ReportResolveRequest(BaseModel):
    status: str = Field(min_length=1, max_length=32)
    action: Literal["flag"] | None = None


class PostingReviewRequest(BaseModel):
    action: str = Field(min_length=1, max_length=32)
    reason: str | None = Field(default=None, max_length=2000)


class ReportedPostingOut(PostingOut):
    report_count: int = 0


class ReportedPostingsPageOut(BaseModel):
    items: list[ReportedPostingOut] = Field(default_factory=list)
    total: int
    limit: int
    offset: int
