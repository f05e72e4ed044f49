from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

from app.services.models import (
    REPORT_OUTCOMES,
    REPORT_REASONS,
    REVIEW_ACTIONS,
    ModerationState,
    ModerationVerdict,
    PostingContent,
    Report,
    ReportStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_ESCALATION_THRESHOLD = 3

# statuses an edit cannot move a posting out of
_HELD_STATUSES = frozenset({"flagged", "rejected"})


class ModerationError(Exception):
    """Base error for report and review operations."""


class InvalidReasonError(ModerationError):
    """Raised when a report reason is not one of the supported values."""


class DuplicateReportError(ModerationError):
    """Raised when a reporter already has a pending report on the posting."""


class ReportNotFoundError(ModerationError):
    """Raised when a report id does not exist on the posting."""


class InvalidOutcomeError(ModerationError):
    """Raised when a report resolution outcome is not resolved or dismissed."""


class InvalidReviewActionError(ModerationError):
    """Raised when an admin review action is unknown or missing required input."""


class ReportLedger:
    """Append-only report log for one posting.

    Keeps an id index and a reporter -> pending report index so the duplicate
    check and the pending count do not scan the log. Report statuses must be
    changed through :meth:`set_status` to keep the aggregate in step.
    """

    def __init__(self, reports: Iterable[Report] = ()) -> None:
        self._reports: list[Report] = []
        self._by_id: dict[str, Report] = {}
        self._pending_by_reporter: dict[str, str] = {}
        self._pending_count = 0
        for report in reports:
            self._index(report)

    def __iter__(self) -> Iterator[Report]:
        return iter(self._reports)

    def __len__(self) -> int:
        return len(self._reports)

    @property
    def pending_count(self) -> int:
        return self._pending_count

    def get(self, report_id: str) -> Report | None:
        return self._by_id.get(report_id)

    def pending_report_for(self, reporter_id: str) -> Report | None:
        report_id = self._pending_by_reporter.get(reporter_id)
        if report_id is None:
            return None
        return self._by_id[report_id]

    def with_status(self, status: ReportStatus) -> list[Report]:
        return [report for report in self._reports if report.status == status]

    def append(
        self,
        *,
        reporter_id: str,
        reason: str,
        description: str,
        now: datetime,
        report_id: str | None = None,
    ) -> Report:
        if self.pending_report_for(reporter_id) is not None:
            raise DuplicateReportError("reporter already has a pending report on this posting")
        report = Report(
            id=report_id or str(uuid4()),
            reported_by=reporter_id,
            reason=reason,  # type: ignore[arg-type]
            description=description,
            status="pending",
            created_at=now,
        )
        self._index(report)
        return report

    def set_status(
        self,
        report_id: str,
        status: ReportStatus,
        *,
        actor_id: str | None,
        now: datetime,
    ) -> Report:
        report = self._by_id.get(report_id)
        if report is None:
            raise ReportNotFoundError("report not found")

        was_pending = report.status == "pending"
        report.status = status
        report.resolved_by = actor_id
        report.resolved_at = now

        if was_pending and status != "pending":
            self._pending_count -= 1
            if self._pending_by_reporter.get(report.reported_by) == report.id:
                del self._pending_by_reporter[report.reported_by]
        return report

    def _index(self, report: Report) -> None:
        if report.id in self._by_id:
            raise ValueError(f"duplicate report id: {report.id}")
        self._reports.append(report)
        self._by_id[report.id] = report
        if report.status == "pending":
            self._pending_count += 1
            self._pending_by_reporter[report.reported_by] = report.id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class PostingRecord:
    id: str
    content: PostingContent
    company_id: str | None = None
    created_by: str | None = None
    is_active: bool = True
    moderation: ModerationState = field(default_factory=ModerationState)
    reports: ReportLedger = field(default_factory=ReportLedger)
    version: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


def apply_verdict(
    record: PostingRecord,
    verdict: ModerationVerdict,
    *,
    threshold: int = DEFAULT_ESCALATION_THRESHOLD,
) -> None:
    """Store a creation/edit verdict on the record.

    A flagged or rejected posting keeps its status and visibility and only gets
    fresh scores; a flag is cleared by dismissing reports or by admin review. An
    edited posting whose ledger still holds enough pending reports is re-flagged.
    """
    moderation = record.moderation
    if moderation.status in _HELD_STATUSES:
        moderation.quality_score = verdict.quality_score
        moderation.spam_score = verdict.spam_score
        moderation.flagged = verdict.flagged
        moderation.flag_reasons = list(verdict.flag_reasons)
        logger.info(
            "posting status held on edit posting_id=%s status=%s verdict_status=%s",
            record.id,
            moderation.status,
            verdict.status,
        )
        return

    moderation.apply_verdict(verdict)
    record.is_active = verdict.status != "flagged"
    escalate(record, threshold=threshold)


def file_report(
    record: PostingRecord,
    *,
    reporter_id: str,
    reason: str,
    description: str | None = None,
    threshold: int = DEFAULT_ESCALATION_THRESHOLD,
    now: datetime | None = None,
) -> Report:
    """Append a pending report and run the escalation check on the same record."""
    if reason not in REPORT_REASONS:
        raise InvalidReasonError(f"invalid report reason: must be one of {', '.join(sorted(REPORT_REASONS))}")

    now = now or _utcnow()
    report = record.reports.append(
        reporter_id=reporter_id,
        reason=reason,
        description=description or "",
        now=now,
    )
    record.updated_at = now
    logger.info("posting report filed posting_id=%s report_id=%s reason=%s", record.id, report.id, reason)

    escalate(record, threshold=threshold)
    return report


def escalate(record: PostingRecord, *, threshold: int = DEFAULT_ESCALATION_THRESHOLD) -> bool:
    pending_count = record.reports.pending_count
    if pending_count < threshold or record.moderation.status == "flagged":
        return False

    _flag(record)
    logger.warning(
        "posting auto-flagged posting_id=%s pending_reports=%s threshold=%s",
        record.id,
        pending_count,
        threshold,
    )
    return True


def resolve_report(
    record: PostingRecord,
    *,
    report_id: str,
    outcome: str,
    action: str | None = None,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Report:
    """Apply an admin outcome to one report and reconcile posting visibility.

    ``resolved`` with ``action="flag"`` force-flags the posting. ``dismissed``
    reactivates a flagged posting only once no pending reports remain.
    """
    if outcome not in REPORT_OUTCOMES:
        raise InvalidOutcomeError("invalid outcome: must be 'resolved' or 'dismissed'")

    now = now or _utcnow()
    report = record.reports.set_status(report_id, outcome, actor_id=actor_id, now=now)  # type: ignore[arg-type]
    record.updated_at = now

    if outcome == "resolved" and action == "flag":
        _flag(record)
        logger.warning("posting flagged by report resolution posting_id=%s report_id=%s", record.id, report_id)
    elif outcome == "dismissed":
        if record.reports.pending_count == 0 and record.moderation.status == "flagged":
            record.moderation.status = "approved"
            record.is_active = True
            logger.info("posting de-escalated posting_id=%s report_id=%s", record.id, report_id)

    logger.info(
        "posting report %s posting_id=%s report_id=%s actor_id=%s",
        outcome,
        record.id,
        report_id,
        actor_id,
    )
    return report


def review_posting(
    record: PostingRecord,
    *,
    action: str,
    actor_id: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> None:
    if action not in REVIEW_ACTIONS:
        raise InvalidReviewActionError("invalid review action: must be 'approve', 'reject' or 'flag'")

    reason = reason.strip() if reason else None
    if action == "reject" and not reason:
        raise InvalidReviewActionError("rejection reason is required")

    now = now or _utcnow()
    moderation = record.moderation
    if action == "approve":
        moderation.status = "approved"
        moderation.rejection_reason = None
        record.is_active = True
    elif action == "reject":
        moderation.status = "rejected"
        moderation.rejection_reason = reason
        record.is_active = False
    else:
        _flag(record)
        if reason:
            moderation.rejection_reason = reason

    moderation.reviewed_by = actor_id
    moderation.reviewed_at = now
    record.updated_at = now
    logger.info("posting reviewed posting_id=%s action=%s actor_id=%s", record.id, action, actor_id)


def _flag(record: PostingRecord) -> None:
    record.moderation.status = "flagged"
    record.is_active = False
