from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

import pytest

from app.services.models import ModerationVerdict, PostingContent, Report
from app.services.reports import (
    DuplicateReportError,
    InvalidOutcomeError,
    InvalidReasonError,
    InvalidReviewActionError,
    PostingRecord,
    ReportLedger,
    ReportNotFoundError,
    apply_verdict,
    file_report,
    resolve_report,
    review_posting,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(status: str = "approved") -> PostingRecord:
    record = PostingRecord(id="posting-1", content=PostingContent(title="Warehouse Associate"))
    record.moderation.status = status  # type: ignore[assignment]
    record.is_active = status != "flagged"
    return record


def _report_many(record: PostingRecord, count: int, *, prefix: str = "user", threshold: int = 3) -> list[Report]:
    return [
        file_report(record, reporter_id=f"{prefix}-{index}", reason="spam", threshold=threshold, now=NOW)
        for index in range(count)
    ]


def test_third_distinct_report_flags_posting() -> None:
    record = _record()

    _report_many(record, 2)
    assert record.moderation.status == "approved"
    assert record.is_active is True

    file_report(record, reporter_id="user-2", reason="fraud", description="asks for a deposit", now=NOW)

    assert record.reports.pending_count == 3
    assert record.moderation.status == "flagged"
    assert record.is_active is False
    # escalation does not rewrite the automated verdict fields
    assert record.moderation.flagged is False
    assert record.moderation.flag_reasons == []


def test_pending_posting_also_escalates() -> None:
    record = _record("pending")

    _report_many(record, 3)

    assert record.moderation.status == "flagged"
    assert record.is_active is False


def test_escalation_threshold_is_configurable() -> None:
    record = _record()

    file_report(record, reporter_id="user-1", reason="other", threshold=1, now=NOW)

    assert record.moderation.status == "flagged"


def test_duplicate_pending_report_is_rejected() -> None:
    record = _record()
    file_report(record, reporter_id="user-1", reason="spam", now=NOW)

    with pytest.raises(DuplicateReportError):
        file_report(record, reporter_id="user-1", reason="fraud", now=NOW)

    assert len(record.reports) == 1
    assert record.reports.pending_count == 1


def test_reporter_may_report_again_after_resolution() -> None:
    record = _record()
    first = file_report(record, reporter_id="user-1", reason="spam", now=NOW)
    resolve_report(record, report_id=first.id, outcome="dismissed", actor_id="admin-1", now=NOW)

    second = file_report(record, reporter_id="user-1", reason="spam", now=NOW)

    assert second.id != first.id
    assert len(record.reports) == 2
    assert record.reports.pending_count == 1


@pytest.mark.parametrize("reason", ["Spam", "abuse", "", "scam"])
def test_invalid_reason_is_rejected(reason: str) -> None:
    record = _record()

    with pytest.raises(InvalidReasonError, match="invalid report reason"):
        file_report(record, reporter_id="user-1", reason=reason, now=NOW)

    assert len(record.reports) == 0


def test_report_stores_reporter_reason_and_empty_description() -> None:
    record = _record()

    report = file_report(record, reporter_id="user-1", reason="inappropriate", now=NOW)

    assert report.reported_by == "user-1"
    assert report.reason == "inappropriate"
    assert report.description == ""
    assert report.status == "pending"
    assert report.created_at == NOW
    assert record.reports.get(report.id) is report


def test_dismissing_last_pending_report_restores_posting() -> None:
    record = _record()
    reports = _report_many(record, 3)

    resolve_report(record, report_id=reports[0].id, outcome="dismissed", actor_id="admin-1", now=NOW)
    resolve_report(record, report_id=reports[1].id, outcome="dismissed", actor_id="admin-1", now=NOW)
    assert record.moderation.status == "flagged"
    assert record.is_active is False

    dismissed = resolve_report(record, report_id=reports[2].id, outcome="dismissed", actor_id="admin-1", now=NOW)

    assert dismissed.status == "dismissed"
    assert dismissed.resolved_by == "admin-1"
    assert dismissed.resolved_at == NOW
    assert record.reports.pending_count == 0
    assert record.moderation.status == "approved"
    assert record.is_active is True


def test_dismissing_one_of_two_pending_reports_keeps_flag() -> None:
    record = _record()
    reports = _report_many(record, 2, threshold=2)
    assert record.moderation.status == "flagged"

    resolve_report(record, report_id=reports[0].id, outcome="dismissed", actor_id="admin-1", now=NOW)

    assert record.reports.pending_count == 1
    assert record.moderation.status == "flagged"
    assert record.is_active is False


def test_new_reports_re_escalate_after_de_escalation() -> None:
    record = _record()
    for report in _report_many(record, 3):
        resolve_report(record, report_id=report.id, outcome="dismissed", actor_id="admin-1", now=NOW)
    assert record.moderation.status == "approved"

    _report_many(record, 3, prefix="other")

    assert record.moderation.status == "flagged"
    assert record.is_active is False


def test_resolving_with_flag_action_flags_posting() -> None:
    record = _record()
    report = file_report(record, reporter_id="user-1", reason="fraud", now=NOW)

    resolve_report(record, report_id=report.id, outcome="resolved", action="flag", actor_id="admin-1", now=NOW)

    assert record.moderation.status == "flagged"
    assert record.is_active is False
    assert record.reports.pending_count == 0


def test_resolving_without_action_does_not_reactivate() -> None:
    record = _record()
    reports = _report_many(record, 3)

    for report in reports:
        resolve_report(record, report_id=report.id, outcome="resolved", actor_id="admin-1", now=NOW)

    assert record.reports.pending_count == 0
    assert record.moderation.status == "flagged"
    assert record.is_active is False


def test_dismissal_leaves_unflagged_posting_untouched() -> None:
    record = _record("pending")
    report = file_report(record, reporter_id="user-1", reason="other", now=NOW)

    resolve_report(record, report_id=report.id, outcome="dismissed", actor_id="admin-1", now=NOW)

    assert record.moderation.status == "pending"
    assert record.is_active is True


def test_unknown_report_id_is_not_found() -> None:
    record = _record()

    with pytest.raises(ReportNotFoundError):
        resolve_report(record, report_id="missing", outcome="dismissed", actor_id="admin-1", now=NOW)


@pytest.mark.parametrize("outcome", ["pending", "approved", ""])
def test_invalid_outcome_is_rejected_before_touching_report(outcome: str) -> None:
    record = _record()
    report = file_report(record, reporter_id="user-1", reason="spam", now=NOW)

    with pytest.raises(InvalidOutcomeError):
        resolve_report(record, report_id=report.id, outcome=outcome, actor_id="admin-1", now=NOW)

    assert report.status == "pending"
    assert record.reports.pending_count == 1


def test_ledger_rebuilds_indexes_from_stored_reports() -> None:
    ledger = ReportLedger(
        [
            Report(id="r1", reported_by="user-1", reason="spam", description="", status="dismissed", created_at=NOW),
            Report(id="r2", reported_by="user-1", reason="fraud", description="", status="pending", created_at=NOW),
            Report(id="r3", reported_by="user-2", reason="other", description="", status="resolved", created_at=NOW),
        ]
    )

    assert len(ledger) == 3
    assert ledger.pending_count == 1
    assert ledger.pending_report_for("user-1").id == "r2"  # type: ignore[union-attr]
    assert ledger.pending_report_for("user-2") is None
    assert [report.id for report in ledger.with_status("resolved")] == ["r3"]


def test_ledger_rejects_duplicate_report_ids() -> None:
    report = Report(id="r1", reported_by="user-1", reason="spam", description="", status="pending", created_at=NOW)

    with pytest.raises(ValueError, match="duplicate report id"):
        ReportLedger([report, report])


def test_review_approve_reactivates_flagged_posting() -> None:
    record = _record()
    _report_many(record, 3)

    review_posting(record, action="approve", actor_id="admin-1", now=NOW)

    assert record.moderation.status == "approved"
    assert record.is_active is True
    assert record.moderation.reviewed_by == "admin-1"
    assert record.moderation.reviewed_at == NOW
    # pending reports stay open for the moderator to resolve
    assert record.reports.pending_count == 3


def test_review_reject_requires_reason() -> None:
    record = _record()

    with pytest.raises(InvalidReviewActionError, match="rejection reason is required"):
        review_posting(record, action="reject", actor_id="admin-1", reason="   ", now=NOW)

    assert record.moderation.status == "approved"

    review_posting(record, action="reject", actor_id="admin-1", reason=" misleading pay ", now=NOW)

    assert record.moderation.status == "rejected"
    assert record.moderation.rejection_reason == "misleading pay"
    assert record.is_active is False


def test_review_flag_and_unknown_action() -> None:
    record = _record("pending")

    review_posting(record, action="flag", actor_id="admin-1", reason="needs a second look", now=NOW)

    assert record.moderation.status == "flagged"
    assert record.moderation.rejection_reason == "needs a second look"
    assert record.is_active is False

    with pytest.raises(InvalidReviewActionError, match="invalid review action"):
        review_posting(record, action="delete", actor_id="admin-1", now=NOW)


def test_approving_clears_previous_rejection_reason() -> None:
    record = _record()
    review_posting(record, action="reject", actor_id="admin-1", reason="duplicate", now=NOW)

    review_posting(record, action="approve", actor_id="admin-2", now=NOW)

    assert record.moderation.status == "approved"
    assert record.moderation.rejection_reason is None
    assert record.moderation.reviewed_by == "admin-2"


def _verdict(status: str, *, quality: int = 90, spam: int = 0) -> ModerationVerdict:
    return ModerationVerdict(
        status=status,  # type: ignore[arg-type]
        quality_score=quality,
        spam_score=spam,
        auto_approved=status == "approved",
        flagged=status == "flagged",
        flag_reasons=["Contains 5 spam keyword(s)"] if status == "flagged" else [],
    )


def test_apply_verdict_sets_visibility_from_status() -> None:
    record = _record("pending")

    apply_verdict(record, _verdict("flagged", spam=60))

    assert record.moderation.status == "flagged"
    assert record.moderation.flagged is True
    assert record.moderation.flag_reasons == ["Contains 5 spam keyword(s)"]
    assert record.is_active is False


def test_apply_verdict_approves_pending_posting() -> None:
    record = _record("pending")
    record.is_active = False

    apply_verdict(record, _verdict("approved"))

    assert record.moderation.status == "approved"
    assert record.moderation.auto_approved is True
    assert record.is_active is True


def _flag_by_verdict(record: PostingRecord) -> None:
    apply_verdict(record, _verdict("flagged", spam=60))


def _flag_by_report_resolution(record: PostingRecord) -> None:
    report = file_report(record, reporter_id="user-1", reason="fraud", now=NOW)
    resolve_report(record, report_id=report.id, outcome="resolved", action="flag", actor_id="admin-1", now=NOW)


def _flag_by_review(record: PostingRecord) -> None:
    review_posting(record, action="flag", actor_id="admin-1", now=NOW)


@pytest.mark.parametrize("flag", [_flag_by_verdict, _flag_by_report_resolution, _flag_by_review])
def test_edit_cannot_clear_a_flag(flag: Callable[[PostingRecord], None]) -> None:
    record = _record()
    flag(record)
    assert record.moderation.status == "flagged"

    apply_verdict(record, _verdict("approved", quality=95, spam=5))

    assert record.moderation.status == "flagged"
    assert record.is_active is False
    assert record.moderation.quality_score == 95
    assert record.moderation.spam_score == 5
    assert record.moderation.flagged is False
    assert record.moderation.flag_reasons == []


def test_apply_verdict_keeps_rejected_status() -> None:
    record = _record()
    review_posting(record, action="reject", actor_id="admin-1", reason="scam", now=NOW)

    apply_verdict(record, _verdict("approved", quality=95, spam=10))

    assert record.moderation.status == "rejected"
    assert record.is_active is False
    assert record.moderation.quality_score == 95
    assert record.moderation.spam_score == 10


def test_apply_verdict_re_flags_when_pending_reports_remain() -> None:
    record = _record()
    _report_many(record, 3)
    review_posting(record, action="approve", actor_id="admin-1", now=NOW)

    apply_verdict(record, _verdict("approved"))

    assert record.moderation.status == "flagged"
    assert record.is_active is False
