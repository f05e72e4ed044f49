from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.config import get_moderation_policy
from app.core.security import get_human_principal, get_machine_principal
from app.schemas.moderation import ReportedPostingOut, ReportedPostingsPageOut
from app.schemas.postings import ModerationStatus, PostingOut, ReportStatus, VerdictOut, VerdictRequest
from app.services.decision import ModerationPolicy, decide
from app.services.repository import RepositoryUnavailableError, get_repository

router = APIRouter()

_QUEUE_STATUSES = {"pending", "approved", "flagged", "rejected"}


@router.post("/verdicts", response_model=VerdictOut)
async def evaluate_posting(
    payload: VerdictRequest,
    principal=Depends(get_machine_principal),
    policy: ModerationPolicy = Depends(get_moderation_policy),
) -> VerdictOut:
    try:
        principal.require_scopes({"moderation:evaluate"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    verdict = decide(payload.to_content(), payload.company_verification_status, policy)
    return VerdictOut(
        status=verdict.status,
        quality_score=verdict.quality_score,
        spam_score=verdict.spam_score,
        auto_approved=verdict.auto_approved,
        flagged=verdict.flagged,
        flag_reasons=verdict.flag_reasons,
    )


@router.get("/queue", response_model=list[PostingOut])
async def list_moderation_queue(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    queue_status: str = Query(default="pending,flagged", alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> list[PostingOut]:
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    statuses: list[ModerationStatus] = []
    for chunk in queue_status.split(","):
        value = chunk.strip()
        if not value:
            continue
        if value not in _QUEUE_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
                detail=f"invalid moderation status: {value}",
            )
        if value not in statuses:
            statuses.append(value)  # type: ignore[arg-type]
    if not statuses:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="at least one status is required")

    try:
        rows = await repository.list_moderation_queue(statuses=statuses, limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [PostingOut(**row) for row in rows]


@router.get("/reports", response_model=ReportedPostingsPageOut)
async def list_reported_postings(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    report_status: ReportStatus = Query(default="pending", alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> ReportedPostingsPageOut:
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows, total = await repository.list_reported_postings(report_status=report_status, limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return ReportedPostingsPageOut(
        items=[ReportedPostingOut(**row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )
