from fastapi import APIRouter, Depends, HTTPException, status as http_status

from app.core.security import get_human_principal, get_machine_principal
from app.schemas.moderation import (
    PostingReviewRequest,
    ReportCreateRequest,
    ReportFiledOut,
    ReportResolveRequest,
)
from app.schemas.postings import PostingOut, PostingRegisterRequest, PostingUpdateRequest, ReportOut
from app.services.reports import (
    DuplicateReportError,
    InvalidOutcomeError,
    InvalidReasonError,
    InvalidReviewActionError,
    ReportNotFoundError,
)
from app.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    get_repository,
)

router = APIRouter()


@router.post("", response_model=PostingOut, status_code=http_status.HTTP_201_CREATED)
async def register_posting(
    payload: PostingRegisterRequest,
    principal=Depends(get_machine_principal),
    repository=Depends(get_repository),
) -> PostingOut:
    try:
        principal.require_scopes({"postings:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=http_status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.register_posting(
            content=payload.to_content(),
            company_id=payload.company_id,
            created_by=payload.created_by,
            company_verification_status=payload.company_verification_status,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return PostingOut(**row)


@router.put("/{posting_id}", response_model=PostingOut)
async def update_posting(
    posting_id: str,
    payload: PostingUpdateRequest,
    principal=Depends(get_machine_principal),
    repository=Depends(get_repository),
) -> PostingOut:
    try:
        principal.require_scopes({"postings:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=http_status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.update_posting_content(
            posting_id=posting_id,
            content=payload.to_content(),
            company_verification_status=payload.company_verification_status,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=http_status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return PostingOut(**row)


@router.get("/{posting_id}", response_model=PostingOut)
async def get_posting(
    posting_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> PostingOut:
    try:
        principal.require_scopes({"catalog:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=http_status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        row = await repository.get_posting(posting_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return PostingOut(**row)


@router.post("/{posting_id}/reports", response_model=ReportFiledOut, status_code=http_status.HTTP_201_CREATED)
async def file_report(
    posting_id: str,
    payload: ReportCreateRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ReportFiledOut:
    try:
        principal.require_scopes({"submission:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=http_status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    if not principal.actor_id:
        raise HTTPException(status_code=http_status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")

    try:
        row, report = await repository.file_report(
            posting_id=posting_id,
            reporter_id=principal.actor_id,
            reason=payload.reason,
            description=payload.description,
        )
    except InvalidReasonError as exc:
        raise HTTPException(status_code=http_status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except DuplicateReportError as exc:
        raise HTTPException(status_code=http_status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=http_status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return ReportFiledOut(
        report=ReportOut(**report),
        posting_id=row["id"],
        posting_status=row["moderation"]["status"],
        is_active=row["is_active"],
        pending_report_count=row["pending_report_count"],
    )


@router.patch("/{posting_id}/reports/{report_id}", response_model=PostingOut)
async def resolve_report(
    posting_id: str,
    report_id: str,
    payload: ReportResolveRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> PostingOut:
    try:
        principal.require_scopes({"moderation:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=http_status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    if not principal.actor_id:
        raise HTTPException(status_code=http_status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")

    try:
        row = await repository.resolve_report(
            posting_id=posting_id,
            report_id=report_id,
            outcome=payload.status,
            action=payload.action,
            actor_user_id=principal.actor_id,
        )
    except InvalidOutcomeError as exc:
        raise HTTPException(status_code=http_status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except ReportNotFoundError as exc:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=http_status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return PostingOut(**row)


@router.post("/{posting_id}/review", response_model=PostingOut)
async def review_posting(
    posting_id: str,
    payload: PostingReviewRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> PostingOut:
    try:
        principal.require_scopes({"moderation:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=http_status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    if not principal.actor_id:
        raise HTTPException(status_code=http_status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")

    try:
        row = await repository.review_posting(
            posting_id=posting_id,
            action=payload.action,
            actor_user_id=principal.actor_id,
            reason=payload.reason,
        )
    except InvalidReviewActionError as exc:
        raise HTTPException(status_code=http_status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=http_status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return PostingOut(**row)
