from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, TypeVar
from uuid import UUID, uuid4

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from app.core.config import get_moderation_policy, get_settings
from app.services.decision import ModerationPolicy, decide
from app.services.duplicates import DEFAULT_DUPLICATE_THRESHOLD, find_duplicate_posting
from app.services.models import ModerationState, PostingContent, Report
from app.services.reports import (
    DEFAULT_ESCALATION_THRESHOLD,
    PostingRecord,
    ReportLedger,
    apply_verdict,
    file_report,
    resolve_report,
    review_posting,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when concurrent writers keep invalidating an update."""


class PostingRepository:
    """Moderation workflow over stored postings.

    Subclasses provide storage. Every mutation goes through ``_mutate`` which
    must apply the callback to a consistent snapshot of one posting and persist
    the result atomically with respect to other writers on that posting.
    """

    def __init__(
        self,
        *,
        policy: ModerationPolicy,
        escalation_threshold: int = DEFAULT_ESCALATION_THRESHOLD,
        duplicate_threshold: int = DEFAULT_DUPLICATE_THRESHOLD,
        duplicate_window_days: int = 30,
    ) -> None:
        self.policy = policy
        self.escalation_threshold = max(1, escalation_threshold)
        self.duplicate_threshold = duplicate_threshold
        self.duplicate_window_days = max(0, duplicate_window_days)

    async def close(self) -> None:
        return None

    async def ping(self) -> None:
        return None

    async def register_posting(
        self,
        *,
        content: PostingContent,
        company_id: str | None,
        created_by: str | None,
        company_verification_status: str | None,
    ) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        record = PostingRecord(
            id=str(uuid4()),
            content=content,
            company_id=company_id,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        verdict = decide(content, company_verification_status, self.policy)
        apply_verdict(record, verdict, threshold=self.escalation_threshold)

        if company_id:
            since = now - timedelta(days=self.duplicate_window_days)
            existing = await self._list_company_contents(company_id=company_id, since=since)
            match = find_duplicate_posting(incoming=content, existing=existing, threshold=self.duplicate_threshold)
            if match is not None:
                record.moderation.duplicate_of = match.posting_id
                record.moderation.duplicate_similarity = match.similarity
                logger.warning(
                    "duplicate posting detected company_id=%s duplicate_of=%s similarity=%s",
                    company_id,
                    match.posting_id,
                    match.similarity,
                )

        await self._insert(record)
        logger.info(
            "posting registered posting_id=%s status=%s quality_score=%s spam_score=%s",
            record.id,
            record.moderation.status,
            record.moderation.quality_score,
            record.moderation.spam_score,
        )
        return record_to_dict(record)

    async def update_posting_content(
        self,
        *,
        posting_id: str,
        content: PostingContent,
        company_verification_status: str | None,
    ) -> dict[str, Any]:
        verdict = decide(content, company_verification_status, self.policy)

        def mutate(record: PostingRecord) -> None:
            record.content = content
            record.updated_at = datetime.now(timezone.utc)
            apply_verdict(record, verdict, threshold=self.escalation_threshold)

        record, _ = await self._mutate(posting_id, mutate)
        return record_to_dict(record)

    async def get_posting(self, posting_id: str) -> dict[str, Any]:
        return record_to_dict(await self._load(posting_id))

    async def file_report(
        self,
        *,
        posting_id: str,
        reporter_id: str,
        reason: str,
        description: str | None,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        def mutate(record: PostingRecord) -> Report:
            return file_report(
                record,
                reporter_id=reporter_id,
                reason=reason,
                description=description,
                threshold=self.escalation_threshold,
            )

        record, report = await self._mutate(posting_id, mutate)
        return record_to_dict(record), report_to_dict(report)

    async def resolve_report(
        self,
        *,
        posting_id: str,
        report_id: str,
        outcome: str,
        action: str | None,
        actor_user_id: str,
    ) -> dict[str, Any]:
        def mutate(record: PostingRecord) -> Report:
            return resolve_report(
                record,
                report_id=report_id,
                outcome=outcome,
                action=action,
                actor_id=actor_user_id,
            )

        record, _ = await self._mutate(posting_id, mutate)
        return record_to_dict(record)

    async def review_posting(
        self,
        *,
        posting_id: str,
        action: str,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        def mutate(record: PostingRecord) -> None:
            review_posting(record, action=action, actor_id=actor_user_id, reason=reason)

        record, _ = await self._mutate(posting_id, mutate)
        return record_to_dict(record)

    async def list_moderation_queue(self, *, statuses: list[str], limit: int, offset: int) -> list[dict[str, Any]]:
        records = await self._list_by_status(statuses=statuses, limit=limit, offset=offset)
        return [record_to_dict(record) for record in records]

    async def list_reported_postings(
        self,
        *,
        report_status: str,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        records, total = await self._list_by_report_status(report_status=report_status, limit=limit, offset=offset)
        rows = []
        for record in records:
            row = record_to_dict(record)
            row["reports"] = [report_to_dict(report) for report in record.reports.with_status(report_status)]  # type: ignore[arg-type]
            row["report_count"] = len(row["reports"])
            rows.append(row)
        return rows, total

    async def _insert(self, record: PostingRecord) -> None:
        raise NotImplementedError

    async def _load(self, posting_id: str) -> PostingRecord:
        raise NotImplementedError

    async def _mutate(self, posting_id: str, mutate: Callable[[PostingRecord], T]) -> tuple[PostingRecord, T]:
        raise NotImplementedError

    async def _list_company_contents(self, *, company_id: str, since: datetime) -> list[tuple[str, PostingContent]]:
        raise NotImplementedError

    async def _list_by_status(self, *, statuses: list[str], limit: int, offset: int) -> list[PostingRecord]:
        raise NotImplementedError

    async def _list_by_report_status(
        self,
        *,
        report_status: str,
        limit: int,
        offset: int,
    ) -> tuple[list[PostingRecord], int]:
        raise NotImplementedError


class InMemoryPostingRepository(PostingRepository):
    """Single-process store; writers on one posting are serialized by a per-posting lock."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._documents: dict[str, dict[str, Any]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def _insert(self, record: PostingRecord) -> None:
        self._documents[record.id] = record_to_document(record)

    async def _load(self, posting_id: str) -> PostingRecord:
        document = self._documents.get(posting_id)
        if document is None:
            raise RepositoryNotFoundError("posting not found")
        return record_from_document(document)

    async def _mutate(self, posting_id: str, mutate: Callable[[PostingRecord], T]) -> tuple[PostingRecord, T]:
        if posting_id not in self._documents:
            raise RepositoryNotFoundError("posting not found")

        lock = self._locks.setdefault(posting_id, asyncio.Lock())
        async with lock:
            record = await self._load(posting_id)
            result = mutate(record)
            record.version += 1
            self._documents[posting_id] = record_to_document(record)
            return record, result

    async def _list_company_contents(self, *, company_id: str, since: datetime) -> list[tuple[str, PostingContent]]:
        rows: list[tuple[str, PostingContent]] = []
        for document in self._documents.values():
            if document["company_id"] != company_id:
                continue
            if _parse_datetime(document["created_at"]) < since:
                continue
            rows.append((document["id"], PostingContent.from_dict(document["content"])))
        return rows

    async def _list_by_status(self, *, statuses: list[str], limit: int, offset: int) -> list[PostingRecord]:
        wanted = set(statuses)
        records = [
            record_from_document(document)
            for document in self._documents.values()
            if document["moderation"]["status"] in wanted
        ]
        records.sort(key=lambda record: (record.created_at, record.id))
        return records[offset : offset + limit]

    async def _list_by_report_status(
        self,
        *,
        report_status: str,
        limit: int,
        offset: int,
    ) -> tuple[list[PostingRecord], int]:
        records = [
            record_from_document(document)
            for document in self._documents.values()
            if any(report["status"] == report_status for report in document["reports"])
        ]
        records.sort(key=lambda record: record.id)
        records.sort(key=_last_reported_at, reverse=True)
        return records[offset : offset + limit], len(records)


class PostgresPostingRepository(PostingRepository):
    """asyncpg store using a version column for optimistic concurrency."""

    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        max_cas_retries: int,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.max_cas_retries = max(1, max_cas_retries)
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ping(self) -> None:
        pool = await self._get_pool()
        await pool.fetchval("select 1")

    async def _insert(self, record: PostingRecord) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            insert into moderated_postings (
              id,
              company_id,
              moderation_status,
              report_statuses,
              document,
              version,
              created_at,
              updated_at,
              last_reported_at
            )
            values ($1::uuid, $2, $3, $4::text[], $5::jsonb, $6, $7, $8, $9)
            """,
            record.id,
            record.company_id,
            record.moderation.status,
            _report_statuses(record),
            json.dumps(record_to_document(record)),
            record.version,
            record.created_at,
            record.updated_at,
            _last_reported_at(record),
        )

    async def _load(self, posting_id: str) -> PostingRecord:
        row = await self._fetch_row(posting_id)
        return self._row_to_record(row)

    async def _mutate(self, posting_id: str, mutate: Callable[[PostingRecord], T]) -> tuple[PostingRecord, T]:
        pool = await self._get_pool()
        for attempt in range(1, self.max_cas_retries + 1):
            row = await self._fetch_row(posting_id)
            record = self._row_to_record(row)
            expected_version = record.version

            result = mutate(record)
            record.version = expected_version + 1

            status = await pool.execute(
                """
                update moderated_postings
                set
                  moderation_status = $3,
                  report_statuses = $4::text[],
                  document = $5::jsonb,
                  version = $6,
                  updated_at = $7,
                  last_reported_at = $8
                where id = $1::uuid
                  and version = $2
                """,
                posting_id,
                expected_version,
                record.moderation.status,
                _report_statuses(record),
                json.dumps(record_to_document(record)),
                record.version,
                record.updated_at,
                _last_reported_at(record),
            )
            if status == "UPDATE 1":
                return record, result

            logger.info(
                "posting write conflict posting_id=%s attempt=%s expected_version=%s",
                posting_id,
                attempt,
                expected_version,
            )

        raise RepositoryConflictError("posting was modified concurrently; retry the request")

    async def _list_company_contents(self, *, company_id: str, since: datetime) -> list[tuple[str, PostingContent]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select id::text as id, document
            from moderated_postings
            where company_id = $1
              and created_at >= $2
            order by created_at asc
            """,
            company_id,
            since,
        )
        return [(row["id"], PostingContent.from_dict(_load_json(row["document"])["content"])) for row in rows]

    async def _list_by_status(self, *, statuses: list[str], limit: int, offset: int) -> list[PostingRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select document, version
            from moderated_postings
            where moderation_status = any($1::text[])
            order by created_at asc, id asc
            limit $2 offset $3
            """,
            statuses,
            limit,
            offset,
        )
        return [self._row_to_record(row) for row in rows]

    async def _list_by_report_status(
        self,
        *,
        report_status: str,
        limit: int,
        offset: int,
    ) -> tuple[list[PostingRecord], int]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select document, version
            from moderated_postings
            where $1 = any(report_statuses)
            order by last_reported_at desc nulls last, id asc
            limit $2 offset $3
            """,
            report_status,
            limit,
            offset,
        )
        total = await pool.fetchval(
            "select count(*) from moderated_postings where $1 = any(report_statuses)",
            report_status,
        )
        return [self._row_to_record(row) for row in rows], int(total or 0)

    async def _fetch_row(self, posting_id: str) -> asyncpg.Record:
        if not _is_uuid(posting_id):
            raise RepositoryNotFoundError("posting not found")
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                "select document, version from moderated_postings where id = $1::uuid",
                posting_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("posting not found") from exc
        if not row:
            raise RepositoryNotFoundError("posting not found")
        return row

    @staticmethod
    def _row_to_record(row: asyncpg.Record) -> PostingRecord:
        record = record_from_document(_load_json(row["document"]))
        record.version = int(row["version"])
        return record

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("SJ_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        async with self._pool_lock:
            if self._pool is not None:
                return self._pool

            try:
                pool = await asyncpg.create_pool(
                    dsn=self.database_url,
                    min_size=self.min_pool_size,
                    max_size=self.max_pool_size,
                    command_timeout=15,
                )
            except Exception as exc:  # pragma: no cover - depends on environment
                raise RepositoryUnavailableError("database unavailable") from exc

            try:
                await pool.execute(SCHEMA_SQL)
            except Exception as exc:
                await pool.close()
                raise RepositoryUnavailableError("database schema setup failed") from exc

            # published only once the schema exists
            self._pool = pool
        return self._pool


SCHEMA_SQL = """
create table if not exists moderated_postings (
  id uuid primary key,
  company_id text,
  moderation_status text not null,
  report_statuses text[] not null default '{}',
  last_reported_at timestamptz,
  document jsonb not null,
  version integer not null default 0,
  created_at timestamptz not null default now(),
  updated_at timestamptz not null default now()
);
create index if not exists moderated_postings_status_idx
  on moderated_postings (moderation_status, created_at);
create index if not exists moderated_postings_company_idx
  on moderated_postings (company_id, created_at);
create index if not exists moderated_postings_report_statuses_idx
  on moderated_postings using gin (report_statuses);
"""


def record_to_dict(record: PostingRecord) -> dict[str, Any]:
    moderation = record.moderation
    return {
        "id": record.id,
        "company_id": record.company_id,
        "created_by": record.created_by,
        **record.content.to_dict(),
        "is_active": record.is_active,
        "moderation": {
            "status": moderation.status,
            "quality_score": moderation.quality_score,
            "spam_score": moderation.spam_score,
            "auto_approved": moderation.auto_approved,
            "flagged": moderation.flagged,
            "flag_reasons": list(moderation.flag_reasons),
            "reviewed_by": moderation.reviewed_by,
            "reviewed_at": moderation.reviewed_at,
            "rejection_reason": moderation.rejection_reason,
            "duplicate_of": moderation.duplicate_of,
            "duplicate_similarity": moderation.duplicate_similarity,
        },
        "reports": [report_to_dict(report) for report in record.reports],
        "pending_report_count": record.reports.pending_count,
        "version": record.version,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


def report_to_dict(report: Report) -> dict[str, Any]:
    return {
        "id": report.id,
        "reported_by": report.reported_by,
        "reason": report.reason,
        "description": report.description,
        "status": report.status,
        "created_at": report.created_at,
        "resolved_by": report.resolved_by,
        "resolved_at": report.resolved_at,
    }


def record_to_document(record: PostingRecord) -> dict[str, Any]:
    """JSON-safe form used for storage."""
    row = record_to_dict(record)
    content = record.content.to_dict()
    moderation = dict(row["moderation"])
    moderation["reviewed_at"] = _format_datetime(moderation["reviewed_at"])
    return {
        "id": record.id,
        "company_id": record.company_id,
        "created_by": record.created_by,
        "content": content,
        "is_active": record.is_active,
        "moderation": moderation,
        "reports": [
            {
                **report,
                "created_at": _format_datetime(report["created_at"]),
                "resolved_at": _format_datetime(report["resolved_at"]),
            }
            for report in row["reports"]
        ],
        "version": record.version,
        "created_at": _format_datetime(record.created_at),
        "updated_at": _format_datetime(record.updated_at),
    }


def record_from_document(document: dict[str, Any]) -> PostingRecord:
    moderation = document.get("moderation") or {}
    reports = [
        Report(
            id=str(item["id"]),
            reported_by=str(item["reported_by"]),
            reason=item["reason"],
            description=item.get("description") or "",
            status=item["status"],
            created_at=_parse_datetime(item["created_at"]),
            resolved_by=item.get("resolved_by"),
            resolved_at=_parse_optional_datetime(item.get("resolved_at")),
        )
        for item in document.get("reports") or []
    ]
    return PostingRecord(
        id=str(document["id"]),
        content=PostingContent.from_dict(document.get("content") or {}),
        company_id=document.get("company_id"),
        created_by=document.get("created_by"),
        is_active=bool(document.get("is_active", True)),
        moderation=ModerationState(
            status=moderation.get("status", "pending"),
            quality_score=int(moderation.get("quality_score", 0)),
            spam_score=int(moderation.get("spam_score", 0)),
            auto_approved=bool(moderation.get("auto_approved", False)),
            flagged=bool(moderation.get("flagged", False)),
            flag_reasons=list(moderation.get("flag_reasons") or []),
            reviewed_by=moderation.get("reviewed_by"),
            reviewed_at=_parse_optional_datetime(moderation.get("reviewed_at")),
            rejection_reason=moderation.get("rejection_reason"),
            duplicate_of=moderation.get("duplicate_of"),
            duplicate_similarity=moderation.get("duplicate_similarity"),
        ),
        reports=ReportLedger(reports),
        version=int(document.get("version", 0)),
        created_at=_parse_datetime(document["created_at"]),
        updated_at=_parse_datetime(document["updated_at"]),
    )


def _report_statuses(record: PostingRecord) -> list[str]:
    return sorted({report.status for report in record.reports})


def _last_reported_at(record: PostingRecord) -> datetime | None:
    return max((report.created_at for report in record.reports), default=None)


def _format_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _parse_optional_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    return _parse_datetime(value)


def _load_json(value: Any) -> dict[str, Any]:
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


def _is_uuid(value: str) -> bool:
    try:
        UUID(value)
    except (TypeError, ValueError):
        return False
    return True


@lru_cache
def get_repository() -> PostingRepository:
    settings = get_settings()
    options: dict[str, Any] = {
        "policy": get_moderation_policy(),
        "escalation_threshold": settings.report_escalation_threshold,
        "duplicate_threshold": settings.duplicate_similarity_threshold,
        "duplicate_window_days": settings.duplicate_window_days,
    }
    if not settings.database_url:
        logger.warning("SJ_DATABASE_URL not set; using in-memory posting repository")
        return InMemoryPostingRepository(**options)
    return PostgresPostingRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        max_cas_retries=settings.repository_max_cas_retries,
        **options,
    )
