from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from opentelemetry import trace

from app.services.models import ModerationVerdict, PostingContent
from app.services.scoring import DEFAULT_SPAM_RULES, SpamRules, score_quality, score_spam

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True, slots=True)
class ModerationPolicy:
    flag_spam_threshold: int = 50
    auto_approve_min_quality: int = 70
    auto_approve_max_spam: int = 30
    spam_rules: SpamRules = DEFAULT_SPAM_RULES


DEFAULT_POLICY = ModerationPolicy()


def decide(
    content: PostingContent,
    company_verification_status: Any,
    policy: ModerationPolicy = DEFAULT_POLICY,
) -> ModerationVerdict:
    """Produce the initial moderation verdict for a new or edited posting.

    Spam disqualification is checked first and is independent of company trust.
    Auto-approval needs an approved company, high quality and low spam. Any
    unexpected failure falls back to a zeroed ``pending`` verdict so the posting
    lands in manual review instead of being approved.
    """
    with tracer.start_as_current_span("moderation.decide") as span:
        try:
            verdict = _decide(content, company_verification_status, policy)
        except Exception:
            logger.exception("moderation decision failed; routing posting to manual review")
            verdict = ModerationVerdict(
                status="pending",
                quality_score=0,
                spam_score=0,
                auto_approved=False,
                flagged=False,
                flag_reasons=[],
            )
        span.set_attribute("moderation.status", verdict.status)
        span.set_attribute("moderation.quality_score", verdict.quality_score)
        span.set_attribute("moderation.spam_score", verdict.spam_score)
        return verdict


def is_auto_approvable(
    *,
    company_verification_status: Any,
    quality_score: int,
    spam_score: int,
    policy: ModerationPolicy = DEFAULT_POLICY,
) -> bool:
    return (
        company_verification_status == "approved"
        and quality_score >= policy.auto_approve_min_quality
        and spam_score < policy.auto_approve_max_spam
    )


def _decide(content: PostingContent, company_verification_status: Any, policy: ModerationPolicy) -> ModerationVerdict:
    quality_score = score_quality(content)
    spam = score_spam(content, policy.spam_rules)

    if spam.score >= policy.flag_spam_threshold:
        logger.info(
            "moderation verdict status=flagged quality_score=%s spam_score=%s reasons=%s",
            quality_score,
            spam.score,
            spam.reasons,
        )
        return ModerationVerdict(
            status="flagged",
            quality_score=quality_score,
            spam_score=spam.score,
            auto_approved=False,
            flagged=True,
            flag_reasons=list(spam.reasons),
        )

    if is_auto_approvable(
        company_verification_status=company_verification_status,
        quality_score=quality_score,
        spam_score=spam.score,
        policy=policy,
    ):
        status = "approved"
        auto_approved = True
    else:
        status = "pending"
        auto_approved = False

    logger.info(
        "moderation verdict status=%s quality_score=%s spam_score=%s auto_approved=%s",
        status,
        quality_score,
        spam.score,
        auto_approved,
    )
    return ModerationVerdict(
        status=status,
        quality_score=quality_score,
        spam_score=spam.score,
        auto_approved=auto_approved,
        flagged=False,
        flag_reasons=[],
    )
