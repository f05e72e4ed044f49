from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.core.config import Settings, get_moderation_policy, get_settings


def test_settings_reject_malformed_spam_rules() -> None:
    with pytest.raises(ValidationError, match="spam rules must be a JSON object"):
        Settings(spam_rules_json="[]")


@pytest.mark.parametrize("field", ["report_escalation_threshold", "repository_max_cas_retries"])
def test_settings_reject_non_positive_counts(field: str) -> None:
    with pytest.raises(ValidationError, match="must be at least 1"):
        Settings(**{field: 0})


def test_moderation_policy_reflects_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SJ_FLAG_SPAM_THRESHOLD", "40")
    monkeypatch.setenv("SJ_AUTO_APPROVE_MIN_QUALITY", "80")
    monkeypatch.setenv("SJ_SPAM_RULES_JSON", '{"keywords": ["crypto bonus"], "replace": true}')
    get_settings.cache_clear()
    get_moderation_policy.cache_clear()
    try:
        policy = get_moderation_policy()
    finally:
        get_settings.cache_clear()
        get_moderation_policy.cache_clear()

    assert policy.flag_spam_threshold == 40
    assert policy.auto_approve_min_quality == 80
    assert policy.auto_approve_max_spam == 30
    assert policy.spam_rules.keywords == ("crypto bonus",)


def test_settings_reject_malformed_machine_credentials() -> None:
    with pytest.raises(ValidationError, match="key_hash must be a hex sha256 digest"):
        Settings(machine_credentials_json='[{"module_id": "intake", "key_hash": "plain-text-key"}]')
