from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.auth import parse_machine_credentials
from app.services.decision import ModerationPolicy
from app.services.scoring import load_spam_rules


class Settings(BaseSettings):
    app_name: str = "posting-moderation-api"
    environment: str = "dev"
    api_key_header: str = "X-API-Key"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    repository_max_cas_retries: int = 5
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    machine_credentials_json: str | None = None
    flag_spam_threshold: int = 50
    auto_approve_min_quality: int = 70
    auto_approve_max_spam: int = 30
    report_escalation_threshold: int = 3
    spam_rules_json: str | None = None
    duplicate_similarity_threshold: int = 70
    duplicate_window_days: int = 30
    otel_enabled: bool = True
    otel_service_name: str = "posting-moderation-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="SJ_", extra="ignore")

    @field_validator("spam_rules_json")
    @classmethod
    def _validate_spam_rules(cls, value: str | None) -> str | None:
        load_spam_rules(value)
        return value

    @field_validator("machine_credentials_json")
    @classmethod
    def _validate_machine_credentials(cls, value: str | None) -> str | None:
        parse_machine_credentials(value)
        return value

    @field_validator("report_escalation_threshold", "repository_max_cas_retries")
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def get_moderation_policy() -> ModerationPolicy:
    settings = get_settings()
    return ModerationPolicy(
        flag_spam_threshold=settings.flag_spam_threshold,
        auto_approve_min_quality=settings.auto_approve_min_quality,
        auto_approve_max_spam=settings.auto_approve_max_spam,
        spam_rules=load_spam_rules(settings.spam_rules_json),
    )
