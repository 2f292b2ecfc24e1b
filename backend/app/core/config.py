from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_POSTGRES_SCHEMES = {"postgres", "postgresql", "postgresql+psycopg", "postgresql+psycopg2"}
_REMOTE_STORE_BACKENDS = {"auto", "rest", "sql", "none"}


def _sqlalchemy_url(value: str) -> str:
    """Route Postgres URLs through psycopg 3 and require TLS; leave others alone."""

    parts = urlsplit(value.strip())
    if parts.scheme.lower() not in _POSTGRES_SCHEMES:
        return value.strip()
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.setdefault("sslmode", "require")
    return urlunsplit(parts._replace(scheme="postgresql+psycopg", query=urlencode(query)))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///../data/betmind.db",
        description="SQLAlchemy compatible database URL used by the SQL cache store",
    )
    supabase_db_url: AnyUrl | str | None = Field(
        default=None,
        description="Supabase pooled Postgres connection string for production runs",
    )
    supabase_url: AnyUrl | str | None = Field(
        default=None,
        description="Supabase project URL used by the REST cache store",
    )
    supabase_anon_key: str | None = Field(
        default=None,
        description="Supabase anon/service key sent with REST cache requests",
    )
    remote_store_backend: str = Field(
        default="auto",
        description="Remote cache backend (auto|rest|sql|none)",
    )
    remote_store_timeout_seconds: float = Field(
        default=5.0,
        description="Per-call timeout applied to remote cache requests",
        gt=0,
    )
    remote_store_retry_attempts: int = Field(
        default=2,
        description="Attempts per remote cache call before the failure is absorbed",
        ge=1,
    )
    remote_store_retry_delay_seconds: float = Field(
        default=0.25,
        description="Initial backoff delay between remote cache attempts",
        ge=0,
    )
    llm_default_provider: str = Field(
        default="gemini",
        description="Inference provider used for fixture listing and analysis",
    )
    llm_stage_models: dict[str, str] = Field(
        default_factory=dict,
        description="Per-stage model overrides keyed by stage name (fixtures|analysis)",
    )
    openai_api_key: str | None = Field(
        default=None,
        description="API key used for OpenAI-powered inference",
    )
    openai_api_base: AnyUrl | str | None = Field(
        default=None,
        description="Optional override for the OpenAI API base URL (Azure/proxy support)",
    )
    openai_org_id: str | None = Field(
        default=None,
        description="Optional OpenAI organization identifier",
    )
    openai_project_id: str | None = Field(
        default=None,
        description="Optional OpenAI project identifier for usage scoping",
    )
    gemini_api_key: str | None = Field(
        default=None,
        description="API key used for Gemini-powered inference",
    )
    gemini_additional_api_keys: list[str] | str = Field(
        default_factory=list,
        description=(
            "Optional fallback Gemini API keys; the provider will cycle through them "
            "if the primary key is rate-limited or fails."
        ),
    )
    inference_retry_attempts: int = Field(
        default=3,
        description="Attempts per inference call before the request fails",
        ge=1,
    )
    inference_retry_delay_seconds: float = Field(
        default=1.0,
        description="Initial backoff delay between inference attempts",
        ge=0,
    )
    inference_timeout_seconds: float = Field(
        default=120.0,
        description="Per-call timeout passed to the inference provider",
        gt=0,
    )
    civil_timezone: str = Field(
        default="Europe/Paris",
        description="IANA timezone in which fixture dates and times are expressed",
    )
    expiry_grace_hours: float = Field(
        default=4.0,
        description="Hours after kickoff before a fixture is considered expired",
        ge=0,
    )
    live_window_minutes: int = Field(
        default=150,
        description="Minutes after kickoff during which a fixture is considered active",
        ge=1,
    )
    simulation_trials: int = Field(
        default=10_000,
        description="Monte Carlo trials per analysis",
        ge=1,
    )
    simulation_seed: int | None = Field(
        default=None,
        description="Optional seed for reproducible simulations",
    )
    simulation_profiles: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Per-category overrides for simulation constants",
    )
    background_write_workers: int = Field(
        default=2,
        description="Worker threads used for fire-and-forget cache writes",
        ge=1,
    )

    @field_validator("civil_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"CIVIL_TIMEZONE '{value}' is not a known IANA timezone") from exc
        return value

    @field_validator("remote_store_backend")
    @classmethod
    def _validate_backend(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in _REMOTE_STORE_BACKENDS:
            raise ValueError(
                "REMOTE_STORE_BACKEND must be one of: "
                + ", ".join(sorted(_REMOTE_STORE_BACKENDS))
            )
        return normalized

    @field_validator("gemini_additional_api_keys", mode="before")
    @classmethod
    def _split_additional_gemini_keys(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple, set)):
            raise ValueError("GEMINI_ADDITIONAL_API_KEYS must be a list or a comma-separated string")
        return [str(item).strip() for item in value if str(item).strip()]

    @property
    def resolved_database_url(self) -> str:
        """SQL cache URL; production deployments must point at Supabase Postgres."""

        if self.environment.lower() == "production":
            if not self.supabase_db_url:
                raise ValueError("SUPABASE_DB_URL must be set when ENVIRONMENT=production")
            return _sqlalchemy_url(str(self.supabase_db_url))
        return _sqlalchemy_url(str(self.database_url))

    @property
    def resolved_remote_store_backend(self) -> str:
        """Return the concrete backend once ``auto`` has been resolved."""

        if self.remote_store_backend != "auto":
            return self.remote_store_backend
        if self.supabase_url and self.supabase_anon_key:
            return "rest"
        return "sql"

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.civil_timezone)


@lru_cache
def get_settings() -> Settings:
    return Settings()
