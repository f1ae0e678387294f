"""Application configuration and settings management."""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with validation and type hints."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="clinic-claims-rpa")
    app_env: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("logs"))
    timezone: str = Field(default="Asia/Singapore")

    # Record store
    database_url: str = Field(default="sqlite+aiosqlite:///./claims_rpa.db")
    db_command_timeout: int = Field(default=60)

    # Clinic Assist (source system)
    clinic_assist_url: str = Field(default="https://clinicassist.sg:1080/")
    clinic_assist_username: Optional[str] = Field(default=None)
    clinic_assist_password: Optional[SecretStr] = Field(default=None)
    clinic_assist_clinic_group: str = Field(default="ssoc")
    clinic_assist_branch: str = Field(default="__FIRST__")
    clinic_assist_department: str = Field(default="Reception")

    # MHC Asia (claims portal)
    mhc_asia_url: str = Field(default="https://www.mhcasia.net/mhc/")
    mhc_asia_username: Optional[str] = Field(default=None)
    mhc_asia_password: Optional[SecretStr] = Field(default=None)

    # Automation driver factories ("package.module:callable")
    source_driver_factory: Optional[str] = Field(default=None)
    portal_driver_factory: Optional[str] = Field(default=None)
    browser_headless: bool = Field(default=True)
    browser_timeout_ms: int = Field(default=30000)
    evidence_dir: Path = Field(default=Path("screenshots"))

    # Batch processing
    visit_details_batch_size: int = Field(default=100)
    visit_details_max_retries: int = Field(default=3)
    delay_between_visits_seconds: float = Field(default=1.0)
    delay_between_submissions_seconds: float = Field(default=2.0)
    stale_run_hours: int = Field(default=6)
    failure_sample_size: int = Field(default=10)

    # Submission policy defaults (CLI flags override)
    submission_save_as_draft: bool = Field(default=False)
    submission_allow_live_submit: bool = Field(default=False)
    submission_persist_fill_only_errors: bool = Field(default=False)
    consultation_fee_sentinel: int = Field(default=99999)

    # Portal scope
    portal_pay_types: List[str] = Field(
        default_factory=lambda: [
            "MHC", "AIA", "AIACLIENT", "AIA CLIENT", "AVIVA", "SINGLIFE",
            "IHP", "GE", "FULLERT", "FULLERTON",
            "ALL", "ALLIANZ", "ALLIANCE", "ALLIMED",
        ]
    )

    # Monitoring
    enable_metrics: bool = Field(default=True)
    prometheus_port: int = Field(default=9108)

    @field_validator("app_env")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate application environment."""
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"app_env must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v

    @field_validator("portal_pay_types")
    @classmethod
    def normalize_pay_types(cls, v: List[str]) -> List[str]:
        return [code.strip().upper() for code in v if code and code.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Export commonly used settings
settings = get_settings()
