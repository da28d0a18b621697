"""Runtime configuration for the Deal Kernel, read from DEAL_KERNEL_* env vars."""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALWAYS_REVIEW_TOPICS = [
    "refund",
    "discount",
    "complaint",
    "cancellation",
    "damage",
    "security_deposit",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DEAL_KERNEL_", extra="ignore")

    log_level: str = "INFO"
    log_json: bool = False

    # Job watch
    job_poll_interval_seconds: float = Field(gt=0, default=1.0)

    # Confidence gate. The user-facing threshold is on a 0-100 scale.
    ai_auto_respond: bool = True
    confidence_threshold: int = Field(ge=0, le=100, default=85)
    always_review_topics: List[str] = DEFAULT_ALWAYS_REVIEW_TOPICS
    quiet_hours_schedule: Optional[str] = None  # Cron window, e.g. "* 22-23,0-7 * * *"
    review_expiry_minutes: int = Field(gt=0, default=60)
    default_situation_confidence: float = Field(ge=0.0, le=1.0, default=0.6)

    # Calibration
    min_samples_for_auto_adjust: int = Field(ge=1, default=10)
    ledger_db_path: str = ":memory:"

    @field_validator("always_review_topics")
    @classmethod
    def _normalize_topics(cls, topics: List[str]) -> List[str]:
        return [t.strip().lower() for t in topics if t.strip()]

    @property
    def default_threshold(self) -> float:
        """The configured threshold on the internal 0-1 scale."""
        return self.confidence_threshold / 100.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
