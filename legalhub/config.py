"""Engine configuration management."""

from typing import Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_OFFICIAL_USE_FIELDS: Dict[int, List[str]] = {
    1: [
        "legalReviewCompleted",
        "registeredDate",
        "legalRefNumber",
        "dateOfExecution",
        "dateOfExpiration",
        "directorsExecuted1",
        "reviewedBy",
        "registeredBy",
    ],
}

GENERIC_OFFICIAL_USE_FIELDS: List[str] = ["legalRefNumber", "registeredBy"]


class Settings(BaseSettings):
    """Engine settings loaded from environment variables (``LEGALHUB_*``)."""

    submission_prefix: str = Field(
        default="LHD",
        description="Prefix of generated submission numbers",
    )
    sla_days: int = Field(
        default=14,
        description="Days after creation before a submission is due",
    )
    log_level: str = "INFO"

    official_use_fields: Dict[int, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_OFFICIAL_USE_FIELDS.items()},
        description="Official-use fields required before completion, per form id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LEGALHUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def required_official_fields(self, form_id: int) -> List[str]:
        """Official-use fields a Legal Officer must fill to complete ``form_id``."""
        return list(self.official_use_fields.get(form_id, GENERIC_OFFICIAL_USE_FIELDS))


def get_settings() -> Settings:
    """Get settings instance.

    Returns:
        Settings: Settings loaded from environment
    """
    return Settings()
