"""Application configuration using pydantic-settings."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from prescription_safety.schemas.base import InteractionReportMode


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Prescription Safety Engine"
    debug: bool = False
    log_level: str = "INFO"

    # Rule engine
    ruleset_path: Path | None = None  # None uses the bundled formulary
    interaction_report_mode: InteractionReportMode = InteractionReportMode.FIRST
    min_fragment_length: int = 3
    min_prefix_match_length: int = 4

    # API
    api_v1_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:3000"]


settings = Settings()
