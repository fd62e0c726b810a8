"""Configuration management for fantastic_task."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="./data/fantastic_task.db", description="Path to the SQLite database file")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    service_name: str = Field(default="fantastic-task", description="Service name reported to Logfire")
    environment: str = Field(default="development", description="Deployment environment name")

    @property
    def is_production(self) -> bool:
        """Return True when running in the production environment."""
        return self.environment.lower() == "production"


# Application Constants
class Constants:
    """Application-wide constants."""

    # Bonus points
    BONUS_MINUTES_PER_POINT: int = 5  # 1 bonus point per 5 minutes over estimate

    # Pagination
    LIST_PAGE_SIZE: int = 500  # Page size when reading a filtered collection to the end

    # Statistics timeframes (days)
    STATS_WEEK_DAYS: int = 7
    STATS_MONTH_DAYS: int = 30

    # Achievement thresholds
    ACHIEVEMENT_FIRST_TASK: int = 1
    ACHIEVEMENT_TASK_MASTER: int = 10
    ACHIEVEMENT_SUPER_HELPER: int = 50
    ACHIEVEMENT_TASK_LEGEND: int = 100
    ACHIEVEMENT_ON_FIRE_STREAK: int = 3
    ACHIEVEMENT_WEEK_WARRIOR_STREAK: int = 7
    ACHIEVEMENT_STREAK_MASTER_STREAK: int = 14
    ACHIEVEMENT_POINT_COLLECTOR: int = 100
    ACHIEVEMENT_POINT_MASTER: int = 500

    # Flexible recurrence presets (days)
    WEEKLY_FLEXIBLE_INTERVAL: int = 7
    MONTHLY_FLEXIBLE_INTERVAL: int = 30


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
