from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = "Tree-care Scheduling Service"
    log_level: str = Field(default="INFO")

    # Upper bound on occurrences a single recurring event may generate
    max_generated_occurrences: int = Field(default=1000, ge=1)

    # Actor recorded in change logs when the caller does not identify itself
    default_actor: str = "system"

    seed_demo_data: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
