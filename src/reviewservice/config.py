"""Service configuration."""

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Settings read from the environment, with defaults for local runs."""

    service_name: str = os.getenv("SERVICE_NAME", "reviewservice")
    port: int = int(os.getenv("PORT", "8080"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Either a full SQLAlchemy async URL or the Cloud SQL settings below
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    cloudsql_host: Optional[str] = os.getenv("CLOUDSQL_HOST")
    project_id: Optional[str] = os.getenv("PROJECT_ID")
    db_secret_name: Optional[str] = os.getenv("DB_SECRET_NAME")
    db_name: str = os.getenv("DB_NAME", "reviews")
    db_user: str = os.getenv("DB_USER", "postgres")
    sql_echo: bool = _env_bool("SQL_ECHO")

    rating_policy: str = os.getenv("RATING_POLICY", "moderated")
    aggregate_max_retries: int = Field(
        default=int(os.getenv("AGGREGATE_MAX_RETRIES", "5")), ge=1
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
