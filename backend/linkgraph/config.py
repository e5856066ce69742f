from __future__ import annotations

import warnings
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    domain: str = "localhost"
    jwt_secret: str = ""  # Shared with the token issuer; this service only verifies
    allow_insecure_jwt: bool = False
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_jwt_secret(self) -> Settings:
        self.jwt_secret = self.jwt_secret.strip()
        if not self.jwt_secret:
            if self.allow_insecure_jwt:
                warnings.warn(
                    "JWT_SECRET is empty but ALLOW_INSECURE_JWT is set. "
                    "This is INSECURE and should only be used for development.",
                    stacklevel=2,
                )
            else:
                raise ValueError(
                    "JWT_SECRET is not set. Caller identities cannot be verified "
                    "without it. Set JWT_SECRET to the token issuer's signing "
                    "secret or set ALLOW_INSECURE_JWT=1 for development."
                )
        return self

    db_url: str = "sqlite:///./linkgraph.db"

    # Profile store (user existence, active status, attributes)
    profile_service_url: str = "http://user-service:8081"
    profile_service_timeout_seconds: float = 5.0

    # Event sink; empty means events are only logged
    event_webhook_url: str = ""
    event_timeout_seconds: float = 5.0

    # Read-through cache for per-user query results
    query_cache_ttl_seconds: float = 3600.0

    # Suggestions
    suggestion_default_limit: int = 10
    suggestion_max_limit: int = 50
    strategy_timeout_seconds: float = 3.0
    mutual_strategy_weight: float = 1.0
    industry_strategy_weight: float = 0.6
    location_strategy_weight: float = 0.4

    # Housekeeping: rejected requests older than this are purged (0 = keep forever)
    rejected_retention_days: int = 0
    purge_interval_hours: int = 24


@lru_cache
def get_settings() -> Settings:
    return Settings()
