from typing import List, Optional, Union
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
import json
from enum import Enum

from fitquest.reminders.constants import MIN_INTERVAL, MAX_INTERVAL


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    # Environment Configuration
    ENVIRONMENT: Environment = Environment.DEVELOPMENT

    # Project Information
    PROJECT_NAME: str = "FitQuest Backend"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"

    # Server settings
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 3001

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_SOCKET_TIMEOUT: float = 5.0

    # CORS
    CORS_ORIGINS: Union[List[str], str] = []

    # Logging / metrics
    LOG_LEVEL: str = "INFO"
    METRICS_ENABLED: bool = True

    # Reminders
    RESTART_REMINDERS_ON_STARTUP: bool = True
    DEFAULT_INTERVAL_MINUTES: int = 30
    SHUTDOWN_DRAIN_TIMEOUT_SECONDS: float = 5.0

    # --- Validators & Derived Settings ---
    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Optional[Union[str, List[str]]]) -> List[str]:
        # Accept a JSON list or a comma-separated string from the environment
        if v is None:
            return []
        if isinstance(v, str):
            raw = v.strip()
            if not raw:
                return []
            if raw.startswith("["):
                try:
                    return [str(item) for item in json.loads(raw)]
                except (json.JSONDecodeError, TypeError):
                    pass
            return [origin.strip() for origin in raw.split(",") if origin.strip()]
        return list(v)

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Optional[str]) -> str:
        if not v:
            return "INFO"
        return str(v).strip().upper()

    @model_validator(mode="after")
    def _finalize_and_validate(self) -> "Settings":
        if not MIN_INTERVAL <= self.DEFAULT_INTERVAL_MINUTES <= MAX_INTERVAL:
            raise ValueError(
                f"DEFAULT_INTERVAL_MINUTES must be between {MIN_INTERVAL} and {MAX_INTERVAL}"
            )
        if not self.CORS_ORIGINS:
            self.CORS_ORIGINS = self.allowed_cors_origins
        return self

    # Environment-specific properties
    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == Environment.PRODUCTION

    @property
    def cors_origins_development(self) -> List[str]:
        return [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
        ]

    @property
    def allowed_cors_origins(self) -> List[str]:
        if self.is_production:
            return []
        return self.cors_origins_development

    model_config = SettingsConfigDict(
        env_prefix="FITQUEST_", case_sensitive=True, env_file=".env", extra="ignore"
    )


settings = Settings()
