"""Configuration module for Mahallu API.

Configuration is loaded through Pydantic ``BaseSettings`` from the environment
or from a config file. The config file is discovered in the following order:

1. The path in the ``MAHALLU_API_CONFIG_PATH`` environment variable
2. ``.mahallu`` in the project root
3. ``.env`` in the project root
4. None (environment variables only)

Secrets (JWT key, database URL) are never hardcoded; validators reject empty
or placeholder values at startup.

How to extend/maintain:
-----------------------
- Add new config fields to the ``Settings`` class, and document them.
- If you change the config discovery logic, update this docstring.
"""

import os
from pathlib import Path
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
MAHALLU_FILENAME: str = ".mahallu"
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "MAHALLU_API_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent


def get_config_path() -> Optional[str]:
    """Determine the config file path to use, in order of precedence:
    1. Environment variable MAHALLU_API_CONFIG_PATH
    2. .mahallu in project root
    3. .env in project root
    4. None (fallback to environment variables only)

    Returns:
        Optional[str]: Path to config file, or None if not found.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    mahallu_path: Path = PROJECT_ROOT / MAHALLU_FILENAME
    if mahallu_path.exists():
        return str(mahallu_path)
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=True)


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All fields are loaded from the environment or the .mahallu/.env file.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # Server configuration
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    DEBUG: bool = False
    APP_NAME: str = "Mahallu_API"
    ENV: str = "dev"

    # API configuration
    API_PREFIX: str = "/api"
    CORS_ENABLED: bool = True
    CORS_ORIGINS: str = "http://localhost:3000"

    # JWT configuration
    SECRET_KEY: SecretStr = SecretStr("")  # Must be set in .mahallu or environment
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 7 * 24 * 60

    # MongoDB configuration
    MONGODB_URL: str = ""  # Must be set in .mahallu or environment
    MONGODB_DATABASE: str = "mahallu"
    MONGODB_CONNECTION_TIMEOUT: int = 10000
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000
    MONGODB_MAX_POOL_SIZE: int = 50
    MONGODB_MIN_POOL_SIZE: int = 5
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[SecretStr] = None

    # Pagination
    DEFAULT_PAGE_LIMIT: int = 10
    MAX_PAGE_LIMIT: int = 100

    # Sequential identifiers ("atomic" counter document or "legacy" read-then-write)
    SEQUENCE_STRATEGY: Literal["atomic", "legacy"] = "atomic"
    FAMILY_ID_PREFIX: str = "FID"

    # Users
    DEFAULT_USER_PASSWORD: SecretStr = SecretStr("123456")
    BCRYPT_ROUNDS: int = 10

    # Activity (audit) logging
    AUDIT_ENABLED: bool = True
    AUDIT_SKIP_PATHS: List[str] = ["/api/health", "/api/auth/login", "/api/auth/verify-otp"]
    AUDIT_MAX_ATTEMPTS: int = 2
    AUDIT_RETRY_DELAY_SECONDS: float = 0.5
    AUDIT_MAX_PENDING: int = 1000
    AUDIT_DRAIN_TIMEOUT_SECONDS: float = 5.0

    # Logging configuration
    LOG_LEVEL: str = "INFO"
    LOKI_ENABLED: bool = False
    LOKI_URL: str = "http://localhost:3100/loki/api/v1/push"
    LOKI_COMPRESS: bool = True

    @field_validator("SECRET_KEY", mode="before")
    @classmethod
    def no_hardcoded_secrets(cls, v, info):
        if not v or "change" in str(v).lower() or "0000" in str(v) or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .mahallu and not hardcoded!")
        return v

    @field_validator("MONGODB_URL", mode="before")
    @classmethod
    def no_empty_urls(cls, v, info):
        if not v or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .mahallu and not empty!")
        return v

    @field_validator("AUDIT_MAX_ATTEMPTS", "AUDIT_MAX_PENDING", "MAX_PAGE_LIMIT", mode="before")
    @classmethod
    def validate_positive_integers(cls, v, info):
        """Validate that bounded counters are positive."""
        value = int(v)
        if value <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return value

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return not self.DEBUG

    @property
    def cors_origins_list(self) -> List[str]:
        """Get list of allowed CORS origins."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings: Settings = Settings()
