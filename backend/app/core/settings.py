# backend/app/core/settings.py
"""
FulfillOps - Configuration Management with pydantic-settings

- Loads from environment and root .env
- Validates and normalizes values
- Cached singleton via get_settings()
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional, List
from decimal import Decimal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Calculate path to .env in project root (4 levels up from this file)
# backend/app/core/settings.py -> <repo>/.env
_ENV_FILE = Path(__file__).resolve().parent.parent.parent.parent / ".env"

_POLICIES = ("ship_complete", "ship_partial", "sales_decision")


class Settings(BaseSettings):
    """
    Application settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "FulfillOps"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Deployment environment")

    # ===================
    # Database Settings
    # ===================
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: int = Field(default=5432, description="PostgreSQL port")
    DB_NAME: str = Field(default="fulfillops", description="Database name")
    DB_USER: str = Field(default="postgres", description="Database user")
    DB_PASSWORD: str = Field(default="postgres", description="Database password")
    DATABASE_URL: Optional[str] = Field(
        default=None, description="Full database URL (overrides DB_* settings)"
    )

    @property
    def database_url(self) -> str:
        """Build PostgreSQL database URL from components or use explicit URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # ===================
    # CORS Settings
    # ===================
    ALLOWED_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        description="Allowed CORS origins",
    )

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # ===================
    # Logging
    # ===================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text
    LOG_FILE: Optional[str] = None

    # ===================
    # Fulfillment Orchestration
    # ===================
    DEFAULT_FULFILLMENT_POLICY: str = Field(
        default="ship_complete",
        description="Policy used when neither the order nor the company sets one",
    )
    BOM_MAX_DEPTH: int = Field(default=10, ge=1, description="Deepest BOM level accepted")

    # A warehouse keeps its reorder point when donating stock to another one.
    TRANSFER_RESPECT_REORDER_POINT: bool = True
    # Dip below the reorder point (with a warning) when nothing else can supply.
    ALLOW_TRANSFER_BELOW_REORDER_POINT: bool = True

    # How far a stock basis entry may drift before a submitted plan is stale
    STALE_PLAN_TOLERANCE: Decimal = Field(default=Decimal("0"), ge=0)

    # ship_complete treats an assembly with short components as not completable
    BLOCK_SHIP_COMPLETE_ON_COMPONENT_SHORTAGE: bool = True

    DEFAULT_SUPPLIER_CURRENCY: str = "ZAR"

    @field_validator("DEFAULT_FULFILLMENT_POLICY", mode="before")
    @classmethod
    def normalize_policy(cls, v):
        value = str(v).strip().lower()
        if value not in _POLICIES:
            raise ValueError(
                f"DEFAULT_FULFILLMENT_POLICY must be one of {', '.join(_POLICIES)}"
            )
        return value

    @field_validator("LOG_FORMAT")
    @classmethod
    def normalize_log_format(cls, v: str) -> str:
        return "text" if v.lower() == "text" else "json"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings loader (cached)."""
    return Settings()


# Convenience alias
settings = get_settings()
