"""
Configuration settings for payrecon
Handles environment variables and application settings
"""
from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "payrecon"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json | console

    # Database (SQLite for local development, Postgres in production)
    DATABASE_URL: str = "sqlite:///./payrecon.db"

    # Gateway selection
    GATEWAY_PROVIDER: str = "cashfree"
    GATEWAY_TIMEOUT_SECONDS: float = 15.0

    # Cashfree PG
    CASHFREE_APP_ID: Optional[str] = None
    CASHFREE_SECRET_KEY: Optional[str] = None
    CASHFREE_API_BASE: str = "https://sandbox.cashfree.com/pg"
    CASHFREE_API_VERSION: str = "2023-08-01"

    # PhonePe Standard Checkout
    PHONEPE_CLIENT_ID: Optional[str] = None
    PHONEPE_CLIENT_SECRET: Optional[str] = None
    PHONEPE_CLIENT_VERSION: int = 1
    PHONEPE_API_BASE: str = "https://api-preprod.phonepe.com/apis/pg-sandbox"
    PHONEPE_CALLBACK_USERNAME: Optional[str] = None
    PHONEPE_CALLBACK_PASSWORD: Optional[str] = None

    # Webhooks
    WEBHOOK_TOLERANCE_SECONDS: int = 0  # 0 disables the replay window
    DROPPED_IS_FAILURE: bool = False

    # Reconciliation
    RECON_OLDER_THAN_MINUTES: int = 5
    RECON_BATCH_LIMIT: int = 50
    RECON_INTERVAL_SECONDS: float = 60.0

    # Ops sink
    OPS_SINK_URL: Optional[str] = None

    # CORS
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @field_validator("GATEWAY_PROVIDER")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return v.strip().lower()

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env file


# Create settings instance
settings = Settings()


if settings.ENVIRONMENT == "development":
    settings.DEBUG = True


# Validation
def validate_settings(s: Settings = settings) -> None:
    """Validate critical settings"""
    issues = []

    if s.GATEWAY_PROVIDER == "cashfree":
        if not s.CASHFREE_APP_ID or not s.CASHFREE_SECRET_KEY:
            issues.append("CASHFREE_APP_ID and CASHFREE_SECRET_KEY must be set")
    elif s.GATEWAY_PROVIDER == "phonepe":
        if not s.PHONEPE_CLIENT_ID or not s.PHONEPE_CLIENT_SECRET:
            issues.append("PHONEPE_CLIENT_ID and PHONEPE_CLIENT_SECRET must be set")
        if not s.PHONEPE_CALLBACK_USERNAME or not s.PHONEPE_CALLBACK_PASSWORD:
            issues.append("PHONEPE_CALLBACK_USERNAME and PHONEPE_CALLBACK_PASSWORD must be set")
    else:
        issues.append(f"Unsupported GATEWAY_PROVIDER '{s.GATEWAY_PROVIDER}'")

    if s.ENVIRONMENT == "production" and s.DATABASE_URL.startswith("sqlite"):
        issues.append("DATABASE_URL must point at Postgres in production")

    if issues:
        raise ValueError(f"Configuration issues: {', '.join(issues)}")


# Auto-validate on import in production
if settings.ENVIRONMENT == "production":
    validate_settings()
