from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Database - Handle Render's postgres:// URL format
    DATABASE_URL: str = "sqlite:///./scholardesk.db"

    # JWT
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 360

    # Redis (for rate limiting only)
    REDIS_URL: Optional[str] = None

    # CORS - comma-separated origins
    CORS_ORIGINS: str = "http://localhost:3000"

    # Frontend URL used in notification deep links and emails
    FRONTEND_URL: str = "http://localhost:3000"

    # Email (Resend)
    RESEND_API_KEY: Optional[str] = None
    EMAIL_FROM: str = "ScholarDesk <noreply@resend.dev>"
    APP_NAME: str = "ScholarDesk"

    # Error Tracking (Sentry)
    SENTRY_DSN: Optional[str] = None
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Rate limits
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "100/minute"
    AUTH_RATE_LIMIT: str = "5/minute"

    # Optimistic concurrency: how many times a unit of work is re-run after a version conflict
    CONFLICT_RETRY_ATTEMPTS: int = 3

    # last_write_wins | team_authoritative
    PROGRESS_POLICY: str = "last_write_wins"

    # Create tables on startup (no migrations tool)
    DB_BOOTSTRAP: bool = True

    # Optional admin account created on startup
    SEED_ADMIN_EMAIL: Optional[str] = None
    SEED_ADMIN_PASSWORD: Optional[str] = None

    @property
    def database_url_fixed(self) -> str:
        """Fix Render's postgres:// to postgresql:// for SQLAlchemy"""
        url = self.DATABASE_URL
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url

    @property
    def cors_origins_list(self) -> list:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def team_progress_is_authoritative(self) -> bool:
        return self.PROGRESS_POLICY.strip().lower() == "team_authoritative"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
