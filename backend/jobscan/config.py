"""Application configuration. All sensitive config from .env."""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """App settings from environment."""

    # Database - default SQLite for easy local dev; use DATABASE_URL for PostgreSQL
    database_url: str = "sqlite:///./jobscan.db"

    # Set when DATABASE_URL points at a transaction-mode pooler (PgBouncer); disables prepared statements
    db_transaction_pooler: bool = False

    # SQLAlchemy pooling (Postgres only)
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout_s: int = 30
    db_pool_recycle_s: int = 1800

    # SQLite concurrency tuning (used when DATABASE_URL starts with sqlite://)
    sqlite_busy_timeout_ms: int = 5000

    # Google OAuth client used for the Gmail connection (authorization code + refresh grants)
    google_client_id: str = ""
    google_client_secret: str = ""
    google_token_url: str = "https://oauth2.googleapis.com/token"
    google_auth_url: str = "https://accounts.google.com/o/oauth2/v2/auth"
    # e.g. http://localhost:8000/api/gmail/callback; must be registered in Google Cloud
    gmail_oauth_redirect_uri: Optional[str] = None
    # Where the browser lands after the Gmail OAuth callback
    frontend_url: str = "http://localhost:5173"

    # Refresh the stored access token when it has less than this many seconds left
    token_refresh_margin_s: int = 300

    # Timeout for every outbound call (token endpoint, Gmail, OpenAI)
    http_timeout_s: float = 30.0

    # Gmail scan: fixed relevance filter and per-cycle result cap (no further pagination)
    gmail_scan_query: str = (
        "in:inbox (job OR application OR interview OR offer OR hiring OR position OR career OR opportunity)"
    )
    gmail_scan_max_results: int = 50

    # AI - set OPENAI_API_KEY for OpenAI classification
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.3
    classification_max_body_chars: int = 4000
    # Strict cutoff: a verdict must be job-related AND above this to create a job entry
    confidence_threshold: float = 0.7

    # When true, a qualifying message for an existing (company, position) updates that
    # entry instead of inserting a new one.
    job_entry_merge_duplicates: bool = False

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Redis (for Celery and the cross-worker scan lock)
    redis_url: str = "redis://localhost:6379/0"

    # Celery
    celery_broker_url: Optional[str] = None  # defaults to redis_url if not set
    # Periodic scan of every connected owner (0 disables the beat entry)
    scan_all_interval_s: int = 15 * 60
    # Upper bound on how long a scan may hold the per-owner Redis lock
    scan_lock_timeout_s: int = 15 * 60

    # Auth - JWT or API key resolve the current owner
    secret_key: str = ""
    jwt_algorithm: str = "HS256"
    api_key_header: str = "X-API-Key"
    api_key: str = ""
    api_key_user_id: Optional[int] = None

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def celery_broker(self) -> str:
        return self.celery_broker_url or self.redis_url


settings = Settings()
