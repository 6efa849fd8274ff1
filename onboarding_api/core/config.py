"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Proxy/Load Balancer Settings
    # Set to True when running behind nginx/Cloudflare to trust X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = False

    # Database
    DATABASE_URL: str

    # HR session token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 8
    HR_SESSION_COOKIE_NAME: str = "hr_session"

    # HR admin allowlist (comma-separated emails)
    ADMIN_EMAILS: str = ""

    # Employee onboarding session
    ONBOARDING_SESSION_COOKIE_NAME: str = "onboarding_session"
    INVITE_EXPIRES_HOURS: int = 72
    OTP_EXPIRES_MINUTES: int = 10
    OTP_RESEND_INTERVAL_SECONDS: int = 60
    OTP_MAX_ATTEMPTS: int = 3
    OTP_LOCK_MINUTES: int = 15

    # HMAC key for invite token / OTP hashes
    TOKEN_HASH_KEY: str = ""

    # Field-level encryption for form payloads (Fernet key)
    DATA_ENCRYPTION_KEY: str = ""
    DATA_ENCRYPTION_KEY_PREVIOUS: str = ""  # Set during rotation, clear after

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Frontend (invite links in emails)
    FRONTEND_URL: str = "http://localhost:3000"

    # File storage
    STORAGE_BACKEND: str = "local"  # local | s3
    LOCAL_STORAGE_PATH: str = "/tmp/onboarding-files"
    S3_BUCKET: str = "onboarding-files"
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: str = ""
    S3_URL_STYLE: str = ""  # path | virtual
    S3_PUBLIC_BASE_URL: str = ""
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    SIGNED_URL_EXPIRY_SECONDS: int = 3600
    MAX_UPLOAD_BYTES: int = 20 * 1024 * 1024

    # Bot verification (Cloudflare Turnstile)
    TURNSTILE_ENABLED: bool = True
    TURNSTILE_SECRET_KEY: str = ""
    TURNSTILE_VERIFY_URL: str = "https://challenges.cloudflare.com/turnstile/v0/siteverify"

    # Reverse geocoding (Nominatim-compatible)
    GEOCODER_URL: str = "https://nominatim.openstreetmap.org/reverse"
    GEOCODER_USER_AGENT: str = "onboarding-api/0.1"
    GEOCODER_TIMEOUT_SECONDS: float = 5.0

    # Email (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "HR Onboarding <noreply@example.com>"

    # Worker
    WORKER_POLL_INTERVAL: int = 5
    WORKER_BATCH_SIZE: int = 10

    # Rate limits (requests per minute); counters live in Redis when REDIS_URL is set
    REDIS_URL: str = ""
    RATE_LIMIT_API: int = 120
    RATE_LIMIT_PUBLIC_READ: int = 60
    RATE_LIMIT_PUBLIC_SUBMIT: int = 10
    RATE_LIMIT_INVITE_VERIFY: int = 5

    # Sentry (optional)
    SENTRY_DSN: str = ""

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def admin_emails_list(self) -> list[str]:
        """Parse admin allowlist from comma-separated string."""
        return [e.strip().lower() for e in self.ADMIN_EMAILS.split(",") if e.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Return list of valid secrets for verification (current + previous)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies in non-dev environments."""
        return self.ENV != "dev"


settings = Settings()
