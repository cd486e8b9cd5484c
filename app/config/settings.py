from datetime import timezone

from pydantic_settings import BaseSettings

fuso_local = timezone.utc


class Settings(BaseSettings):
    # App
    APP_NAME: str = "I Thought Of You API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./ithoughtofyou.db"

    # JWT
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # Password hashing
    PASSWORD_HASH_ROUNDS: int = 10
    PASSWORD_MIN_LENGTH: int = 6

    # Redis (string vazia = somente armazenamento em memória)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_TIMEOUT: int = 5
    REDIS_MAX_RETRIES: int = 1

    # Password Recovery
    RESET_CODE_LENGTH: int = 6
    RESET_CODE_EXPIRE_MINUTES: int = 10
    RESET_STORE_TTL_SECONDS: int = 3600
    PHONE_GRANT_EXPIRE_MINUTES: int = 10
    RESET_LINK_EXPIRE_MINUTES: int = 60
    RESET_CODE_SUPERSEDES_PREVIOUS: bool = False
    FALLBACK_CLEANUP_INTERVAL_SECONDS: int = 300

    # Deep link aberto pelo app para o fluxo legado
    RESET_LINK_BASE_URL: str = "ithoughtofyou://reset"

    # Normalização de telefone
    DEFAULT_COUNTRY_CODE: str = "1"
    TRUNK_PREFIX: str = "1"

    # Email Settings
    SMTP_HOST: str = "smtp.sendgrid.net"
    SMTP_PORT: int = 587
    SMTP_USER: str = "apikey"
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "noreply@ithoughtofyou.app"
    EMAIL_USE_TLS: bool = True

    # Twilio Verify (OTP por SMS)
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_VERIFY_SERVICE_SID: str = ""
    TWILIO_VERIFY_BASE_URL: str = "https://verify.twilio.com/v2"
    SMS_TIMEOUT_SECONDS: float = 15.0

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = ""

    class Config:
        env_file = ".env"


settings = Settings()
