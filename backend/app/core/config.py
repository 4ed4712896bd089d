from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    ENV: str = "prod"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str

    JWT_SECRET: str
    JWT_ACCESS_MINUTES: int = 60
    JWT_REFRESH_DAYS: int = 30

    LOGIN_KEY_PEPPER: str = "CHANGE_ME"
    LOGIN_MAX_FAILED_ATTEMPTS: int = 8
    LOGIN_ATTEMPTS_WINDOW_MINUTES: int = 15
    AUTH_LOGIN_ATTEMPTS_RETENTION_DAYS: int = 30
    AUTH_SESSIONS_RETENTION_DAYS: int = 30

    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT_SECONDS: int = 30
    DB_POOL_RECYCLE_SECONDS: int = 1800

    ALLOWED_HOSTS: str = "localhost,127.0.0.1"
    SECURITY_HEADERS_ENABLED: bool = True

    # Paywall
    TRIAL_DAYS: int = 14
    SUBSCRIPTION_MISSING_POLICY: str = "deny"  # deny|provision_trial
    COUPON_ENFORCE_EXPIRY: bool = True
    COUPON_CODE_MAX_LENGTH: int = 64

settings = Settings()
