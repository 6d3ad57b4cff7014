from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    ENV: str = "prod"

    DATABASE_URL: str

    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT_SECONDS: int = 30
    DB_POOL_RECYCLE_SECONDS: int = 1800
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    # Tokens are minted by the external identity provider
    AUTH_JWT_SECRET: str
    AUTH_JWT_AUDIENCE: str | None = "authenticated"

    ALLOWED_HOSTS: str = "localhost,127.0.0.1"
    SECURITY_HEADERS_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"

    # Payment processor
    STRIPE_SECRET_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None
    STRIPE_WEBHOOK_MAX_AGE_SECONDS: int = 300
    STRIPE_CURRENCY: str = "usd"
    APP_BASE_URL: str = "http://localhost:3000"
    CHECKOUT_SUCCESS_PATH: str = "/payment/success"
    CHECKOUT_CANCEL_PATH: str = "/payment/cancel"

    # Advertising (pay-per-day)
    ADS_DAILY_RATE_CENTS: int = 500
    ADS_MEMBER_DISCOUNT_PERCENT: float = 5.0
    ADS_MAX_DAYS: int = 365

    # Calendar used for day arithmetic on campaigns and memberships
    BILLING_TIMEZONE: str = "UTC"

settings = Settings()
