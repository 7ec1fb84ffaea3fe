from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "SafariPlus API"
    LOG_LEVEL: str = "INFO"
    # Comma-separated origins for CORS. If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""
    APP_PUBLIC_URL: str = "http://localhost:3000"  # gateway callbacks land on {APP_PUBLIC_URL}/booking/confirmation/{id}

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    # Booking / pricing
    SERVICE_FEE_PERCENT: float = 5.0
    CHILD_PRICE_PERCENT: float = 70.0  # used when a tour has no explicit child price
    DEFAULT_DEPOSIT_PERCENT: float = 30.0
    BOOKING_RATE_LIMIT_PER_MINUTE: int = 10
    PAYMENT_RATE_LIMIT_PER_MINUTE: int = 5

    # Payments
    PAYMENT_IN_PROGRESS_MINUTES: int = 30
    PAYMENT_RECONCILE_AFTER_MINUTES: int = 60
    GATEWAY_TIMEOUT: int = 25

    # Pesapal v3
    PESAPAL_API_URL: str = "https://cybqa.pesapal.com/pesapalv3"
    PESAPAL_CONSUMER_KEY: str = ""
    PESAPAL_CONSUMER_SECRET: str = ""
    PESAPAL_IPN_URL: str = ""
    PESAPAL_IPN_ID: str = ""
    PESAPAL_COUNTRY_CODE: str = "KE"
    PESAPAL_DEV_MODE: bool = False  # If True, charge PESAPAL_DEV_AMOUNT PESAPAL_DEV_CURRENCY instead of the real amount
    PESAPAL_DEV_AMOUNT: float = 1
    PESAPAL_DEV_CURRENCY: str = "KES"

    # Flutterwave v3
    FLUTTERWAVE_API_URL: str = "https://api.flutterwave.com"
    FLUTTERWAVE_PUBLIC_KEY: str = ""
    FLUTTERWAVE_SECRET_KEY: str = ""
    FLUTTERWAVE_WEBHOOK_SECRET: str = ""
    FLUTTERWAVE_DEV_MODE: bool = False
    FLUTTERWAVE_DEV_AMOUNT: float = 100
    FLUTTERWAVE_DEV_CURRENCY: str = "NGN"

    # Email
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "bookings@safariplus.local"
    EMAIL_ENABLED: bool = True

    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = ""


settings = Settings()
