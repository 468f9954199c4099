from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./ferry.db"
    DB_ECHO: bool = False

    # Security
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Application
    PROJECT_NAME: str = "Ferry Ticketing Platform"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Canonical timezone for every cutoff computation
    TIMEZONE: str = "Asia/Manila"

    # Booking rules
    BOOKING_CUTOFF_MINUTES: int = 30
    RESCHEDULE_CUTOFF_HOURS: int = 24
    RESCHEDULE_FEE_PERCENT: int = 10
    RESCHEDULE_GCASH_FEE_CENTS: int = 1500
    MAX_PASSENGERS_PER_BOOKING: int = 20

    # Fare defaults used when a route has no active fare rule
    DEFAULT_BASE_FARE_CENTS: int = 55000
    DEFAULT_DISCOUNT_PERCENT: int = 20

    # Fee defaults used when the fee settings row is missing
    ADMIN_FEE_CENTS_PER_PASSENGER: int = 2000
    GCASH_FEE_CENTS: int = 1500

    # Tickets
    TICKET_QR_PREFIX: str = "NIER"
    TICKET_NUMBER_LENGTH: int = 10
    BOOKING_REFERENCE_LENGTH: int = 10

    # Outbound notifications
    NOTIFICATIONS_ENABLED: bool = True
    APP_URL: Optional[str] = None

    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
