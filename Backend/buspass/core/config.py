from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application configuration settings loaded from .env file"""

    # Application
    APP_NAME: str = "BusPass Booking Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Security
    SECRET_KEY: str  # Required - no default for security
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Super Admin credentials (loaded from .env)
    ADMIN_USERNAME: str = "superadmin"
    ADMIN_PASSWORD: str

    # Database
    DATABASE_URL: str = "sqlite:///./buspass.db"
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for a pooled connection
    DB_CONNECT_TIMEOUT: int = 10  # Seconds - driver connect timeout

    # Journey search
    DEFAULT_AVERAGE_STOP_TIME: int = 10  # Minutes per stop-segment when route has none
    SEARCH_PAGE_SIZE: int = 5  # Matches the booking UI page size
    SEARCH_READ_RETRIES: int = 2  # Extra attempts for transient read failures

    # Admin listings
    ADMIN_PAGE_SIZE: int = 10

    # Booking codes and pass numbers
    UNIQUE_CODE_ATTEMPTS: int = 5  # Inserts retried with a fresh code on collision

    # Pass applications
    OTP_LENGTH: int = 6
    OTP_TTL_MINUTES: int = 10

    # CORS
    CORS_ORIGINS: str = "*"

    # Logging
    LOG_DIR: str = "logs"

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert comma-separated CORS origins to list"""
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


settings = Settings()
