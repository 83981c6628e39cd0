from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Library Circulation API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://postgres:postgres@db:5432/library_db"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Circulation policy
    PENALTY_DAILY_FEE: Decimal = Decimal("0.50")
    SHELF_CAPACITY: int = 50

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


settings = Settings()
