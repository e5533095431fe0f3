from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # State file (JSON snapshot of every user, market and trade)
    STATE_FILE: str = "state.json"
    PERSIST_RETRY_ATTEMPTS: int = 3
    PERSIST_RETRY_BACKOFF_SECONDS: float = 0.2

    # Economy
    USER_START_BALANCE: Decimal = Decimal("1000")
    MARKET_CREATION_COST: Decimal = Decimal("50")

    # App
    APP_NAME: str = "Prediction Market"
    DEBUG: bool = False  # Safe default for production; set DEBUG=True in .env for local dev
    LOG_LEVEL: str = "INFO"


settings = Settings()
