# app/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Auto-Sell Agent"
    APP_BASE_URL: str = "http://localhost:3000"

    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "auto_sell_agent"

    BACKEND_HOST: str = "0.0.0.0"
    BACKEND_PORT: int = 8000

    # Agent timing
    MONITORING_INTERVAL_SECONDS: int = 60
    TWO_STEP_ORDER_TTL_HOURS: int = 0  # 0 disables expiry of two-step orders
    EXPIRY_SWEEP_CRON: str = "0 * *"  # minute hour day_of_week

    # Market data / simulated broker
    MARKET_DATA_PROVIDER: str = "simulated"  # simulated | yfinance
    BROKER_FAILURE_RATE: float = 0.0
    BROKER_PARTIAL_FILL_RATE: float = 0.1
    BROKER_MAX_SLIPPAGE_PCT: float = 1.0

    # Notifications
    EMAIL_BACKEND: str = "outbox"  # outbox | smtp
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 465
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    EMAIL_FROM: str = "alerts@localhost"

    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    LOG_DIR: str = "logs"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
