from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    DEFAULT_TIMEZONE: str = "UTC"
    SLOT_STEP_MINUTES: int = 15
    STORE_TIMEOUT_SECONDS: float = 5.0

    DATA_DIR: str = "./data"
    DIRECTORY_SEED_FILE: str | None = None

    NOTIFY_WEBHOOK_URL: str | None = None
    NOTIFY_TIMEOUT_SECONDS: float = 10.0

    REMINDER_LEAD_HOURS: list[int] = [24, 2]


settings = Settings()
