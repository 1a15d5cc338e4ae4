from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://localhost:5432/tally"
    default_tz: str = "UTC"  # "today" for provisional completions
    kernel_api_key: str | None = None
    log_level: str = "INFO"

    # First evaluation pass after startup has no prior results to diff against.
    # When enabled, every completion found on that pass is reported as new.
    notify_on_first_pass: bool = False

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
