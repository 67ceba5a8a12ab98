from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    PORT: int = 3002
    DB_PATH: str = "data/scene.db"
    LOG_LEVEL: str = "info"

    USER_AGENT: str = "Mozilla/5.0 (compatible; RestaurantScene/1.0)"
    HTTP_TIMEOUT_S: float = 10.0
    # Minimum pause before hitting a restaurant's own site vs. a provider API
    SITE_FETCH_DELAY_S: float = 0.8
    PROVIDER_SUBMIT_DELAY_S: float = 0.2


settings = Settings()
