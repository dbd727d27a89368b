from enum import StrEnum

from pydantic_settings import BaseSettings


class Environment(StrEnum):
    development = "development"
    production = "production"


class Settings(BaseSettings):
    ENV: Environment = Environment.development
    LOG_LEVEL: str = "INFO"

    # GP51 web API
    GP51_BASE_URL: str = "https://www.gps51.com"
    GP51_USERNAME: str = ""
    GP51_PASSWORD: str = ""
    GP51_GLOBAL_TOKEN: str = ""

    # Supabase project
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: str = ""

    OFFLINE_SESSION_DIR: str = ".gp51link/offline"

    # Rate limiting
    MIN_REQUEST_INTERVAL: float = 1.0
    MAX_RETRIES: int = 3
    BASE_DELAY: float = 3.0
    BACKOFF_MULTIPLIER: float = 1.5
    MAX_DELAY: float = 30.0
    CIRCUIT_BREAKER_THRESHOLD: int = 5

    HEALTH_CHECK_INTERVAL: float = 60.0

    HTTP_HOST: str = "0.0.0.0"
    HTTP_PORT: int = 8080

    @property
    def is_production(self) -> bool:
        return self.ENV == Environment.production


settings = Settings()
