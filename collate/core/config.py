from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "collate"
    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8081"

    DATABASE_URL: str

    # Listing engine
    COLLATE_DEFAULT_LIMIT: int = 10
    COLLATE_EXPORT_LIMIT: int = 1_000_000
    COLLATE_SEARCH_NORMALIZE: bool = True  # register normalize() on SQLite connections

    # Demo "people" listing
    DEMO_SEED_ENABLED: bool = True
    DEMO_SEED_COUNT: int = 100

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

settings = Settings()
