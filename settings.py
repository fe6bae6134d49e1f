from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # `.env.prod` takes priority over `.env`
        env_file=(".env", ".env.prod")
    )

    app_name: str = "Kaamwala"

    # Entity store backend, chosen once at process start
    storage_backend: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite:///./kaamwala.db"
    seed_demo_data: bool = True

    # Wallet pricing (whole rupees)
    unlock_price: int = 20
    boost_price: int = 100
    boost_duration_days: int = 30

    # Characters of a locked job's description shown to workers
    locked_preview_chars: int = 100

    cors_origins: List[str] = [
        "http://localhost",
        "http://localhost:5000",
        "http://127.0.0.1",
        "http://127.0.0.1:5000",
    ]

    log_format: Literal["json", "console"] = "json"
    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
