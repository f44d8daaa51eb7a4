import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        token_secret: str,
        token_max_age_minutes: int,
        cors_origins: list[str],
        default_currency: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.token_secret = token_secret
        self.token_max_age_minutes = token_max_age_minutes
        self.cors_origins = cors_origins
        self.default_currency = default_currency


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FITY_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("FITY_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "fity.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("FITY_TIMEZONE", "Africa/Nairobi")
    token_secret = os.getenv(
        "FITY_TOKEN_SECRET",
        "3c1f0a9e57b2d84c6e1a0f2b9d7c45e8a1b3c5d7e9f0a2b4c6d8e0f1a3b5c7d9",
    )
    token_max_age_minutes = int(os.getenv("FITY_TOKEN_MAX_AGE_MINUTES", "15"))
    cors_origins = [
        origin.strip()
        for origin in os.getenv("FITY_CORS_ORIGINS", "http://localhost:5173").split(",")
        if origin.strip()
    ]
    default_currency = os.getenv("FITY_DEFAULT_CURRENCY", "KES").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        token_secret=token_secret,
        token_max_age_minutes=token_max_age_minutes,
        cors_origins=cors_origins,
        default_currency=default_currency,
    )
