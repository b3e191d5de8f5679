# config.py
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    database_url: str
    google_api_key: str = ""
    gemini_model: str = ""
    embedding_model: str = "models/text-embedding-004"
    app_env: str = "development"
    analytics_tz: Optional[str] = None
    log_level: str = "INFO"
    cors_origins: tuple = ("*",)

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


def load_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set in .env")

    origins = (os.getenv("CORS_ORIGINS") or "*").split(",")

    return Settings(
        database_url=database_url,
        google_api_key=(os.getenv("GOOGLE_API_KEY") or "").strip(),
        gemini_model=(os.getenv("GEMINI_MODEL") or "").strip(),
        embedding_model=(os.getenv("EMBEDDING_MODEL") or "models/text-embedding-004").strip(),
        app_env=(os.getenv("APP_ENV") or "development").strip(),
        analytics_tz=(os.getenv("ANALYTICS_TZ") or "").strip() or None,
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        cors_origins=tuple(o.strip() for o in origins if o.strip()),
    )
