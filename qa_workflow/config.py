"""
Configuration read from the environment.

Usage:
    from qa_workflow.config import settings

    settings.database_url
    settings.translation_languages
"""
import os
from typing import List


def _split(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings:
    """Settings shared by the database layer, the controller and the API."""

    def __init__(self):
        self.env = os.getenv("APP_ENV", "development")

        # Use PostgreSQL in production (from DATABASE_URL env var), SQLite locally
        database_url = os.getenv("DATABASE_URL", "sqlite:///./qa_workflow.db")
        # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)
        self.database_url = database_url

        self.source_language = os.getenv("QA_SOURCE_LANGUAGE", "en")
        self.languages = _split(os.getenv("QA_LANGUAGES", "en,es,de,fr,sv"))
        self.locale = os.getenv("QA_LOCALE", "en")
        self.log_level = os.getenv("LOG_LEVEL", "")

    @property
    def translation_languages(self) -> List[str]:
        """Languages an item can be translated into (source language excluded)."""
        return [lang for lang in self.languages if lang != self.source_language]

    @property
    def is_production(self) -> bool:
        return self.env == "production"


settings = Settings()
