"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    ENV: str
    APP_VERSION: str
    DATABASE_URL: str
    DB_ECHO: bool
    DB_POOL_SIZE: int
    DB_MAX_OVERFLOW: int
    ALLOW_SQLITE_IN_PROD: bool
    LOG_LEVEL: str
    ALLOW_DEV_CORS: bool
    CORS_ORIGINS: str
    DEFAULT_TIMEZONE: str
    MIN_SLOT_MINUTES: int
    MAX_SLOT_MINUTES: int
    METRICS_ENABLED: bool
    HOST: str
    PORT: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'minidoodle.db'}")
        self.DB_ECHO = _flag("DB_ECHO", "false")
        self.DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
        self.DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
        self.ALLOW_SQLITE_IN_PROD = _flag("ALLOW_SQLITE_IN_PROD", "false")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.ALLOW_DEV_CORS = _flag("ALLOW_DEV_CORS", "true")
        self.CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
        self.DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")
        self.MIN_SLOT_MINUTES = int(os.getenv("MIN_SLOT_MINUTES", "15"))
        self.MAX_SLOT_MINUTES = int(os.getenv("MAX_SLOT_MINUTES", "480"))  # 8 hours
        self.METRICS_ENABLED = _flag("METRICS_ENABLED", "true")
        self.HOST = os.getenv("HOST", "0.0.0.0")
        self.PORT = int(os.getenv("PORT", "8080"))
        self._validate()

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    @property
    def cors_origins_list(self) -> list:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    def _validate(self):
        if self.MIN_SLOT_MINUTES <= 0 or self.MAX_SLOT_MINUTES <= 0:
            raise RuntimeError("MIN_SLOT_MINUTES and MAX_SLOT_MINUTES must be positive")
        if self.MIN_SLOT_MINUTES >= self.MAX_SLOT_MINUTES:
            raise RuntimeError("MIN_SLOT_MINUTES must be lower than MAX_SLOT_MINUTES")
        if self.ENV != "dev" and self.is_sqlite and not self.ALLOW_SQLITE_IN_PROD:
            raise RuntimeError("DATABASE_URL must point to PostgreSQL in non-dev environments")


settings = Settings()
