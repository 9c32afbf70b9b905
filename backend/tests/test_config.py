import pytest

from minidoodle.config import Settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("MIN_SLOT_MINUTES", raising=False)
    monkeypatch.delenv("MAX_SLOT_MINUTES", raising=False)
    s = Settings()
    assert s.MIN_SLOT_MINUTES == 15
    assert s.MAX_SLOT_MINUTES == 480
    assert s.DEFAULT_TIMEZONE == "UTC"


def test_slot_bounds_must_be_ordered(monkeypatch):
    monkeypatch.setenv("MIN_SLOT_MINUTES", "60")
    monkeypatch.setenv("MAX_SLOT_MINUTES", "30")
    with pytest.raises(RuntimeError):
        Settings()


def test_sqlite_refused_outside_dev(monkeypatch):
    monkeypatch.setenv("ENV", "prod")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///prod.db")
    with pytest.raises(RuntimeError):
        Settings()
    monkeypatch.setenv("ALLOW_SQLITE_IN_PROD", "true")
    assert Settings().is_sqlite


def test_postgres_allowed_outside_dev(monkeypatch):
    monkeypatch.setenv("ENV", "prod")
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg2://u:p@db:5432/minidoodle")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
    s = Settings()
    assert not s.is_sqlite
    assert s.cors_origins_list == ["https://a.example", "https://b.example"]
