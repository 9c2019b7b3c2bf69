# tests/test_config.py - Settings validation
import pytest

from config import DEFAULT_SESSION_SECRET, Settings, load_settings
from tests.conftest import TEST_SECRET


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DATABASE_URL", "SESSION_SECRET", "LOG_LEVEL", "CORS_ORIGIN"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_for_test_environment():
    settings = load_settings()
    assert settings.environment == "test"
    assert settings.resolved_backend == "memory"
    assert settings.session_cookie_name == "sid"
    assert settings.rate_limit_window_seconds == 60
    assert settings.login_max_attempts == 5


def test_production_requires_database_url():
    with pytest.raises(SystemExit):
        load_settings(environment="production", storage_backend=None, session_secret=TEST_SECRET)


def test_production_rejects_default_secret():
    with pytest.raises(SystemExit):
        load_settings(
            environment="production",
            database_url="postgresql://app@db/app",
            session_secret=DEFAULT_SESSION_SECRET,
        )


def test_production_defaults_to_sql():
    settings = load_settings(
        environment="production",
        storage_backend=None,
        database_url="postgresql://app@db/app",
        session_secret=TEST_SECRET,
    )
    assert settings.resolved_backend == "sql"
    assert settings.is_production


@pytest.mark.parametrize("url", ["postgresql://app@db/app", "postgres://app@db/app"])
def test_postgres_urls_use_asyncpg(url):
    settings = Settings(database_url=url)
    assert settings.database_url == "postgresql+asyncpg://app@db/app"


def test_blank_database_url_is_unset():
    assert Settings(database_url="  ").database_url is None


def test_sql_backend_needs_database_url():
    with pytest.raises(SystemExit):
        load_settings(storage_backend="sql")


def test_log_level_aliases():
    assert Settings(log_level="WARN").log_level == "warning"
    assert Settings(log_level="Debug").log_level == "debug"
    with pytest.raises(SystemExit):
        load_settings(log_level="verbose")


def test_bcrypt_rounds_range():
    with pytest.raises(SystemExit):
        load_settings(bcrypt_rounds=3)


def test_cors_origins_are_split():
    settings = Settings(cors_origin="https://app.example.com, https://admin.example.com,")
    assert settings.cors_origins == ["https://app.example.com", "https://admin.example.com"]


def test_summary_redacts_database_url():
    summary = Settings(database_url="postgresql://app:secret@db/app").summary()
    assert summary["database_url"] == "[REDACTED]"
    assert "secret" not in str(summary)
    assert Settings().summary()["database_url"] == "Not provided"
