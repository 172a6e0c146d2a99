from __future__ import annotations

import pytest

from formation.core.config import AppEnv, Settings, load_settings

_VARS = (
    "APP_ENV",
    "LOG_LEVEL",
    "LOG_JSON",
    "PORT",
    "DATABASE_URL",
    "REDIS_URL",
    "PROGRESS_CACHE_TTL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


# ---- valid values ----


def test_load_settings_defaults() -> None:
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.log_json is False
    assert settings.port == 8000
    assert settings.database_url is None
    assert settings.redis_url is None
    assert settings.progress_cache_ttl == 300


def test_load_settings_respects_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("LOG_LEVEL", "error")
    monkeypatch.setenv("LOG_JSON", "true")
    monkeypatch.setenv("PORT", "9100")
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@db/formation")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    monkeypatch.setenv("PROGRESS_CACHE_TTL", "30")

    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "error"
    assert settings.log_json is True
    assert settings.port == 9100
    assert settings.database_url == "postgresql+asyncpg://u:p@db/formation"
    assert settings.redis_url == "redis://cache:6379/0"
    assert settings.progress_cache_ttl == 30


def test_load_settings_normalizes_case_and_whitespace(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "  PROD ")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("LOG_JSON", " Yes ")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "debug"
    assert settings.log_json is True


def test_blank_urls_mean_not_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "   ")
    monkeypatch.setenv("REDIS_URL", "")
    settings = load_settings()
    assert settings.database_url is None
    assert settings.redis_url is None


def test_zero_cache_ttl_is_allowed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROGRESS_CACHE_TTL", "0")
    assert load_settings().progress_cache_ttl == 0


# ---- invalid values ----


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("APP_ENV", "staging", "APP_ENV must be"),
        ("APP_ENV", "", "APP_ENV must be"),
        ("LOG_LEVEL", "verbose", "LOG_LEVEL must be"),
        ("LOG_JSON", "maybe", "LOG_JSON must be"),
        ("PORT", "eighty", "PORT must be an integer"),
        ("PROGRESS_CACHE_TTL", "5m", "PROGRESS_CACHE_TTL must be an integer"),
        ("PROGRESS_CACHE_TTL", "-1", "PROGRESS_CACHE_TTL must be >= 0"),
    ],
)
def test_load_settings_rejects_invalid_value(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str, message: str
) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=message):
        load_settings()


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        redis_url=None,
    )


@pytest.mark.parametrize("app_env", ["dev", "test", "prod"])
def test_settings_env_flags(app_env: AppEnv) -> None:
    s = _make_settings(app_env)
    assert (s.is_dev, s.is_test, s.is_prod) == (
        app_env == "dev",
        app_env == "test",
        app_env == "prod",
    )


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.app_env = "prod"  # type: ignore[misc]
