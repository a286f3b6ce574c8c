from dataclasses import FrozenInstanceError

import pytest

from food_service.config import Settings, load_settings


def test_defaults(monkeypatch) -> None:
    for name in (
        "DATABASE_URL",
        "DELIVERY_BASE_FEE",
        "RATE_PER_KM",
        "DRIVER_PUSH_RADIUS_KM",
        "LOCATION_FRESHNESS_SECONDS",
        "DEFAULT_LANGUAGE",
        "LOGS_CHANNEL_ID",
    ):
        monkeypatch.delenv(name, raising=False)

    loaded = load_settings()

    assert loaded.base_fee == 5000
    assert loaded.rate_per_km == 4000
    assert loaded.driver_push_radius_km == 5.0
    assert loaded.location_freshness_seconds == 300
    assert loaded.default_language == "uz"
    assert loaded.logs_channel_id is None
    assert loaded.database_url.startswith("postgresql+asyncpg://")


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("DELIVERY_BASE_FEE", "0")
    monkeypatch.setenv("RATE_PER_KM", "3500")
    monkeypatch.setenv("DRIVER_PUSH_RADIUS_KM", "7.5")
    monkeypatch.setenv("DEFAULT_LANGUAGE", "RU")
    monkeypatch.setenv("LOGS_CHANNEL_ID", "-100123")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    loaded = load_settings()

    assert loaded.base_fee == 0
    assert loaded.rate_per_km == 3500
    assert loaded.driver_push_radius_km == 7.5
    assert loaded.default_language == "ru"
    assert loaded.logs_channel_id == -100123
    assert loaded.log_level == "DEBUG"


def test_invalid_values_fall_back(monkeypatch) -> None:
    monkeypatch.setenv("RATE_PER_KM", "-1")
    monkeypatch.setenv("DRIVER_PUSH_RADIUS_KM", "far")
    monkeypatch.setenv("DEFAULT_LANGUAGE", "de")
    monkeypatch.setenv("ALERTS_CHANNEL_ID", "alerts")

    loaded = load_settings()

    assert loaded.rate_per_km == 4000
    assert loaded.driver_push_radius_km == 5.0
    assert loaded.default_language == "uz"
    assert loaded.alerts_channel_id is None


def test_settings_are_frozen() -> None:
    settings = Settings()
    with pytest.raises(FrozenInstanceError):
        settings.base_fee = 1  # type: ignore[misc]
