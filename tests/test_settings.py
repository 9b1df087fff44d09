import pytest
from pydantic import ValidationError

from splitstats.core.settings import Settings
from splitstats.services.engine import EngineConfig


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.result_cache_expiry_seconds == 3600
    assert settings.lookup_concurrency == 5
    assert settings.excluded_ips == []


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SPLITSTATS_LOOKUP_CONCURRENCY", "9")
    monkeypatch.setenv("SPLITSTATS_EXCLUDED_IPS", '["10.0.0.1"]')
    monkeypatch.setenv("SPLITSTATS_RESULT_CACHE_EXPIRY_SECONDS", "60")

    config = EngineConfig.from_settings(Settings(_env_file=None))
    assert config.lookup_concurrency == 9
    assert config.excluded_ips == ["10.0.0.1"]
    assert config.cache_expiry_time == 60


def test_lookup_concurrency_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, lookup_concurrency=0)
