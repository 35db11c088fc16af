import json

import pytest

from backend.pestalert.config import Settings, load_settings

ENV_VARS = [
    "PESTALERT_CONFIG_PATH", "OPENEPI_BASE_URL", "OPENEPI_TIMEOUT", "OPENWEATHERMAP_API_KEY", "WEATHERAPI_KEY",
    "PESTALERT_DATABASE_URL", "PESTALERT_OUTBOX_DIR", "PESTALERT_WEBHOOK_URL", "PESTALERT_GENERAL_SWEEP_HOURS",
    "PESTALERT_CRITICAL_SWEEP_HOURS", "PESTALERT_DIGEST_HOUR_UTC", "PESTALERT_COOLDOWN_HOURS", "PESTALERT_RUN_ON_START",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadSettings:
    def test_defaults(self, clean_env):
        settings = load_settings()
        assert settings.scheduler.general_interval_hours == 6
        assert settings.scheduler.critical_interval_hours == 2
        assert settings.scheduler.digest_hour_utc == 7
        assert settings.scheduler.cooldown_hours == 6
        assert settings.consensus.primary_weight == 0.4
        assert settings.provider("openepi").primary
        assert not settings.provider("weatherapi").enabled

    def test_env_overrides(self, clean_env):
        clean_env.setenv("OPENEPI_BASE_URL", "http://localhost:9000")
        clean_env.setenv("OPENEPI_TIMEOUT", "20000")
        clean_env.setenv("WEATHERAPI_KEY", "secret")
        clean_env.setenv("PESTALERT_COOLDOWN_HOURS", "12")
        clean_env.setenv("PESTALERT_RUN_ON_START", "yes")
        settings = load_settings()
        assert settings.provider("openepi").base_url == "http://localhost:9000"
        assert settings.provider("openepi").timeout_s == 20.0
        assert settings.provider("weatherapi").enabled
        assert settings.scheduler.cooldown_hours == 12.0
        assert settings.scheduler.run_on_start is True

    def test_json_file_then_env(self, clean_env, tmp_path):
        path = tmp_path / "pestalert.json"
        path.write_text(json.dumps({
            "risk": {"critical_threshold": 0.9},
            "scheduler": {"general_pause_s": 0.2, "cooldown_hours": 3},
        }))
        clean_env.setenv("PESTALERT_CONFIG_PATH", str(path))
        clean_env.setenv("PESTALERT_COOLDOWN_HOURS", "4")
        settings = load_settings()
        assert settings.risk.critical_threshold == 0.9
        assert settings.risk.high_threshold == 0.65
        assert settings.scheduler.general_pause_s == 0.2
        assert settings.scheduler.cooldown_hours == 4.0

    def test_exactly_one_primary(self):
        providers = [p.model_copy(update={"primary": False}) for p in Settings().providers]
        with pytest.raises(ValueError):
            Settings(providers=providers)
