"""
Unit tests for the static environment-backed Config.
"""

import pytest

from src.core.config.config import Config, Environment


class TestEnvironment:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("production", Environment.PRODUCTION),
            ("Testing", Environment.TESTING),
            ("staging", Environment.STAGING),
            ("nonsense", Environment.DEVELOPMENT),
        ],
    )
    def test_from_string(self, raw, expected):
        assert Environment.from_string(raw) is expected

    def test_loaded_environment_is_normalized(self):
        assert Config.ENVIRONMENT in {env.value for env in Environment}
        assert Config.is_production() is (Config.ENVIRONMENT == "production")


class TestConfigSummary:
    def test_summary_never_exposes_credentials(self, monkeypatch):
        monkeypatch.setattr(Config, "ENGINE_API_KEY_ID", "key-id")
        monkeypatch.setattr(Config, "ENGINE_API_KEY_SECRET", "very-secret")

        summary = Config.get_config_summary()

        assert summary["engine_api_key_set"] is True
        assert "very-secret" not in summary.values()
        assert "key-id" not in summary.values()
        assert summary["server_version"] == Config.SERVER_VERSION

    def test_summary_reports_missing_credentials(self, monkeypatch):
        monkeypatch.setattr(Config, "ENGINE_API_KEY_SECRET", "")
        assert Config.get_config_summary()["engine_api_key_set"] is False
