"""
Tests for LocalflowSettings.
"""

import pytest
from pydantic import ValidationError

from localflow.settings import LocalflowSettings, clear_settings_cache, get_settings


class TestLocalflowSettings:
    def test_defaults(self):
        s = LocalflowSettings(_env_file=None)
        assert s.runtime == "docker"
        assert s.port == 8080
        assert s.api_prefix == "/api/v1"
        assert s.unit_name_prefix == "localflow"
        assert s.max_concurrent_units is None
        assert s.require_healthy_runtime is True

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("LOCALFLOW_RUNTIME", "local")
        monkeypatch.setenv("LOCALFLOW_PORT", "9999")
        s = LocalflowSettings(_env_file=None)
        assert s.runtime == "local"
        assert s.port == 9999

    def test_unknown_runtime_rejected(self):
        with pytest.raises(ValidationError):
            LocalflowSettings(runtime="kubernetes")

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValidationError):
            LocalflowSettings(max_concurrent_units=0)

    def test_get_settings_cached(self, monkeypatch):
        first = get_settings()
        assert get_settings() is first

        monkeypatch.setenv("LOCALFLOW_RUNTIME", "stub")
        assert get_settings().runtime == first.runtime
        clear_settings_cache()
        assert get_settings().runtime == "stub"
