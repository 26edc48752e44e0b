"""Tests for building ProxySettings from config and environment."""

import pytest
import yaml

from nim_proxy.core import ConfigurationError, ProxySettings, TokenPolicy, load_settings
from nim_proxy.core.settings import _parse_bool


class TestFromSources:
    """Tests for ProxySettings.from_sources."""

    def test_defaults_from_empty_sources(self):
        settings = ProxySettings.from_sources({}, {})
        assert settings.api_base == "https://integrate.api.nvidia.com/v1"
        assert settings.min_tokens == 1024
        assert settings.max_tokens == 16384
        assert settings.token_policy is TokenPolicy.CLAMP
        assert settings.default_temperature == 0.6
        assert settings.request_timeout == 120.0
        assert settings.max_retries == 2
        assert settings.retry_delay == 1.5
        assert settings.max_body_bytes == 50 * 1024 * 1024
        assert settings.port == 3000
        assert settings.show_reasoning is False
        assert settings.enable_thinking is False
        assert settings.system_prompt is None
        assert settings.alias_unversioned_route is True

    def test_reads_config_sections(self):
        config = {
            "upstream": {"api_base": "http://nim.local/v1", "max_retries": 5},
            "tokens": {"policy": "override", "min_tokens": 10, "max_tokens": 100, "override": 64},
            "generation": {"show_reasoning": True, "system_prompt": "Be brief."},
            "server": {"port": 8080},
            "model_mapping": {"gpt-4o": "deepseek-ai/deepseek-v3.1"},
        }
        settings = ProxySettings.from_sources(config, {})
        assert settings.api_base == "http://nim.local/v1"
        assert settings.max_retries == 5
        assert settings.token_policy is TokenPolicy.OVERRIDE
        assert settings.override_tokens == 64
        assert settings.show_reasoning is True
        assert settings.system_prompt == "Be brief."
        assert settings.port == 8080
        assert dict(settings.model_mapping) == {"gpt-4o": "deepseek-ai/deepseek-v3.1"}

    def test_environment_overrides_config(self):
        config = {"tokens": {"min_tokens": 10, "max_tokens": 100}, "generation": {"show_reasoning": False}}
        env = {
            "NIM_MIN_TOKENS": "20",
            "NIM_SHOW_REASONING": "true",
            "NIM_API_KEY": "secret",
            "PORT": "4000",
        }
        settings = ProxySettings.from_sources(config, env)
        assert settings.min_tokens == 20
        assert settings.max_tokens == 100
        assert settings.show_reasoning is True
        assert settings.api_key == "secret"
        assert settings.port == 4000

    def test_proxy_port_variable_wins_over_port(self):
        settings = ProxySettings.from_sources({}, {"PORT": "4000", "NIM_PROXY_PORT": "5000"})
        assert settings.port == 5000

    def test_empty_env_value_falls_back_to_config(self):
        settings = ProxySettings.from_sources({"tokens": {"min_tokens": 10}}, {"NIM_MIN_TOKENS": ""})
        assert settings.min_tokens == 10

    def test_override_defaults_to_ceiling(self):
        settings = ProxySettings.from_sources({}, {"NIM_TOKEN_POLICY": "OVERRIDE"})
        assert settings.token_policy is TokenPolicy.OVERRIDE
        assert settings.override_tokens == settings.max_tokens

    def test_cors_origins_default_to_any(self):
        assert ProxySettings.from_sources({}, {}).cors_origins == ("*",)

    def test_cors_origins_from_config_and_env(self):
        config = {"server": {"cors_origins": ["http://a.example"]}}
        assert ProxySettings.from_sources(config, {}).cors_origins == ("http://a.example",)
        env = {"NIM_CORS_ORIGINS": "http://b.example, http://c.example"}
        settings = ProxySettings.from_sources(config, env)
        assert settings.cors_origins == ("http://b.example", "http://c.example")

    def test_chat_completions_url(self):
        settings = ProxySettings(api_base="http://nim.local/v1/")
        assert settings.chat_completions_url == "http://nim.local/v1/chat/completions"

    def test_settings_are_immutable(self):
        settings = ProxySettings()
        with pytest.raises(AttributeError):
            settings.max_tokens = 1  # type: ignore[misc]
        with pytest.raises(TypeError):
            settings.model_mapping["x"] = "y"  # type: ignore[index]


class TestValidation:
    """Invalid settings fail at startup."""

    def test_non_numeric_value(self):
        with pytest.raises(ConfigurationError, match="min_tokens"):
            ProxySettings.from_sources({}, {"NIM_MIN_TOKENS": "lots"})

    def test_floor_above_ceiling(self):
        with pytest.raises(ConfigurationError, match="exceeds"):
            ProxySettings.from_sources({}, {"NIM_MIN_TOKENS": "500", "NIM_MAX_TOKENS": "100"})

    def test_unknown_policy(self):
        with pytest.raises(ConfigurationError, match="Unknown token policy"):
            ProxySettings.from_sources({}, {"NIM_TOKEN_POLICY": "maximize"})

    def test_negative_retries(self):
        with pytest.raises(ConfigurationError):
            ProxySettings(max_retries=-1)

    def test_non_mapping_section(self):
        with pytest.raises(ConfigurationError, match="tokens"):
            ProxySettings.from_sources({"tokens": ["clamp"]}, {})


class TestParseBool:
    @pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes", "on", True])
    def test_truthy(self, value):
        assert _parse_bool(value) is True

    @pytest.mark.parametrize("value", ["0", "false", "no", "off", "", False])
    def test_falsy(self, value):
        assert _parse_bool(value) is False


class TestLoadSettings:
    """Tests for load_settings with a config file and a .env beside it."""

    def test_loads_file_env_and_process_env(self, tmp_path, monkeypatch):
        for name in ("NIM_API_KEY", "NIM_MAX_TOKENS", "NIM_MIN_TOKENS"):
            monkeypatch.delenv(name, raising=False)
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            yaml.safe_dump({"tokens": {"min_tokens": 16, "max_tokens": 256}}),
            encoding="utf-8",
        )
        (tmp_path / ".env").write_text("NIM_API_KEY=from-dotenv\n", encoding="utf-8")
        monkeypatch.setenv("NIM_MAX_TOKENS", "512")

        settings = load_settings(str(config_path))
        assert settings.api_key == "from-dotenv"
        assert settings.min_tokens == 16
        assert settings.max_tokens == 512

    def test_default_config_has_model_table(self, monkeypatch):
        monkeypatch.delenv("NIM_PROXY_CONFIG", raising=False)
        settings = load_settings()
        assert settings.model_mapping["gpt-4o"] == "deepseek-ai/deepseek-v3.1"
        assert "gpt-3.5-turbo" in settings.model_mapping
