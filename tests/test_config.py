import pytest

from studygen.config import PLACEHOLDER_API_KEY, Config, has_api_key

_ENV_VARS = [
    "STUDYGEN_DAILY_TOKEN_LIMIT",
    "STUDYGEN_RATE_LIMITING_ENABLED",
    "STUDYGEN_DATABASE_URL",
    "STUDYGEN_DEFAULT_PROVIDER",
    "STUDYGEN_PROVIDER_PRIORITY",
    "STUDYGEN_OUTPUT_LANGUAGE",
    "ANTHROPIC_API_KEY",
    "ANTHROPIC_MODEL",
    "ANTHROPIC_MAX_TOKENS",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "GEMINI_MAX_TOKENS",
]


@pytest.fixture()
def clean_env(monkeypatch: "pytest.MonkeyPatch") -> "pytest.MonkeyPatch":
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfigFromEnv:
    def test_defaults(self, clean_env: "pytest.MonkeyPatch") -> "None":
        config = Config.from_env()
        assert config.daily_token_limit == 1_000_000
        assert config.rate_limiting_enabled is True
        assert config.database_url == ""
        assert config.default_provider == "anthropic"
        assert config.provider_priority == ("anthropic", "gemini")
        assert config.output_language == "Swedish"
        assert config.anthropic_api_key == ""
        assert config.anthropic_model == "claude-3-5-sonnet-20241022"
        assert config.anthropic_max_tokens == 4000
        assert config.gemini_model == "gemini-2.0-flash-exp"
        assert config.gemini_max_tokens == 8192

    def test_reads_env_vars(self, clean_env: "pytest.MonkeyPatch") -> "None":
        clean_env.setenv("STUDYGEN_DAILY_TOKEN_LIMIT", "5000")
        clean_env.setenv("STUDYGEN_RATE_LIMITING_ENABLED", "false")
        clean_env.setenv("STUDYGEN_DATABASE_URL", "sqlite:///usage.db")
        clean_env.setenv("STUDYGEN_DEFAULT_PROVIDER", "Gemini")
        clean_env.setenv("STUDYGEN_PROVIDER_PRIORITY", "gemini, anthropic")
        clean_env.setenv("STUDYGEN_OUTPUT_LANGUAGE", "English")
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        clean_env.setenv("ANTHROPIC_MAX_TOKENS", "2048")
        clean_env.setenv("GEMINI_API_KEY", "gm-test")
        clean_env.setenv("GEMINI_MODEL", "gemini-1.5-pro")

        config = Config.from_env()
        assert config.daily_token_limit == 5000
        assert config.rate_limiting_enabled is False
        assert config.database_url == "sqlite:///usage.db"
        assert config.default_provider == "gemini"
        assert config.provider_priority == ("gemini", "anthropic")
        assert config.output_language == "English"
        assert config.anthropic_api_key == "sk-ant-test"
        assert config.anthropic_max_tokens == 2048
        assert config.gemini_api_key == "gm-test"
        assert config.gemini_model == "gemini-1.5-pro"

    def test_empty_values_keep_defaults(self, clean_env: "pytest.MonkeyPatch") -> "None":
        clean_env.setenv("STUDYGEN_DAILY_TOKEN_LIMIT", "")
        clean_env.setenv("STUDYGEN_RATE_LIMITING_ENABLED", " ")
        clean_env.setenv("STUDYGEN_PROVIDER_PRIORITY", "")
        config = Config.from_env()
        assert config.daily_token_limit == 1_000_000
        assert config.rate_limiting_enabled is True
        assert config.provider_priority == ("anthropic", "gemini")


class TestProviderEnabled:
    def test_enabled_when_key_set(self) -> "None":
        config = Config(anthropic_api_key="sk-ant", gemini_api_key="gm")
        assert config.anthropic_enabled is True
        assert config.gemini_enabled is True

    def test_disabled_when_key_empty(self) -> "None":
        config = Config()
        assert config.anthropic_enabled is False
        assert config.gemini_enabled is False

    def test_placeholder_key_counts_as_missing(self) -> "None":
        config = Config(anthropic_api_key=PLACEHOLDER_API_KEY)
        assert config.anthropic_enabled is False
        assert has_api_key("   ") is False
