import os
from dataclasses import dataclass, field

# value shipped in sample settings files, never a real key
PLACEHOLDER_API_KEY = "your-api-key-here"


def _env_bool(name: "str", default: "bool") -> "bool":
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: "str", default: "int") -> "int":
    value = os.environ.get(name, "").strip()
    return int(value) if value else default


def _env_list(name: "str", default: "tuple[str, ...]") -> "tuple[str, ...]":
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    return tuple(item.strip().lower() for item in value.split(",") if item.strip())


def has_api_key(api_key: "str") -> "bool":
    return bool(api_key.strip()) and api_key.strip() != PLACEHOLDER_API_KEY


@dataclass
class Config:
    log_level: "str" = "info"
    log_json: "bool" = False
    # Prometheus text exposition written after each run, empty disables
    metrics_textfile: "str" = ""

    # budget gate; recording happens even when disabled
    daily_token_limit: "int" = 1_000_000
    rate_limiting_enabled: "bool" = True
    # empty keeps the ledger in memory
    database_url: "str" = ""

    default_provider: "str" = "anthropic"
    provider_priority: "tuple[str, ...]" = field(
        default_factory=lambda: ("anthropic", "gemini")
    )
    output_language: "str" = "Swedish"

    anthropic_api_key: "str" = ""
    anthropic_model: "str" = "claude-3-5-sonnet-20241022"
    anthropic_max_tokens: "int" = 4000

    gemini_api_key: "str" = ""
    gemini_model: "str" = "gemini-2.0-flash-exp"
    gemini_max_tokens: "int" = 8192

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            daily_token_limit=_env_int("STUDYGEN_DAILY_TOKEN_LIMIT", 1_000_000),
            rate_limiting_enabled=_env_bool("STUDYGEN_RATE_LIMITING_ENABLED", True),
            database_url=os.environ.get("STUDYGEN_DATABASE_URL", ""),
            default_provider=os.environ.get(
                "STUDYGEN_DEFAULT_PROVIDER", "anthropic"
            ).lower(),
            provider_priority=_env_list(
                "STUDYGEN_PROVIDER_PRIORITY", ("anthropic", "gemini")
            ),
            output_language=os.environ.get("STUDYGEN_OUTPUT_LANGUAGE", "Swedish"),
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            anthropic_model=os.environ.get(
                "ANTHROPIC_MODEL", "claude-3-5-sonnet-20241022"
            ),
            anthropic_max_tokens=_env_int("ANTHROPIC_MAX_TOKENS", 4000),
            gemini_api_key=os.environ.get("GEMINI_API_KEY", ""),
            gemini_model=os.environ.get("GEMINI_MODEL", "gemini-2.0-flash-exp"),
            gemini_max_tokens=_env_int("GEMINI_MAX_TOKENS", 8192),
        )

    @property
    def anthropic_enabled(self) -> "bool":
        return has_api_key(self.anthropic_api_key)

    @property
    def gemini_enabled(self) -> "bool":
        return has_api_key(self.gemini_api_key)
