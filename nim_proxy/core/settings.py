"""Process-wide proxy settings built once at startup.

Values come from the YAML config file and are overridden by environment
variables (including a ``.env`` file next to the config). The resulting
``ProxySettings`` is immutable and passed explicitly to every component.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from ..config_loader import (
    default_config_path,
    load_config,
    load_environment,
    resolve_config_path,
)
from .exceptions import ConfigurationError

logger = logging.getLogger("nim-proxy")

DEFAULT_API_BASE = "https://integrate.api.nvidia.com/v1"
DEFAULT_MIN_TOKENS = 1024
DEFAULT_MAX_TOKENS = 16384
DEFAULT_TEMPERATURE = 0.6
DEFAULT_TIMEOUT = 120.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY = 1.5
DEFAULT_MAX_BODY_BYTES = 50 * 1024 * 1024
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000


class TokenPolicy(str, Enum):
    """How the completion token budget is derived from the caller's request."""

    CLAMP = "clamp"
    OVERRIDE = "override"


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass(frozen=True)
class ProxySettings:
    """Immutable configuration for one proxy process."""

    api_base: str = DEFAULT_API_BASE
    api_key: str = ""
    min_tokens: int = DEFAULT_MIN_TOKENS
    max_tokens: int = DEFAULT_MAX_TOKENS
    token_policy: TokenPolicy = TokenPolicy.CLAMP
    max_tokens_override: Optional[int] = None
    show_reasoning: bool = False
    enable_thinking: bool = False
    default_temperature: float = DEFAULT_TEMPERATURE
    system_prompt: Optional[str] = None
    request_timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    alias_unversioned_route: bool = True
    cors_origins: tuple[str, ...] = ("*",)
    model_mapping: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        if not isinstance(self.model_mapping, MappingProxyType):
            object.__setattr__(
                self, "model_mapping", MappingProxyType(dict(self.model_mapping))
            )
        if not isinstance(self.cors_origins, tuple):
            object.__setattr__(self, "cors_origins", _parse_origins(self.cors_origins))
        if not isinstance(self.token_policy, TokenPolicy):
            object.__setattr__(
                self, "token_policy", _parse_policy(self.token_policy)
            )
        if self.min_tokens < 1:
            raise ConfigurationError("min_tokens must be at least 1")
        if self.min_tokens > self.max_tokens:
            raise ConfigurationError(
                f"min_tokens ({self.min_tokens}) exceeds max_tokens ({self.max_tokens})"
            )
        if self.max_tokens_override is not None and self.max_tokens_override < 1:
            raise ConfigurationError("max_tokens_override must be at least 1")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries cannot be negative")
        if self.retry_delay < 0:
            raise ConfigurationError("retry_delay cannot be negative")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")
        if self.max_body_bytes < 1:
            raise ConfigurationError("max_body_bytes must be positive")

    @property
    def override_tokens(self) -> int:
        """Token budget used by the override policy."""
        if self.max_tokens_override is not None:
            return self.max_tokens_override
        return self.max_tokens

    @property
    def chat_completions_url(self) -> str:
        return f"{self.api_base.rstrip('/')}/chat/completions"

    @classmethod
    def from_sources(
        cls, config: Mapping[str, Any], env: Mapping[str, str]
    ) -> "ProxySettings":
        """Build settings from a parsed config mapping and environment values.

        Environment variables take priority over the config file.
        """
        upstream = _section(config, "upstream")
        tokens = _section(config, "tokens")
        generation = _section(config, "generation")
        server = _section(config, "server")

        def pick(env_names: tuple[str, ...], section: Mapping[str, Any], key: str, default: Any) -> Any:
            for name in env_names:
                value = env.get(name)
                if value is not None and value != "":
                    return value
            value = section.get(key)
            return default if value is None else value

        system_prompt = pick(("NIM_SYSTEM_PROMPT",), generation, "system_prompt", None)
        override = pick(("NIM_MAX_TOKENS_OVERRIDE",), tokens, "override", None)

        mapping = config.get("model_mapping") or {}
        if not isinstance(mapping, Mapping):
            raise ConfigurationError("model_mapping must be a mapping of model names")

        return cls(
            api_base=str(pick(("NIM_API_BASE",), upstream, "api_base", DEFAULT_API_BASE)),
            api_key=str(pick(("NIM_API_KEY",), upstream, "api_key", "")),
            min_tokens=_coerce(int, "min_tokens", pick(("NIM_MIN_TOKENS",), tokens, "min_tokens", DEFAULT_MIN_TOKENS)),
            max_tokens=_coerce(int, "max_tokens", pick(("NIM_MAX_TOKENS",), tokens, "max_tokens", DEFAULT_MAX_TOKENS)),
            token_policy=_parse_policy(pick(("NIM_TOKEN_POLICY",), tokens, "policy", TokenPolicy.CLAMP.value)),
            max_tokens_override=None if override is None else _coerce(int, "max_tokens_override", override),
            show_reasoning=_parse_bool(pick(("NIM_SHOW_REASONING",), generation, "show_reasoning", False)),
            enable_thinking=_parse_bool(pick(("NIM_ENABLE_THINKING",), generation, "enable_thinking", False)),
            default_temperature=_coerce(float, "default_temperature", pick(("NIM_DEFAULT_TEMPERATURE",), generation, "default_temperature", DEFAULT_TEMPERATURE)),
            system_prompt=str(system_prompt) if system_prompt else None,
            request_timeout=_coerce(float, "request_timeout", pick(("NIM_REQUEST_TIMEOUT",), upstream, "request_timeout", DEFAULT_TIMEOUT)),
            max_retries=_coerce(int, "max_retries", pick(("NIM_MAX_RETRIES",), upstream, "max_retries", DEFAULT_MAX_RETRIES)),
            retry_delay=_coerce(float, "retry_delay", pick(("NIM_RETRY_DELAY",), upstream, "retry_delay", DEFAULT_RETRY_DELAY)),
            max_body_bytes=_coerce(int, "max_body_bytes", pick(("NIM_MAX_BODY_BYTES",), upstream, "max_body_bytes", DEFAULT_MAX_BODY_BYTES)),
            host=str(pick(("NIM_PROXY_HOST",), server, "host", DEFAULT_HOST)),
            port=_coerce(int, "port", pick(("NIM_PROXY_PORT", "PORT"), server, "port", DEFAULT_PORT)),
            alias_unversioned_route=_parse_bool(pick(("NIM_ALIAS_UNVERSIONED_ROUTE",), server, "alias_unversioned_route", True)),
            cors_origins=_parse_origins(pick(("NIM_CORS_ORIGINS",), server, "cors_origins", ("*",))),
            model_mapping={str(k): str(v) for k, v in mapping.items() if k and v},
        )


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Config section '{name}' must be a mapping")
    return value


def _coerce(kind: Callable[[Any], Any], name: str, value: Any) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from exc


def _parse_origins(value: Any) -> tuple[str, ...]:
    """Accept a comma-separated string or a list of origins."""
    if isinstance(value, str):
        value = value.split(",")
    origins = tuple(str(item).strip() for item in value if str(item).strip())
    return origins or ("*",)


def _parse_policy(value: Any) -> TokenPolicy:
    if isinstance(value, TokenPolicy):
        return value
    normalized = str(value).strip().lower()
    try:
        return TokenPolicy(normalized)
    except ValueError as exc:
        raise ConfigurationError(
            f"Unknown token policy '{value}' (expected 'clamp' or 'override')"
        ) from exc


def load_settings(
    path: str | None = None, env_path: str | None = None
) -> ProxySettings:
    """Read the config file and environment once and build the settings."""
    config_path = resolve_config_path(path or default_config_path())
    env = load_environment(config_path, env_path)
    config = load_config(str(config_path), env=env)
    settings = ProxySettings.from_sources(config, env)
    if not settings.api_key:
        logger.warning("NIM_API_KEY is not set; upstream calls will be unauthenticated")
    return settings
