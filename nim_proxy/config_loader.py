"""Configuration loading from YAML files with environment variable support."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import dotenv_values

logger = logging.getLogger("nim-proxy")

# Default path to the config file (relative to project root)
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def default_config_path() -> str:
    return os.getenv("NIM_PROXY_CONFIG") or DEFAULT_CONFIG_PATH


def resolve_config_path(path: str) -> Path:
    """Resolve config path relative to project root if needed."""
    if Path(path).is_absolute():
        return Path(path)
    project_root = Path(__file__).parent.parent
    return project_root / path


def resolve_env_path(config_path: Path, env_path: str | None = None) -> Path:
    """Resolve the .env file that sits next to a config file."""
    if env_path:
        return resolve_config_path(env_path)
    return config_path.with_name(".env")


def load_env_values(env_path: Path) -> dict[str, str]:
    """Load environment values from a .env file without mutating os.environ."""
    if not env_path.exists():
        return {}
    raw_values = dotenv_values(env_path)
    return {key: value for key, value in raw_values.items() if value is not None}


def load_environment(
    config_path: Path, env_path: str | None = None
) -> dict[str, str]:
    """Merge the .env file beside the config with the process environment.

    Process environment variables win over values from the file.
    """
    env_file = resolve_env_path(config_path, env_path)
    merged = load_env_values(env_file)
    if merged:
        logger.info(f"Loaded {len(merged)} environment values from {env_file}")
    merged.update(os.environ)
    return merged


def load_config(
    path: str | None = None,
    env: Mapping[str, str] | None = None,
    substitute_env: bool = True,
) -> dict:
    """Load configuration from a YAML file.

    Args:
        path: Path to the config file. Defaults to NIM_PROXY_CONFIG,
              or configs/config_default.yaml in the project root.
        env: Environment values used for placeholder substitution.
             Defaults to os.environ.
        substitute_env: Whether to substitute environment variables in the config.

    Returns:
        Parsed configuration dictionary.
    """
    if path is None:
        path = default_config_path()

    config_path = resolve_config_path(path)

    logger.info(f"Loading configuration from {config_path}")

    if not config_path.exists():
        logger.error(f"Config file not found: {config_path}")
        raise RuntimeError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    if not isinstance(data, dict):
        raise RuntimeError(f"Config file {config_path} must contain a mapping")

    if substitute_env:
        data = _substitute_env_vars(data, env if env is not None else os.environ)

    logger.info(f"Configuration loaded successfully from {config_path}")
    return data


def _substitute_env_vars(obj: Any, env: Mapping[str, str]) -> Any:
    """Recursively substitute environment variables in configuration values.

    Supports ${VAR_NAME} and $VAR_NAME. Unset variables keep their literal
    placeholder and log a warning.
    """
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v, env) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env) for item in obj]
    if isinstance(obj, str):

        def replace_var(match):
            var_name = match.group(1) or match.group(2)
            value = env.get(var_name)
            if value is None:
                logger.warning(
                    f"CONFIG ERROR: Environment variable '${var_name}' is not set! "
                    f"The literal placeholder will be used."
                )
                return match.group(0)
            return value

        return _ENV_PATTERN.sub(replace_var, obj)
    return obj
