"""Configuration loading from YAML files with environment variable support."""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError
from .core.provider import (
    DEFAULT_REQUEST_MAX_RETRIES,
    DEFAULT_STREAM_IDLE_TIMEOUT_MS,
    ModelProviderInfo,
    parse_provider,
)

logger = logging.getLogger("modelstream")

DEFAULT_CONFIG_PATH = "modelstream.yaml"

ENV_CONFIG_PATH = "MODELSTREAM_CONFIG"
ENV_REQUEST_MAX_RETRIES = "MODELSTREAM_REQUEST_MAX_RETRIES"
ENV_STREAM_IDLE_TIMEOUT_MS = "MODELSTREAM_STREAM_IDLE_TIMEOUT_MS"
ENV_SSE_FIXTURE = "MODELSTREAM_SSE_FIXTURE"

DEFAULT_MODEL = "gpt-4.1"
DEFAULT_PROVIDER = "openai"

BUILTIN_PROVIDERS: dict[str, dict[str, Any]] = {
    "openai": {
        "base_url": "https://api.openai.com/v1",
        "wire_api": "responses",
        "env_key": "OPENAI_API_KEY",
        "env_key_instructions": "Create an API key at https://platform.openai.com and export it as OPENAI_API_KEY.",
    },
    "gemini": {
        "base_url": "https://generativelanguage.googleapis.com/v1beta",
        "wire_api": "gemini",
        "env_key": "GEMINI_API_KEY",
    },
    "openrouter": {
        "base_url": "https://openrouter.ai/api/v1",
        "wire_api": "chat",
        "env_key": "OPENROUTER_API_KEY",
    },
    "ollama": {
        "base_url": "http://localhost:11434/v1",
        "wire_api": "chat",
    },
}

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


@dataclass
class StreamSettings:
    """Retry and streaming knobs shared by every provider."""

    request_max_retries: int = DEFAULT_REQUEST_MAX_RETRIES
    stream_idle_timeout_ms: int = DEFAULT_STREAM_IDLE_TIMEOUT_MS
    sse_fixture: Optional[str] = None


@dataclass
class ClientConfig:
    """Resolved configuration for one ModelClient."""

    model: str
    provider: ModelProviderInfo
    stream: StreamSettings = field(default_factory=StreamSettings)
    providers: dict[str, ModelProviderInfo] = field(default_factory=dict)
    reasoning: Optional[dict[str, Any]] = None


def resolve_config_path(path: str) -> Path:
    """Resolve config path relative to the working directory if needed."""
    candidate = Path(path).expanduser()
    if candidate.is_absolute():
        return candidate
    return Path.cwd() / candidate


def resolve_env_path(config_path: Path, env_path: Optional[str] = None) -> Path:
    """Resolve the env file path for a config file."""
    if env_path:
        return resolve_config_path(env_path)
    return config_path.with_name(".env")


def load_env_values(env_path: Path) -> dict[str, str]:
    """Load environment values from a .env file without mutating os.environ."""
    if not env_path.exists():
        return {}
    raw_values = dotenv_values(env_path)
    return {key: value for key, value in raw_values.items() if value is not None}


def load_config(
    path: Optional[str] = None,
    env_path: Optional[str] = None,
    substitute_env: bool = True,
) -> dict:
    """Load configuration from a YAML file.

    Args:
        path: Path to the config file. Defaults to ``$MODELSTREAM_CONFIG``,
              or modelstream.yaml in the working directory.
        env_path: Optional .env path override for env substitution.
        substitute_env: Whether to substitute environment variables in the config.

    Returns:
        Parsed configuration dictionary.
    """
    if path is None:
        path = os.getenv(ENV_CONFIG_PATH) or DEFAULT_CONFIG_PATH

    config_path = resolve_config_path(path)
    logger.info("Loading configuration from %s", config_path)

    if not config_path.exists():
        logger.error("Config file not found: %s", config_path)
        raise ConfigurationError(f"Config file not found: {config_path}")

    env_values: dict[str, str] = {}
    if substitute_env:
        env_file = resolve_env_path(config_path, env_path)
        if env_file.exists():
            logger.info("Loading environment variables from %s", env_file)
            env_values = load_env_values(env_file)

    with config_path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root in {config_path} must be a mapping")

    if substitute_env:
        data = _substitute_env_vars(data, env_values)

    logger.info("Configuration loaded successfully from %s", config_path)
    return data


def _substitute_env_vars(obj: Any, env_values: Optional[Mapping[str, str]] = None) -> Any:
    """Recursively substitute ``${VAR}`` and ``$VAR`` references.

    Unset variables are left as literal placeholders and logged.
    """
    env_values = env_values or {}

    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v, env_values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if isinstance(obj, str):

        def replace_var(match: re.Match) -> str:
            var_name = match.group(1) or match.group(2)
            value = env_values.get(var_name)
            if value is None:
                value = os.getenv(var_name)
            if value is None:
                logger.warning(
                    "Environment variable '%s' referenced in config is not set; "
                    "keeping the literal placeholder",
                    var_name,
                )
                return match.group(0)
            return value

        return _ENV_PATTERN.sub(replace_var, obj)
    return obj


def parse_stream_settings(
    config: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> StreamSettings:
    """Read ``stream_settings``; environment variables take priority."""
    environ = os.environ if environ is None else environ
    raw = config.get("stream_settings") or {}
    settings = StreamSettings()

    retries = environ.get(ENV_REQUEST_MAX_RETRIES, raw.get("request_max_retries"))
    if retries is not None:
        try:
            settings.request_max_retries = max(0, int(retries))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid request_max_retries value %r", retries)

    idle = environ.get(ENV_STREAM_IDLE_TIMEOUT_MS, raw.get("stream_idle_timeout_ms"))
    if idle is not None:
        try:
            settings.stream_idle_timeout_ms = max(0, int(idle))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid stream_idle_timeout_ms value %r", idle)

    fixture = environ.get(ENV_SSE_FIXTURE) or raw.get("sse_fixture")
    settings.sse_fixture = str(fixture) if fixture else None
    return settings


def parse_providers(config: Mapping[str, Any]) -> dict[str, ModelProviderInfo]:
    """Built-in providers overlaid with the ``model_providers`` section."""
    merged: dict[str, dict[str, Any]] = {name: dict(params) for name, params in BUILTIN_PROVIDERS.items()}
    entries = config.get("model_providers") or {}
    if not isinstance(entries, Mapping):
        raise ConfigurationError("model_providers must be a mapping of name -> settings")
    for name, params in entries.items():
        if not isinstance(params, Mapping):
            logger.warning("Skipping provider %s: settings must be a mapping", name)
            continue
        merged[str(name)] = {**merged.get(str(name), {}), **params}
    return {name: parse_provider(name, params) for name, params in merged.items()}


def build_client_config(
    config: Mapping[str, Any],
    provider: Optional[str] = None,
    model: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ClientConfig:
    """Resolve the provider/model pair a ModelClient should use."""
    providers = parse_providers(config)
    provider_name = str(provider or config.get("model_provider") or DEFAULT_PROVIDER)
    info = providers.get(provider_name)
    if info is None:
        raise ConfigurationError(
            f"Unknown model provider '{provider_name}'; known: {sorted(providers)}"
        )
    reasoning = config.get("reasoning")
    if reasoning is not None and not isinstance(reasoning, dict):
        raise ConfigurationError("reasoning must be a mapping")
    return ClientConfig(
        model=str(model or config.get("model") or DEFAULT_MODEL),
        provider=info,
        stream=parse_stream_settings(config, environ),
        providers=providers,
        reasoning=reasoning,
    )
