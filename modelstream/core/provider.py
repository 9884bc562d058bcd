"""Provider configuration and request helpers."""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

import httpx

from .exceptions import ConfigurationError, EnvVarError

logger = logging.getLogger("modelstream")

DEFAULT_TIMEOUT = 60
DEFAULT_REQUEST_MAX_RETRIES = 4
DEFAULT_STREAM_IDLE_TIMEOUT_MS = 300_000

SENSITIVE_HEADERS = {"authorization", "x-goog-api-key", "api-key"}


class WireApi(str, Enum):
    """Wire protocols a provider can speak."""

    RESPONSES = "responses"
    CHAT = "chat"
    GEMINI = "gemini"

    @classmethod
    def parse(cls, value: Any) -> "WireApi":
        if isinstance(value, WireApi):
            return value
        normalized = str(value or "").strip().lower()
        if not normalized:
            return cls.CHAT
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown wire_api '{value}'") from exc


@dataclass
class ModelProviderInfo:
    """Represents one upstream model-serving backend."""

    name: str
    base_url: str
    wire_api: WireApi = WireApi.CHAT
    env_key: Optional[str] = None
    env_key_instructions: Optional[str] = None
    request_max_retries: Optional[int] = None
    stream_idle_timeout_ms: Optional[int] = None
    timeout: Optional[float] = None
    headers: dict[str, str] = field(default_factory=dict)

    def api_key(self) -> Optional[str]:
        """Resolve the credential named by ``env_key``.

        Returns None when the provider needs no credential and raises
        ``EnvVarError`` when it does but the variable is unset or empty.
        """
        if not self.env_key:
            return None
        value = os.environ.get(self.env_key, "").strip()
        if not value:
            raise EnvVarError(self.env_key, self.env_key_instructions)
        return value

    def build_url(self, path: str) -> str:
        base = self.base_url.rstrip("/")
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{base}{path}"

    def effective_max_retries(self, default: int = DEFAULT_REQUEST_MAX_RETRIES) -> int:
        if self.request_max_retries is None:
            return default
        return max(0, int(self.request_max_retries))

    def effective_idle_timeout(self, default_ms: int = DEFAULT_STREAM_IDLE_TIMEOUT_MS) -> float:
        """Idle timeout in seconds."""
        value = default_ms if self.stream_idle_timeout_ms is None else self.stream_idle_timeout_ms
        return max(0, int(value)) / 1000.0

    def request_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout or DEFAULT_TIMEOUT)

    def stream_timeout(self) -> httpx.Timeout:
        """Timeout for streaming calls; reads are bounded by the idle timeout instead."""
        timeout = self.timeout or DEFAULT_TIMEOUT
        return httpx.Timeout(connect=timeout, read=None, write=timeout, pool=timeout)


def parse_provider(name: str, params: Mapping[str, Any]) -> ModelProviderInfo:
    """Build a ModelProviderInfo from a ``model_providers`` config entry."""
    base = str(params.get("base_url") or params.get("api_base") or "").strip()
    if not base:
        raise ConfigurationError(f"Provider '{name}' has no base_url")

    timeout = params.get("request_timeout")
    try:
        timeout_val = float(timeout) if timeout is not None else None
    except (TypeError, ValueError):
        timeout_val = None

    headers = params.get("headers") or {}
    if not isinstance(headers, Mapping):
        logger.warning("Ignoring non-mapping headers for provider %s", name)
        headers = {}

    return ModelProviderInfo(
        name=name,
        base_url=base,
        wire_api=WireApi.parse(params.get("wire_api")),
        env_key=_to_str(params.get("env_key")),
        env_key_instructions=_to_str(params.get("env_key_instructions")),
        request_max_retries=_to_int(params.get("request_max_retries")),
        stream_idle_timeout_ms=_to_int(params.get("stream_idle_timeout_ms")),
        timeout=timeout_val,
        headers={str(k): str(v) for k, v in headers.items()},
    )


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def build_outbound_headers(
    provider: ModelProviderInfo,
    api_key: Optional[str],
    extra: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """Build headers for a request to ``provider``."""
    headers: dict[str, str] = {"Content-Type": "application/json"}
    headers.update(provider.headers)
    if extra:
        headers.update(extra)
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def safe_headers_for_log(headers: Mapping[str, str]) -> dict[str, str]:
    """Copy of ``headers`` with credentials masked."""
    masked: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            masked[key] = "***"
        else:
            masked[key] = value
    return masked


def format_httpx_error(exc: Any, url: Optional[str] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    try:
        request = getattr(exc, "request", None)
    except RuntimeError:
        # httpx raises when .request was never set on the exception
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        parts.append("timeout")

    return "; ".join(parts)
