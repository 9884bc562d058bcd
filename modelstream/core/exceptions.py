"""Core exceptions for the streaming client."""

from typing import Optional


class ModelStreamError(Exception):
    """Base exception for client errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ModelStreamError):
    """Raised when there's an issue with the configuration."""
    pass


class EnvVarError(ConfigurationError):
    """Raised when a provider credential is missing from the environment."""

    def __init__(self, var: str, instructions: Optional[str] = None) -> None:
        message = f"Missing environment variable: `{var}`."
        if instructions:
            message = f"{message} {instructions}"
        super().__init__(message)
        self.var = var
        self.instructions = instructions


class TransportError(ModelStreamError):
    """Connection-level failure that outlived the retry budget."""
    pass


class UnexpectedStatusError(ModelStreamError):
    """Upstream answered with a status that is never retried."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"unexpected status {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class RetryLimitError(ModelStreamError):
    """A retryable status exhausted the attempt budget."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"exceeded retry limit, last status: {status_code}")
        self.status_code = status_code


class StreamError(ModelStreamError):
    """Fatal failure of an already established response stream."""
    pass
