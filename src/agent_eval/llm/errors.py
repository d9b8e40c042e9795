"""Error taxonomy for model provider calls.

Retry policy belongs to the caller. Each error only reports whether it is
worth retrying and how long to wait first.
"""

from __future__ import annotations


class LLMError(Exception):
    """Base class for provider failures."""

    @property
    def is_retryable(self) -> bool:
        return False

    @property
    def is_permanent(self) -> bool:
        return not self.is_retryable

    @property
    def retry_delay(self) -> float | None:
        """Seconds to wait before retrying, or None if not retryable."""
        return None


class ApiKeyError(LLMError):
    """Missing or rejected credentials."""


class ConfigurationError(LLMError):
    """Invalid configuration: unresolvable model, cloud tier without key, etc."""


class ModelNotFoundError(LLMError):
    def __init__(self, model: str):
        super().__init__(f"Model not found: {model}")
        self.model = model


class TokenLimitError(LLMError):
    def __init__(self, used: int, maximum: int):
        super().__init__(f"Token limit exceeded: {used} > {maximum}")
        self.used = used
        self.maximum = maximum


class ParseError(LLMError):
    """Unparsable or unexpected response shape."""


class ApiError(LLMError):
    def __init__(self, status: int, message: str):
        super().__init__(f"API error {status}: {message}")
        self.status = status
        self.message = message

    @property
    def is_retryable(self) -> bool:
        return self.status >= 500

    @property
    def is_permanent(self) -> bool:
        return 400 <= self.status < 500

    @property
    def retry_delay(self) -> float | None:
        return 5.0 if self.is_retryable else None


class RateLimitError(LLMError):
    def __init__(self, retry_after: float = 60.0):
        super().__init__(f"Rate limited, retry after {retry_after:.1f}s")
        self.retry_after = retry_after

    @property
    def is_retryable(self) -> bool:
        return True

    @property
    def retry_delay(self) -> float | None:
        return self.retry_after


class ProviderTimeoutError(LLMError):
    def __init__(self, seconds: float):
        super().__init__(f"Request timed out after {seconds:.0f}s")
        self.seconds = seconds

    @property
    def is_retryable(self) -> bool:
        return True

    @property
    def retry_delay(self) -> float | None:
        return 2.0


class NetworkError(LLMError):
    @property
    def is_retryable(self) -> bool:
        return True

    @property
    def retry_delay(self) -> float | None:
        return 1.0


def error_from_status(
    status: int,
    message: str,
    retry_after: float | None = None,
    model: str = "",
) -> LLMError:
    """Map an HTTP status from a backend onto the taxonomy."""
    if status in (401, 403):
        return ApiKeyError(message)
    if status == 404 and model:
        return ModelNotFoundError(model)
    if status == 429:
        return RateLimitError(retry_after if retry_after is not None else 60.0)
    return ApiError(status, message)


def parse_retry_after(value: str | None) -> float | None:
    """Parse a retry-after header value in seconds."""
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None
