"""
Typed failures raised by the remote data access layer.

Every error carries a ``retryable`` flag; the request executor only retries
errors where it is True. Once retries are spent the executor raises a
RetryExhaustedError that is also an instance of the last error's kind, so
``except NetworkError`` keeps working for callers that do not care whether
retries happened.
"""
from typing import Any, Dict, Optional, Type


class RemoteAccessError(Exception):
    """Base class for every failure surfaced by the access layer."""

    retryable: bool = False
    kind: str = "remote"

    def __init__(
        self,
        message: str,
        action: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.action = action
        self.request_id = request_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "error": self.kind,
            "message": self.message,
            "action": self.action,
            "requestId": self.request_id,
            "retryable": self.retryable,
        }


class ConfigError(RemoteAccessError):
    """Backend endpoint is missing or malformed. Never retried."""
    kind = "config"


class RequestTimeoutError(RemoteAccessError):
    """The attempt's timeout fired before the endpoint answered."""
    retryable = True
    kind = "timeout"


class NetworkError(RemoteAccessError):
    """The endpoint could not be reached at all."""
    retryable = True
    kind = "network"


class HTTPError(RemoteAccessError):
    """Endpoint answered with a non-2xx status."""
    kind = "http"

    def __init__(
        self,
        status: int,
        message: Optional[str] = None,
        action: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message or f"HTTP {status}", action, request_id)
        self.status = status

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        # 5xx and rate limiting are transient, other 4xx are not
        return self.status >= 500 or self.status == 429

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["status"] = self.status
        return result


class ApplicationError(RemoteAccessError):
    """Endpoint answered 2xx but flagged the request as failed."""
    kind = "application"


class RetryExhaustedError(RemoteAccessError):
    """
    Terminal error once the retry budget is spent.

    Wraps the last underlying error. Use ``exhausted()`` to build one; it
    picks the subclass that also matches the last error's kind. Terminal, so
    never retryable itself; ``last_error.retryable`` still describes the kind.
    """
    kind = "retry_exhausted"
    retryable = False

    def __init__(self, last_error: RemoteAccessError, attempts: int):
        # Explicit base call: subclasses mix in kinds with their own __init__
        RemoteAccessError.__init__(
            self,
            f"{last_error.message} (gave up after {attempts} attempts)",
            last_error.action,
            last_error.request_id,
        )
        self.last_error = last_error
        self.attempts = attempts

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["attempts"] = self.attempts
        result["lastError"] = self.last_error.to_dict()
        return result


class TimeoutRetryExhausted(RetryExhaustedError, RequestTimeoutError):
    kind = "timeout"


class NetworkRetryExhausted(RetryExhaustedError, NetworkError):
    kind = "network"


class HTTPRetryExhausted(RetryExhaustedError, HTTPError):
    kind = "http"

    def __init__(self, last_error: HTTPError, attempts: int):
        RetryExhaustedError.__init__(self, last_error, attempts)
        self.status = last_error.status


_EXHAUSTED_TYPES: Dict[Type[RemoteAccessError], Type[RetryExhaustedError]] = {
    RequestTimeoutError: TimeoutRetryExhausted,
    NetworkError: NetworkRetryExhausted,
    HTTPError: HTTPRetryExhausted,
}


def exhausted(last_error: RemoteAccessError, attempts: int) -> RetryExhaustedError:
    """Build the terminal error for ``last_error`` after ``attempts`` attempts."""
    for base, exhausted_type in _EXHAUSTED_TYPES.items():
        if isinstance(last_error, base):
            return exhausted_type(last_error, attempts)
    return RetryExhaustedError(last_error, attempts)
