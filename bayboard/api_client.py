"""
Request executor for the remote backend.

Wraps every action with a per-attempt timeout, retry with backoff, and typed
failures. Timeouts are sized from the health monitor's reading at the moment
each attempt is issued.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_exception

from config.settings import Settings
from bayboard.errors import (
    NetworkError,
    RemoteAccessError,
    RequestTimeoutError,
    exhausted,
)
from bayboard.health import HealthMonitor
from bayboard.transport import RemoteTransport, validate_endpoint

logger = logging.getLogger("api_client")


@dataclass
class Attempt:
    """One physical round trip for an action."""
    index: int
    request_id: str
    started_at: float
    timeout: float
    outcome: str = "pending"   # "success" or an error kind


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, RemoteAccessError) and error.retryable


class RequestExecutor:
    """
    Issues one logical action, possibly as several attempts.

    Retry policy:
    - Critical actions (record create / update / delete) get one dedicated
      retry on timeout (after 2s) or network failure (after 1.5s) on the
      first attempt of a call, whatever the general budget says
    - Otherwise up to ``max_retries`` retries with exponential backoff
      ``min(base * 2^attempt, max)``
    - Non-retryable errors propagate immediately

    The executor never touches ConnectionState or the cache.
    """

    def __init__(
        self,
        settings: Settings,
        transport: RemoteTransport,
        health: Optional[HealthMonitor] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._settings = settings
        self._transport = transport
        self._health = health
        self._sleep = sleep
        self._critical_actions = frozenset(settings.critical_actions)

        self._stats = {
            "actions": 0,
            "attempts": 0,
            "retries": 0,
            "failures": 0,
        }

    def is_critical(self, action: str) -> bool:
        return action in self._critical_actions

    def timeout_for_attempt(self) -> float:
        """Attempt timeout from the current health reading."""
        if self._health is None or self._health.is_healthy():
            return self._settings.healthy_timeout_seconds
        return self._settings.degraded_timeout_seconds

    def retry_delay(
        self,
        action: str,
        attempt_index: int,
        error: BaseException,
        first_of_call: bool,
    ) -> Optional[float]:
        """
        Seconds to wait before retrying after ``error``, or None to give up.

        Args:
            action: Action name
            attempt_index: 0-based index of the attempt that just failed
            error: The classified failure
            first_of_call: True if this was the first attempt of the call
        """
        if not _is_retryable(error):
            return None

        if first_of_call and self.is_critical(action):
            if isinstance(error, RequestTimeoutError):
                return self._settings.critical_timeout_retry_delay
            if isinstance(error, NetworkError):
                return self._settings.critical_network_retry_delay

        if attempt_index >= self._settings.max_retries:
            return None
        return min(
            self._settings.backoff_base_seconds * (2 ** attempt_index),
            self._settings.backoff_max_seconds,
        )

    async def execute(
        self,
        action: str,
        params: Optional[Dict[str, Any]] = None,
        attempt_number: int = 0,
    ) -> Dict[str, Any]:
        """
        Run ``action`` against the backend.

        Args:
            action: Action name
            params: Action parameters
            attempt_number: Index the first attempt of this call counts as

        Returns:
            Parsed JSON body of the successful attempt

        Raises:
            ConfigError: Endpoint missing or malformed (never retried)
            HTTPError / ApplicationError: Rejected request (never retried)
            RetryExhaustedError: Retryable failures outlasted the budget;
                also an instance of the last failure's kind
        """
        validate_endpoint(self._transport.backend_url)
        self._stats["actions"] += 1
        attempts: List[Attempt] = []

        def _delay(retry_state: RetryCallState) -> Optional[float]:
            error = retry_state.outcome.exception()
            return self.retry_delay(
                action,
                attempt_number + retry_state.attempt_number - 1,
                error,
                first_of_call=retry_state.attempt_number == 1,
            )

        def _before_sleep(retry_state: RetryCallState) -> None:
            self._stats["retries"] += 1
            error = retry_state.outcome.exception()
            logger.warning(
                f"Retrying {action} in {retry_state.next_action.sleep:g}s "
                f"after {type(error).__name__}: {error}"
            )

        async def _attempt_once() -> Dict[str, Any]:
            return await self._attempt(action, params, attempt_number + len(attempts), attempts)

        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=lambda retry_state: _delay(retry_state) is None,
            wait=lambda retry_state: _delay(retry_state) or 0.0,
            sleep=self._sleep,
            before_sleep=_before_sleep,
        )

        try:
            return await retrying(_attempt_once)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            self._stats["failures"] += 1
            logger.error(
                f"{action} failed after {len(attempts)} attempts: "
                f"{', '.join(a.outcome for a in attempts)}"
            )
            raise exhausted(last_error, len(attempts)) from last_error
        except RemoteAccessError:
            self._stats["failures"] += 1
            raise

    async def _attempt(
        self,
        action: str,
        params: Optional[Dict[str, Any]],
        index: int,
        attempts: List[Attempt],
    ) -> Dict[str, Any]:
        attempt = Attempt(
            index=index,
            request_id=uuid.uuid4().hex[:12],
            started_at=time.time(),
            timeout=self.timeout_for_attempt(),
        )
        attempts.append(attempt)
        self._stats["attempts"] += 1

        logger.info(
            f"[{attempt.request_id}] {action} attempt {index} "
            f"(timeout {attempt.timeout:g}s)"
        )
        try:
            body = await self._transport.call(
                action, params, timeout=attempt.timeout, request_id=attempt.request_id
            )
        except RemoteAccessError as e:
            attempt.outcome = e.kind
            logger.warning(f"[{attempt.request_id}] {action} attempt {index} failed: {e}")
            raise

        attempt.outcome = "success"
        logger.debug(
            f"[{attempt.request_id}] {action} succeeded in "
            f"{(time.time() - attempt.started_at) * 1000:.0f}ms"
        )
        return body

    def get_stats(self) -> Dict[str, Any]:
        """Get executor statistics."""
        return dict(self._stats)
