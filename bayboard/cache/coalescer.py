"""
Request coalescing to prevent duplicate upstream calls.

When several coroutines miss the cache for the same category at once, only
one upstream call is made and every caller gets its result (or its error).
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightRequest:
    """Tracks an in-progress upstream request."""
    future: asyncio.Future
    started_at: float = field(default_factory=time.monotonic)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Ensures concurrent requests for the same key share one upstream call.

    Pattern:
    - First request for a key initiates the fetch
    - Later requests for the same key await the initiator's future
    - When the fetch settles, all waiters receive the same result
    - The slot is cleared on settlement, so the next miss fetches again

    No lock is needed: nothing suspends between checking and claiming a slot.

    Usage:
        coalescer = RequestCoalescer()
        result = await coalescer.get_or_fetch(
            "trucks",
            lambda: executor.execute("getTrucks"),
        )
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Initialize the coalescer.

        Args:
            timeout: Max seconds a waiter waits for an in-flight request
                (None waits until it settles)
        """
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._timeout = timeout

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Either join an existing in-flight request or initiate a new one.

        Raises:
            asyncio.TimeoutError: If waiting for an in-flight request times out
            Exception: Any error from fetch_fn is propagated to every caller
        """
        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            in_flight.waiter_count += 1
            logger.debug(f"Coalescing request for {key} (waiters: {in_flight.waiter_count})")
            # Shield: a cancelled waiter must not cancel the shared fetch
            return await asyncio.wait_for(asyncio.shield(in_flight.future), self._timeout)

        in_flight = InFlightRequest(future=asyncio.get_running_loop().create_future())
        self._in_flight[key] = in_flight
        logger.debug(f"Initiating fetch for {key}")

        try:
            result = await fetch_fn()
        except Exception as e:
            in_flight.future.set_exception(e)
            if in_flight.waiter_count == 0:
                # Mark retrieved; the initiator re-raises it below
                in_flight.future.exception()
            raise
        else:
            in_flight.future.set_result(result)
            return result
        finally:
            if not in_flight.future.done():
                in_flight.future.cancel()
            self._in_flight.pop(key, None)

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        return {
            "active_requests": len(self._in_flight),
            "active_keys": list(self._in_flight.keys()),
        }
