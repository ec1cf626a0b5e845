"""Retrying request executor.

Wraps :class:`~edgenode.transport.Transport` calls with a bounded number
of attempts and a two-tier delay policy:

* HTTP 500 is treated as server overload and backs off exponentially
  (``base_backoff_ms * 1.5 ** attempt_index``).
* Anything else that did not produce a response (network errors,
  timeouts, other 5xx statuses) waits a fixed delay (2 s by default).

A response with status below 500, 4xx included, is returned on the spot.
When every attempt fails the executor returns ``None``; it never raises
for remote failures.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from edgenode.transport import (
    HttpResponse,
    RequestDescriptor,
    ServerOverload,
    Transport,
    TransportError,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 30
DEFAULT_BACKOFF_MS = 2000
BACKOFF_FACTOR = 1.5
NETWORK_RETRY_DELAY_SECONDS = 2.0
OVERLOAD_STATUS = 500


class ErrorType(Enum):
    """Classification of request failures.

    - TRANSIENT: Network failure or timeout (fixed delay, retried)
    - SERVER_OVERLOAD: HTTP 500 (exponential backoff, retried)
    - CLIENT_REJECTION: HTTP 4xx (returned as a response, not retried)
    - TERMINAL: Attempts exhausted or stopped (absent result)
    """
    TRANSIENT = "transient"
    SERVER_OVERLOAD = "server_overload"
    CLIENT_REJECTION = "client_rejection"
    TERMINAL = "terminal"


SleepFunc = Callable[[float], Awaitable[None]]


class RetryingExecutor:
    """Run requests through a transport with tiered retry.

    Args:
        transport: Transport used for each single attempt.
        max_attempts: Upper bound on attempts per request.
        base_backoff_ms: Base delay for the HTTP 500 backoff curve.
        network_retry_delay: Fixed delay (seconds) after other failures.
        stop_event: Optional cancellation signal.  Delays end early when
            it is set and no further attempts are made.
        sleep: Optional replacement for the delay coroutine.
        log: Logger to report attempts on.
    """

    def __init__(
        self,
        transport: Transport,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_backoff_ms: float = DEFAULT_BACKOFF_MS,
        network_retry_delay: float = NETWORK_RETRY_DELAY_SECONDS,
        stop_event: Optional[asyncio.Event] = None,
        sleep: Optional[SleepFunc] = None,
        log: Optional[logging.Logger] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.transport = transport
        self.max_attempts = max_attempts
        self.base_backoff_ms = base_backoff_ms
        self.network_retry_delay = network_retry_delay
        self.stop_event = stop_event
        self._sleep = sleep or self._interruptible_sleep
        self.log = log or logger
        self.last_error_type: Optional[ErrorType] = None

    @property
    def stopped(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    def calculate_backoff(self, attempt_index: int) -> float:
        """Seconds to wait after a 500 on zero-based *attempt_index*."""
        return self.base_backoff_ms * (BACKOFF_FACTOR ** attempt_index) / 1000.0

    async def _interruptible_sleep(self, seconds: float) -> None:
        if self.stop_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def execute_with_retry(
        self,
        request: RequestDescriptor,
        max_attempts: Optional[int] = None,
    ) -> Optional[HttpResponse]:
        """Execute *request*, retrying per the tiered policy.

        Returns:
            The first response with status < 500, or ``None`` when every
            attempt failed or the stop signal was raised.

        Raises:
            ValueError: *max_attempts* is below 1.
        """
        attempts = self.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.last_error_type = None

        for i in range(attempts):
            if self.stopped:
                self.log.warning(f"Stop requested, abandoning {request.method} {request.url}")
                self.last_error_type = ErrorType.TERMINAL
                return None

            is_last = i == attempts - 1
            self.log.info(f"Attempting request ({i + 1}/{attempts}) URL: {request.url}")
            try:
                response = await self.transport.execute(request)
            except ServerOverload as e:
                if e.status == OVERLOAD_STATUS:
                    self.last_error_type = ErrorType.SERVER_OVERLOAD
                    self.log.error(f"Server Error (500) Attempt {i + 1}/{attempts}")
                    if is_last:
                        break
                    wait_time = self.calculate_backoff(i)
                    self.log.warning(f"Waiting {wait_time:.1f}s before retry...")
                    await self._sleep(wait_time)
                    continue
                self.last_error_type = ErrorType.TRANSIENT
                self.log.warning(f"Request failed with status {e.status} Attempt {i + 1}/{attempts}")
            except TransportError as e:
                self.last_error_type = ErrorType.TRANSIENT
                self.log.warning(f"Request failed Attempt {i + 1}/{attempts}: {e}")
            else:
                self.last_error_type = (
                    ErrorType.CLIENT_REJECTION if response.status >= 400 else None
                )
                self.log.info(f"Request successful Status: {response.status}")
                return response

            if is_last:
                break
            await self._sleep(self.network_retry_delay)

        self.log.error(f"Max retries reached for {request.method} {request.url}")
        self.last_error_type = ErrorType.TERMINAL
        return None
