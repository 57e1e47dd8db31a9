from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from spacai_core.llm.base import AIError, ErrorCode
from spacai_core.llm.models import RateLimitStatus

logger = logging.getLogger(__name__)

WINDOW_S = 60.0
POLL_INTERVAL_S = 1.0
DEFAULT_ESTIMATED_TOKENS = 1000

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Sliding one-minute window over request count and token spend.

    Completed calls live in two parallel lists (timestamps and token costs).
    Calls that passed admission but have not finished yet are held as
    reservations so concurrent callers see each other.
    """

    def __init__(
        self,
        max_requests_per_minute: int = 50,
        max_tokens_per_minute: int = 100_000,
        *,
        poll_interval_s: float = POLL_INTERVAL_S,
        max_wait_s: float | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_requests_per_minute <= 0 or max_tokens_per_minute <= 0:
            raise ValueError("rate limits must be positive")
        self.max_requests_per_minute = max_requests_per_minute
        self.max_tokens_per_minute = max_tokens_per_minute
        self._poll_interval_s = poll_interval_s
        self._max_wait_s = max_wait_s
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._request_times: list[float] = []
        self._token_costs: list[int] = []
        self._reservations: dict[int, int] = {}
        self._reservation_ids = itertools.count()

    def check_limit(self, estimated_tokens: int = DEFAULT_ESTIMATED_TOKENS) -> bool:
        with self._lock:
            return self._fits(estimated_tokens)

    def record_request(self, tokens_used: int) -> None:
        with self._lock:
            self._request_times.append(self._clock())
            self._token_costs.append(max(0, int(tokens_used)))

    async def wait_for_capacity(self, estimated_tokens: int = DEFAULT_ESTIMATED_TOKENS) -> None:
        await self._wait(estimated_tokens, reserve=False)

    @asynccontextmanager
    async def reserve(self, estimated_tokens: int = DEFAULT_ESTIMATED_TOKENS) -> AsyncIterator[None]:
        """Wait for capacity and hold it until the block exits.

        Record the actual cost with ``record_request`` inside the block; the
        reservation itself never shows up in ``get_status`` usage.
        """
        reservation_id = await self._wait(estimated_tokens, reserve=True)
        try:
            yield
        finally:
            with self._lock:
                self._reservations.pop(reservation_id, None)

    def get_status(self) -> RateLimitStatus:
        with self._lock:
            self._prune()
            requests_used = len(self._request_times)
            tokens_used = sum(self._token_costs)
            in_flight = len(self._reservations)
        return RateLimitStatus(
            requests_used=requests_used,
            tokens_used=tokens_used,
            requests_remaining=max(0, self.max_requests_per_minute - requests_used),
            tokens_remaining=max(0, self.max_tokens_per_minute - tokens_used),
            requests_in_flight=in_flight,
        )

    async def _wait(self, estimated_tokens: int, *, reserve: bool) -> int:
        started = self._clock()
        logged = False
        while True:
            with self._lock:
                if self._fits(estimated_tokens):
                    if not reserve:
                        return -1
                    reservation_id = next(self._reservation_ids)
                    self._reservations[reservation_id] = estimated_tokens
                    return reservation_id
            waited = self._clock() - started
            if self._max_wait_s is not None and waited >= self._max_wait_s:
                raise AIError(
                    ErrorCode.RATE_LIMITED,
                    "Local rate limit capacity not available",
                    {"waited_s": round(waited, 3), "estimated_tokens": estimated_tokens},
                )
            if not logged:
                logger.info(
                    "Rate limit window full; waiting for capacity (estimated_tokens=%d)",
                    estimated_tokens,
                )
                logged = True
            await self._sleep(self._poll_interval_s)

    def _fits(self, estimated_tokens: int) -> bool:
        # caller holds the lock
        self._prune()
        requests = len(self._request_times) + len(self._reservations)
        tokens = sum(self._token_costs) + sum(self._reservations.values())
        if requests >= self.max_requests_per_minute:
            return False
        # a single call larger than the whole budget is admitted into an empty window
        if requests == 0:
            return True
        if tokens + estimated_tokens > self.max_tokens_per_minute:
            return False
        return True

    def _prune(self) -> None:
        cutoff = self._clock() - WINDOW_S
        keep = 0
        while keep < len(self._request_times) and self._request_times[keep] <= cutoff:
            keep += 1
        if keep:
            del self._request_times[:keep]
            del self._token_costs[:keep]
