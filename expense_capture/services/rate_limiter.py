"""
Fixed-window rate limiting for the receipt parsing service.

State lives in memory, keyed by a derived client identifier, and expires
lazily: a window is only reset when the next request for that client sees
that it has elapsed.
"""

import hashlib
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from expense_capture.config import Settings, settings
from expense_capture.errors import RateLimitExceeded
from expense_capture.logging_config import get_logger

logger = get_logger(__name__)

ANONYMOUS_CLIENT = "anonymous"


@dataclass
class RateLimitState:
    """Request count for one client within the current window."""

    count: int
    reset_at: float  # clock seconds


def derive_client_id(headers: Mapping[str, str]) -> str:
    """
    Identify the caller for rate limiting.

    A hash of the bearer token when present, else the forwarded or real IP,
    else one shared anonymous bucket.
    """
    auth_header = headers.get("authorization") or ""
    if auth_header.startswith("Bearer ") and auth_header[7:].strip():
        token = auth_header[7:].strip()
        return "token:" + hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]

    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return ANONYMOUS_CLIENT


class RateLimiter:
    """
    Per-client fixed window limiter.

    Example:
        >>> limiter = RateLimiter(window_ms=60_000, max_requests=50)
        >>> limiter.check("203.0.113.7")  # raises RateLimitExceeded on the 51st call
    """

    def __init__(
        self,
        window_ms: int | None = None,
        max_requests: int | None = None,
        enabled: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
        config: Settings | None = None,
    ):
        config = config or settings
        self.window_seconds = (window_ms if window_ms is not None else config.rate_limit_window_ms) / 1000
        self.max_requests = max_requests if max_requests is not None else config.rate_limit_max_requests
        self.enabled = enabled if enabled is not None else config.rate_limit_enabled
        self._clock = clock
        self._clients: dict[str, RateLimitState] = {}
        self._next_sweep = self._clock() + self.window_seconds

    def check(self, client_id: str) -> RateLimitState | None:
        """
        Count a request for ``client_id``.

        Raises:
            RateLimitExceeded: The client already used its window; the
                retry-after hint is the time left in that window.
        """
        if not self.enabled:
            return None

        now = self._clock()
        if now >= self._next_sweep:
            self._sweep(now)
        state = self._clients.get(client_id)

        if state is None or now > state.reset_at:
            state = RateLimitState(count=1, reset_at=now + self.window_seconds)
            self._clients[client_id] = state
            return state

        if state.count >= self.max_requests:
            retry_after = max(1, math.ceil(state.reset_at - now))
            logger.warning(
                "rate_limit_exceeded",
                client_id=client_id,
                count=state.count,
                retry_after=retry_after,
            )
            raise RateLimitExceeded(retry_after_seconds=retry_after)

        state.count += 1
        return state

    def _sweep(self, now: float) -> None:
        """Drop clients whose window has elapsed; runs at most once per window."""
        expired = [key for key, state in self._clients.items() if now > state.reset_at]
        for key in expired:
            del self._clients[key]
        self._next_sweep = now + self.window_seconds
        if expired:
            logger.debug("rate_limit_state_swept", removed=len(expired), remaining=len(self._clients))

    def reset(self, client_id: str | None = None) -> None:
        if client_id is None:
            self._clients.clear()
        else:
            self._clients.pop(client_id, None)

    def __len__(self) -> int:
        return len(self._clients)
