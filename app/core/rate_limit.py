from __future__ import annotations

import time
from collections import deque
from typing import Callable

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.errors import LocalRateLimitExceeded


# Route-class limiter; create_app() registers it on app.state.
limiter = Limiter(key_func=get_remote_address)


class RollingRateGuard:
    """Counts outbound calls over a rolling window and refuses past a ceiling.

    Not a lock: a single event loop drives every caller, so the deque is
    only touched between awaits.
    """

    def __init__(
        self,
        max_requests: int,
        *,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._calls: deque[float] = deque()

    def _trim(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._calls and self._calls[0] <= cutoff:
            self._calls.popleft()

    def acquire(self) -> None:
        now = self._clock()
        self._trim(now)
        if len(self._calls) >= self.max_requests:
            raise LocalRateLimitExceeded()
        self._calls.append(now)
