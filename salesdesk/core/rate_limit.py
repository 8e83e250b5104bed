"""
In-memory sliding window rate limiting.

Used to throttle login attempts per ``ip:code``. State lives in the process,
so limits are per worker.
"""

import math
from collections import deque
from typing import Deque, Dict, Optional, Tuple

from salesdesk.core.clock import SystemClock
from salesdesk.core.logging import get_logger

logger = get_logger(__name__)


class SlidingWindowLimiter:
    """
    Allow at most ``limit`` hits per key in any ``window_seconds`` span.

    Keys whose window has emptied are dropped. Once ``max_keys`` keys are
    tracked, every key is pruned before a new one is added.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        clock: Optional[SystemClock] = None,
        max_keys: int = 10_000,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock or SystemClock()
        self.max_keys = max_keys
        self._hits: Dict[str, Deque[float]] = {}

    def __len__(self) -> int:
        return len(self._hits)

    def _prune(self, key: str, now: float) -> Deque[float]:
        hits = self._hits.get(key)
        if hits is None:
            return deque()
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._hits[key]
        return hits

    def _purge(self, now: float) -> None:
        for key in list(self._hits):
            self._prune(key, now)
        if len(self._hits) >= self.max_keys:
            logger.warning("rate_limit_keys_saturated", keys=len(self._hits))

    def hit(self, key: str) -> Tuple[bool, int]:
        """
        Record one attempt.

        Returns:
            (allowed, retry_after_seconds); retry_after is 0 when allowed
        """
        now = self.clock.now().timestamp()
        if key not in self._hits and len(self._hits) >= self.max_keys:
            self._purge(now)
        hits = self._prune(key, now)

        if len(hits) >= self.limit:
            retry_after = max(1, math.ceil(hits[0] + self.window_seconds - now))
            logger.warning("rate_limit_exceeded", key=key, retry_after=retry_after)
            return False, retry_after

        hits.append(now)
        self._hits[key] = hits
        return True, 0

    def reset(self, key: str) -> None:
        self._hits.pop(key, None)
