"""In-memory request throttling per client and scope."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional, Sequence, Tuple

_Key = Tuple[str, int, str]


@dataclass
class ThrottleDecision:
    allowed: bool
    retry_after: int = 0


class InMemoryRateLimiter:
    """Sliding-window limiter for single-node deployments; state is lost on restart."""

    # Full sweep of idle clients every this many checks
    SWEEP_EVERY = 1000

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits: Dict[_Key, Deque[float]] = {}
        self._checks = 0

    def _window(self, key: _Key, now: float) -> Deque[float]:
        """Hits of ``key`` still inside its window; a key left empty is forgotten."""
        hits = self._hits.get(key)
        if hits is None:
            return deque()
        cutoff = now - key[1]
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._hits[key]
        return hits

    def _sweep(self, now: float) -> None:
        for key in list(self._hits):
            self._window(key, now)

    def check(
        self,
        scope: str,
        client: str,
        limits: Sequence[Tuple[int, int]],
        now: Optional[float] = None,
    ) -> ThrottleDecision:
        """
        Record one hit for ``client`` in ``scope`` if every (limit, window_seconds)
        pair still has room; a refused hit is not counted.
        """
        now = time.time() if now is None else now
        with self._lock:
            self._checks += 1
            if self._checks % self.SWEEP_EVERY == 0:
                self._sweep(now)

            windows = []
            for limit, window in limits:
                key = (scope, window, client)
                windows.append((key, self._window(key, now), limit))

            retry_after = 0
            for key, hits, limit in windows:
                if len(hits) >= limit:
                    retry_after = max(retry_after, int(hits[0] + key[1] - now) + 1)
            if retry_after:
                return ThrottleDecision(allowed=False, retry_after=retry_after)
            for key, hits, _ in windows:
                self._hits.setdefault(key, hits).append(now)
            return ThrottleDecision(allowed=True)

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._checks = 0


rate_limiter = InMemoryRateLimiter()
