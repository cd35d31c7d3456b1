"""
Fixed-window request throttle keyed by (tenant, provider).

Each key gets a window of `window` length that starts with the first
request. Up to `max_requests` calls are allowed in the window; the window
resets on the first call strictly after its reset time.
"""
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict

from firmsync.clock import utcnow

MAX_REQUESTS = 10
WINDOW = timedelta(seconds=60)


@dataclass
class _Window:
    count: int
    reset: datetime


class RateLimiter:
    def __init__(
        self,
        max_requests: int = MAX_REQUESTS,
        window: timedelta = WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.max_requests = max_requests
        self.window = window
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def allow(self, tenant_id: str, provider: str) -> bool:
        """Count one request for the key; return False if over the limit."""
        key = f"{tenant_id}:{provider}"
        now = self._clock()
        with self._lock:
            entry = self._windows.get(key)
            if entry is None or now > entry.reset:
                self._windows[key] = _Window(count=1, reset=now + self.window)
                return True
            if entry.count < self.max_requests:
                entry.count += 1
                return True
            return False

    def reset(self) -> None:
        """Forget all windows."""
        with self._lock:
            self._windows.clear()
