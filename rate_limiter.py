"""
Rate Limiting Module for Parley Server
Sliding-window flood limits per connection and slow-mode cooldowns
per (channel, user)
"""

import math
import time
from typing import Callable, Dict, Hashable, Optional, Tuple
from collections import deque

from input_validator import InputValidator


Clock = Callable[[], float]


class RateLimiter:
    """Sliding window rate limiter"""

    def __init__(self, max_requests: int, time_window: float, clock: Clock = time.monotonic):
        """
        Initialize rate limiter

        Args:
            max_requests: Maximum requests allowed in time window
            time_window: Time window in seconds
            clock: Monotonic time source
        """
        self.max_requests = max_requests
        self.time_window = time_window
        self.clock = clock
        self.requests: Dict[Hashable, deque] = {}  # key -> deque of timestamps

    def _history(self, key: Hashable, now: float) -> deque:
        history = self.requests.setdefault(key, deque())
        while history and history[0] <= now - self.time_window:
            history.popleft()
        return history

    def is_allowed(self, key: Hashable) -> bool:
        """
        Record a request and report whether it fits in the window

        Args:
            key: Identifier for the client

        Returns:
            True if request is allowed, False if rate limited
        """
        now = self.clock()
        history = self._history(key, now)
        if len(history) < self.max_requests:
            history.append(now)
            return True
        return False

    def get_retry_after(self, key: Hashable) -> float:
        """Seconds until the next request is allowed, 0 if allowed now"""
        if key not in self.requests:
            return 0.0
        now = self.clock()
        history = self._history(key, now)
        if len(history) < self.max_requests:
            return 0.0
        return max(0.0, history[0] + self.time_window - now)

    def reset(self, key: Hashable = None):
        """Reset one key, or all keys when None"""
        if key is None:
            self.requests.clear()
        else:
            self.requests.pop(key, None)


class SlowModeTracker:
    """
    Last accepted post per (channel_id, username)

    try_acquire is a single synchronous check-and-set, so it is atomic with
    respect to other posts handled on the same event loop. Stamps older than
    the longest possible cooldown can never reject a post and are swept out
    every sweep_interval seconds.
    """

    def __init__(self, clock: Clock = time.monotonic,
                 max_cooldown: float = InputValidator.MAX_SLOW_MODE_SECONDS,
                 sweep_interval: float = 60.0):
        self.clock = clock
        self.max_cooldown = max_cooldown
        self.sweep_interval = sweep_interval
        self.last_post: Dict[Tuple[str, str], float] = {}
        self._last_sweep: Optional[float] = None

    def try_acquire(self, key: Tuple[str, str], cooldown: float,
                    now: Optional[float] = None) -> Tuple[bool, float, Optional[float]]:
        """
        Check the cooldown and, if elapsed, stamp the key with now

        Args:
            key: (channel_id, username)
            cooldown: Minimum seconds between accepted posts
            now: Override of the clock

        Returns:
            (allowed, remaining_seconds, previous_timestamp)
        """
        if now is None:
            now = self.clock()
        if self._last_sweep is None or now - self._last_sweep >= self.sweep_interval:
            self.cleanup(now)

        previous = self.last_post.get(key)
        if previous is not None:
            elapsed = now - previous
            if elapsed < cooldown:
                return False, cooldown - elapsed, previous
        self.last_post[key] = now
        return True, 0.0, previous

    def cleanup(self, now: Optional[float] = None):
        """Drop stamps past the longest cooldown"""
        if now is None:
            now = self.clock()
        self._last_sweep = now
        expired = [k for k, stamp in self.last_post.items() if now - stamp >= self.max_cooldown]
        for key in expired:
            del self.last_post[key]

    def restore(self, key: Tuple[str, str], stamped: float, previous: Optional[float]):
        """Undo an acquire whose post was not accepted downstream"""
        if self.last_post.get(key) != stamped:
            return
        if previous is None:
            del self.last_post[key]
        else:
            self.last_post[key] = previous

    def forget_channel(self, channel_id: str):
        """Drop every timer of a channel"""
        for key in [k for k in self.last_post if k[0] == channel_id]:
            del self.last_post[key]

    @staticmethod
    def wait_seconds(remaining: float) -> int:
        """Whole seconds to report to the user (ceiling)"""
        return max(1, math.ceil(remaining))
