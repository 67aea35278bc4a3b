"""Admission Controller — per-identity sliding-window request counter.

Each identity owns a window of request timestamps. An attempt prunes
timestamps that fell out of the trailing window, then is admitted only if
fewer than ``max_requests`` remain. Bursts up to the limit pass instantly;
after that the identity is throttled until its oldest timestamp ages out.

Thread-safe via one ``threading.Lock`` per identity. The registry lock only
guards the get-or-create of a window, so identities never wait on each
other's admission decision.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class _IdentityWindow:
    """Sliding window for a single identity."""

    timestamps: deque[float] = field(default_factory=deque)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def prune(self, now: float, window_seconds: float) -> None:
        """Drop timestamps at or before ``now - window_seconds``."""
        cutoff = now - window_seconds
        while self.timestamps and self.timestamps[0] <= cutoff:
            self.timestamps.popleft()


class AdmissionController:
    """Accepts or rejects request attempts per identity.

    Usage:
        controller = AdmissionController(max_requests=10, window_seconds=60)

        if not controller.try_acquire(identity):
            ...  # too fast

        # On logout / disconnect:
        controller.release(identity)
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _IdentityWindow] = {}
        self._registry_lock = threading.Lock()

    def _get_window(self, identity: str) -> _IdentityWindow:
        """Get or create the window for an identity."""
        with self._registry_lock:
            window = self._windows.get(identity)
            if window is None:
                window = _IdentityWindow()
                self._windows[identity] = window
            return window

    def try_acquire(self, identity: str) -> bool:
        """Admit one request for ``identity`` if its window has room.

        The check and the append happen under the identity's lock: when one
        slot remains, exactly one of several concurrent callers wins it.
        """
        window = self._get_window(identity)
        with window.lock:
            now = self._clock()
            window.prune(now, self.window_seconds)
            if len(window.timestamps) >= self.max_requests:
                logger.debug("Admission refused for %s (%d in window)", identity, len(window.timestamps))
                return False
            window.timestamps.append(now)
            return True

    def release(self, identity: str) -> None:
        """Forget an identity's window. Memory reclamation only, not a refund."""
        with self._registry_lock:
            self._windows.pop(identity, None)

    def retry_after(self, identity: str) -> float:
        """Seconds until ``identity`` would be admitted again (0 if now)."""
        with self._registry_lock:
            window = self._windows.get(identity)
        if window is None:
            return 0.0
        with window.lock:
            now = self._clock()
            window.prune(now, self.window_seconds)
            if len(window.timestamps) < self.max_requests:
                return 0.0
            return max(window.timestamps[0] + self.window_seconds - now, 0.0)

    def get_stats(self, identity: str) -> dict:
        """Current usage of an identity's window."""
        with self._registry_lock:
            window = self._windows.get(identity)
        current = 0
        if window is not None:
            with window.lock:
                window.prune(self._clock(), self.window_seconds)
                current = len(window.timestamps)
        return {
            "identity": identity,
            "current_requests": current,
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "retry_after": self.retry_after(identity),
        }

    @property
    def tracked_identities(self) -> int:
        with self._registry_lock:
            return len(self._windows)
