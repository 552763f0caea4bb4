from __future__ import annotations

import threading
import time
from collections import OrderedDict, deque
from contextlib import contextmanager
from typing import Callable, Iterator


class LatencyMonitor:
    """
    Sliding window of round-trip times for a streaming transcription session.

    Callers check is_latency_acceptable() before submitting a chunk and drop the chunk
    when it returns False. The window is FIFO: once full, each new sample evicts the oldest.
    Safe to share between threads.
    """

    def __init__(self, window_size: int = 10, threshold_ms: float = 2000.0, min_samples: int | None = None) -> None:
        if window_size <= 0:
            raise ValueError("window_size must be positive")
        self.window_size = window_size
        self.threshold_ms = float(threshold_ms)
        self.min_samples = window_size if min_samples is None else max(1, min(min_samples, window_size))
        self._samples: deque[float] = deque(maxlen=window_size)
        self._lock = threading.Lock()

    def record_request(self, start_time: float, end_time: float) -> None:
        """Record one round trip; times are in seconds (time.perf_counter() or time.time())."""
        if end_time < start_time:
            raise ValueError("end_time precedes start_time")
        with self._lock:
            self._samples.append((end_time - start_time) * 1000.0)

    @contextmanager
    def measure(self) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_request(start, time.perf_counter())

    @property
    def sample_count(self) -> int:
        with self._lock:
            return len(self._samples)

    def get_average_latency(self) -> float:
        """Rolling average in milliseconds, 0.0 when no samples were recorded."""
        with self._lock:
            if not self._samples:
                return 0.0
            return sum(self._samples) / len(self._samples)

    def is_latency_acceptable(self) -> bool:
        with self._lock:
            if len(self._samples) < self.min_samples:
                return True
            avg = sum(self._samples) / len(self._samples)
        return avg < self.threshold_ms


class LatencyMonitorRegistry:
    """
    One LatencyMonitor per streaming session; sessions never share a window.

    Clients are expected to release their session, but many just disconnect. Sessions idle
    for longer than idle_ttl_sec are dropped, and past max_sessions the least recently used
    session is evicted. An evicted session that comes back starts with an empty window.
    """

    def __init__(
        self,
        window_size: int = 10,
        threshold_ms: float = 2000.0,
        *,
        max_sessions: int = 1000,
        idle_ttl_sec: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_sessions <= 0:
            raise ValueError("max_sessions must be positive")
        self.window_size = window_size
        self.threshold_ms = threshold_ms
        self.max_sessions = max_sessions
        self.idle_ttl_sec = idle_ttl_sec
        self._clock = clock
        # session_id -> (monitor, last used); least recently used first
        self._monitors: OrderedDict[str, tuple[LatencyMonitor, float]] = OrderedDict()
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        while self._monitors:
            session_id, (_, last_used) = next(iter(self._monitors.items()))
            if len(self._monitors) <= self.max_sessions and now - last_used <= self.idle_ttl_sec:
                break
            del self._monitors[session_id]

    def get(self, session_id: str) -> LatencyMonitor:
        with self._lock:
            now = self._clock()
            entry = self._monitors.pop(session_id, None)
            monitor = entry[0] if entry else LatencyMonitor(window_size=self.window_size, threshold_ms=self.threshold_ms)
            self._monitors[session_id] = (monitor, now)
            self._evict(now)
            return monitor

    def release(self, session_id: str) -> bool:
        with self._lock:
            return self._monitors.pop(session_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            self._evict(self._clock())
            return len(self._monitors)
