from __future__ import annotations
from collections import deque
from typing import Iterable

from .models import HistoryPoint, LiveSample


class SampleBuffer:
    """Recent live samples, bounded by age rather than count.

    After every append, samples older than ``window_ms`` relative to the
    append time are evicted from the front.
    """

    def __init__(self, window_ms: int) -> None:
        self._window_ms = window_ms
        self._buf: deque[LiveSample] = deque()

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def append(self, moisture: int, now_ms: int) -> LiveSample:
        sample = LiveSample(timestamp_ms=now_ms, moisture=moisture)
        self._buf.append(sample)
        while self._buf and now_ms - self._buf[0].timestamp_ms > self._window_ms:
            self._buf.popleft()
        return sample

    def snapshot(self) -> tuple[LiveSample, ...]:
        return tuple(self._buf)

    def clear(self) -> None:
        self._buf.clear()

    def __len__(self) -> int:
        return len(self._buf)


def trim_history(points: Iterable[HistoryPoint], window_seconds: int) -> tuple[HistoryPoint, ...]:
    # Zero/negative timestamps are unsynced-clock sentinels from the device
    valid = sorted((p for p in points if p.timestamp > 0), key=lambda p: p.timestamp)
    if not valid:
        return ()
    cutoff = valid[-1].timestamp - window_seconds
    return tuple(p for p in valid if p.timestamp >= cutoff)
