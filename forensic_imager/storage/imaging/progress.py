"""Progress monitoring and formatting for the transfer stage."""

from __future__ import annotations

import time
from typing import Callable, Iterable, Iterator, Optional

from forensic_imager.logging import ThrottledLogger, get_logger
from forensic_imager.storage.devices import human_size


def format_eta(seconds):
    """Format ETA in HH:MM:SS or MM:SS format."""
    if seconds is None:
        return None
    seconds = int(seconds)
    if seconds < 0:
        return None
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours:d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_progress_line(bytes_copied, total_bytes, elapsed, rate, eta):
    """Format one pv-style progress line: bytes, percent, elapsed, rate, ETA."""
    parts = [human_size(bytes_copied)]
    if total_bytes:
        percent = min(100.0, (bytes_copied / total_bytes) * 100)
        parts.append(f"{percent:.1f}%")
    parts.append(format_eta(elapsed) or "00:00")
    if rate:
        parts.append(f"{human_size(rate)}/s")
    if eta:
        parts.append(f"ETA {eta}")
    return " ".join(parts)


class ProgressMeter:
    """Pass-through stage that reports bytes flowing through the pipeline.

    ``total_bytes`` is the expected stream size; for the encrypted stream
    this is the device size, so the percentage is approximate by at most
    one header and one padding block.
    """

    def __init__(
        self,
        total_bytes: Optional[int] = None,
        interval_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        log=None,
    ):
        self.total_bytes = total_bytes
        self.clock = clock
        self.bytes_seen = 0
        self._log = log or get_logger(source="progress", tags=["progress"])
        self._throttled = ThrottledLogger(self._log, interval_seconds, clock=clock)
        self._started: Optional[float] = None

    def rate(self) -> Optional[float]:
        if self._started is None:
            return None
        elapsed = self.clock() - self._started
        if elapsed <= 0:
            return None
        return self.bytes_seen / elapsed

    def eta_seconds(self) -> Optional[float]:
        rate = self.rate()
        if not rate or not self.total_bytes or self.bytes_seen > self.total_bytes:
            return None
        return (self.total_bytes - self.bytes_seen) / rate

    def current_line(self) -> str:
        elapsed = self.clock() - self._started if self._started is not None else 0
        return format_progress_line(
            self.bytes_seen,
            self.total_bytes,
            elapsed,
            self.rate(),
            format_eta(self.eta_seconds()),
        )

    def observe(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        self._started = self.clock()
        for chunk in chunks:
            self.bytes_seen += len(chunk)
            self._throttled.info("transfer", self.current_line())
            yield chunk
        self._log.info(self.current_line())
