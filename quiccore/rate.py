"""Delivery-rate estimation from ACKs received while the sender is cwnd-limited."""

from __future__ import annotations

import math
from dataclasses import dataclass

__all__ = ["RateSample", "Rate", "RateMeter"]

_U32 = 0xFFFFFFFF


@dataclass(frozen=True)
class RateSample:
    """Bytes acknowledged over an elapsed time in milliseconds."""

    elapsed: int = 0
    bytes_acked: int = 0


@dataclass(frozen=True)
class Rate:
    """Delivery rates in bytes per second."""

    latest: int = 0
    smoothed: int = 0
    stdev: int = 0


def _to_speed(bytes_acked: int, elapsed: int) -> int:
    return bytes_acked * 1000 // elapsed


class RateMeter:
    """Collects rate samples in a ring buffer, only during cwnd-limited phases."""

    def __init__(self, num_samples: int = 10, sample_period: int = 50) -> None:
        if num_samples < 1:
            raise ValueError("num_samples must be at least 1")
        if sample_period < 1:
            raise ValueError("sample_period must be positive")
        self.sample_period = sample_period
        self._samples = [RateSample()] * num_samples
        self._latest = num_samples - 1
        self._limited_start: int | None = None
        self._limited_end: int | None = None
        self._start_at: int | None = None
        self._start_bytes = 0
        self._current = RateSample()

    @property
    def past_samples(self) -> tuple[RateSample, ...]:
        return tuple(self._samples)

    @property
    def current_sample(self) -> RateSample:
        return self._current

    def _in_limited_phase(self) -> bool:
        return self._limited_start is not None and self._limited_end is None

    def _start_sampling(self, now: int, bytes_acked: int) -> None:
        self._start_at = now
        self._start_bytes = bytes_acked

    def _commit_sample(self) -> None:
        self._latest = (self._latest + 1) % len(self._samples)
        self._samples[self._latest] = self._current
        self._start_at = None
        self._current = RateSample()

    def in_cwnd_limited(self, pn: int) -> None:
        """Mark that packets from ``pn`` onward are sent while cwnd-limited."""
        if self._in_limited_phase():
            return
        if self._limited_end is not None and self._current.elapsed != 0:
            self._commit_sample()
        self._limited_start = pn
        self._limited_end = None

    def not_cwnd_limited(self, pn: int) -> None:
        """Mark that the cwnd-limited phase ends before packet ``pn``."""
        if self._in_limited_phase():
            self._limited_end = pn

    def on_ack(self, now: int, bytes_acked: int, pn: int) -> None:
        """Feed an ACK of packet ``pn`` with the cumulative ``bytes_acked`` at time ``now``."""
        start, end = self._limited_start, self._limited_end
        if start is not None and start <= pn and (end is None or pn < end):
            if self._start_at is None:
                self._start_sampling(now, bytes_acked)
            else:
                self._current = RateSample(
                    elapsed=(now - self._start_at) & _U32,
                    bytes_acked=(bytes_acked - self._start_bytes) & _U32,
                )
                if self._current.elapsed >= self.sample_period:
                    self._commit_sample()
                    self._start_sampling(now, bytes_acked)
        elif end is not None and end <= pn:
            if self._start_at is not None:
                if self._current.elapsed != 0:
                    self._commit_sample()
                self._limited_start = None
                self._limited_end = None
                self._start_at = None

    def report(self) -> Rate:
        """Return the latest, average and standard deviation of the delivery rate."""
        latest = self._samples[self._latest]
        if latest.elapsed == 0:
            latest = self._current
            if latest.elapsed == 0:
                return Rate()
        latest_speed = _to_speed(latest.bytes_acked, latest.elapsed)

        valid = [s for s in (*self._samples, self._current) if s.elapsed != 0]
        smoothed = _to_speed(
            sum(s.bytes_acked for s in valid), sum(s.elapsed for s in valid)
        )
        speeds = [_to_speed(s.bytes_acked, s.elapsed) for s in valid]
        variance = sum((speed - smoothed) ** 2 for speed in speeds) // len(speeds)
        return Rate(latest=latest_speed, smoothed=smoothed, stdev=math.isqrt(variance))