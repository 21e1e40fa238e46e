"""Receive-side state of a stream: which bytes arrived and where the stream ends."""

from __future__ import annotations

from .errors import FinalSizeError, StateExhaustionError
from .ranges import RangeSet

__all__ = ["RecvState"]


class RecvState:
    """Tracks received byte ranges and the end-of-stream offset.

    ``eos`` is None until the final size is known.  Once the transfer is
    complete, ``received`` becomes empty.
    """

    def __init__(self) -> None:
        self.received = RangeSet.with_range(0, 0)
        self.data_off = 0
        self.eos: int | None = None

    @classmethod
    def closed(cls) -> RecvState:
        """Create a state for a direction that will never carry data."""
        state = cls()
        state.received = RangeSet()
        state.eos = 0
        return state

    def transfer_complete(self) -> bool:
        return len(self.received) == 0

    def _ensure_open(self) -> None:
        if self.transfer_complete():
            raise RuntimeError("transfer is already complete")

    def update(self, off: int, length: int, is_fin: bool, max_ranges: int) -> int:
        """Record receipt of ``length`` bytes at ``off``.

        Returns the number of bytes that are new beyond ``data_off``.
        """
        self._ensure_open()

        if self.eos is None:
            if is_fin:
                self.eos = off + length
                if self.eos < self.received[-1].end:
                    raise FinalSizeError(message="FIN below data already received")
        elif off + length > self.eos:
            raise FinalSizeError(message="data beyond final size")

        if off + length <= self.data_off:
            if self.received[0].end == self.eos:
                self.received.clear()
            return 0

        if off < self.data_off:
            delta = self.data_off - off
            off += delta
            length -= delta

        if length:
            self.received.add(off, off + length)
            if len(self.received) > max_ranges:
                raise StateExhaustionError(message="too many receive gaps")

        if len(self.received) == 1:
            first = self.received[0]
            if first.start == 0 and first.end == self.eos:
                self.received.clear()

        return length

    def reset(self, eos_at: int) -> int:
        """Apply a stream reset at final size ``eos_at``; returns the bytes never received."""
        self._ensure_open()

        if self.eos is not None and self.eos != eos_at:
            raise FinalSizeError(message="reset changes final size")
        highest = self.received[-1].end
        if eos_at < highest:
            raise FinalSizeError(message="reset below data already received")

        self.received.clear()
        return eos_at - highest