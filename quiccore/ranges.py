"""Sorted sets of half-open integer ranges."""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from typing import Iterable, Iterator, NamedTuple

__all__ = ["Range", "RangeSet"]


class Range(NamedTuple):
    """A half-open range [start, end)."""

    start: int
    end: int


def _start_of(r: Range) -> int:
    return r.start


def _end_of(r: Range) -> int:
    return r.end


class RangeSet:
    """An ordered list of non-overlapping half-open ranges; adjacent ranges are merged."""

    def __init__(self, ranges: Iterable[tuple[int, int]] = ()) -> None:
        self._ranges: list[Range] = []
        for start, end in ranges:
            self.add(start, end)

    @classmethod
    def with_range(cls, start: int, end: int) -> RangeSet:
        """Create a set holding exactly one range, which is kept even when empty."""
        if start > end:
            raise ValueError(f"invalid range [{start}, {end})")
        rs = cls()
        rs._ranges.append(Range(start, end))
        return rs

    def _merge(self, start: int, end: int, slot: int, end_slot: int) -> None:
        r = self._ranges
        r[slot] = Range(min(start, r[slot].start), max(end, r[end_slot].end))
        del r[slot + 1 : end_slot + 1]

    def add(self, start: int, end: int) -> None:
        """Add [start, end), merging with overlapping or adjacent ranges."""
        if start > end:
            raise ValueError(f"invalid range [{start}, {end})")
        if start == end:
            return
        r = self._ranges
        if not r or r[-1].end < start:
            r.append(Range(start, end))
            return

        # the last slot whose start does not exceed `end`
        end_slot = bisect_right(r, end, key=_start_of) - 1
        if end_slot < 0:
            r.insert(0, Range(start, end))
            return

        # the first slot whose end reaches `start`
        slot = bisect_left(r, start, hi=end_slot + 1, key=_end_of)
        if slot > end_slot:
            r.insert(slot, Range(start, end))
        else:
            self._merge(start, end, slot, end_slot)

    def subtract(self, start: int, end: int) -> None:
        """Remove [start, end) from the set."""
        if start > end:
            raise ValueError(f"invalid range [{start}, {end})")
        r = self._ranges
        if start == end or not r or end <= r[0].start or r[-1].end <= start:
            return

        slot = bisect_left(r, start, key=_end_of)
        cur = r[slot]

        if end <= cur.end:
            # only the first overlapping slot is affected
            if end <= cur.start:
                return
            if start <= cur.start:
                cur = Range(end, cur.end)
            elif end == cur.end:
                cur = Range(cur.start, start)
            else:
                r.insert(slot + 1, Range(end, cur.end))
                r[slot] = Range(cur.start, start)
                return
            if cur.start == cur.end:
                del r[slot]
            else:
                r[slot] = cur
            return

        if start <= cur.start:
            shrink_from = slot
        else:
            r[slot] = Range(cur.start, start)
            shrink_from = slot + 1

        stop = bisect_left(r, end, lo=slot + 1, key=_start_of)
        if stop - 1 > slot and r[stop - 1].end > end:
            r[stop - 1] = Range(end, r[stop - 1].end)
            stop -= 1
        del r[shrink_from:stop]

    def drop_by_indices(self, begin: int, end: int) -> None:
        """Remove the ranges at positions begin..end-1."""
        if not 0 <= begin < end <= len(self._ranges):
            raise ValueError(f"invalid index span [{begin}, {end})")
        del self._ranges[begin:end]

    def clear(self) -> None:
        self._ranges.clear()

    def __len__(self) -> int:
        return len(self._ranges)

    def __getitem__(self, index):
        return self._ranges[index]

    def __iter__(self) -> Iterator[Range]:
        return iter(self._ranges)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RangeSet):
            return self._ranges == other._ranges
        return NotImplemented

    def __repr__(self) -> str:
        body = ", ".join(f"[{r.start}, {r.end})" for r in self._ranges)
        return f"RangeSet({body})"