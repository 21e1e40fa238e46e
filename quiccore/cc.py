"""Congestion controllers: Reno, CUBIC and Pico.

All windows and byte counts are in bytes, all times in milliseconds.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

__all__ = [
    "CCType",
    "CongestionController",
    "calc_initial_cwnd",
    "MIN_CWND",
    "RENO_BETA",
    "CUBIC_C",
    "CUBIC_BETA",
    "UNBOUNDED",
]

MIN_CWND = 2
"""Minimum congestion window, in packets."""

RENO_BETA = 0.7
CUBIC_C = 0.4
CUBIC_BETA = 0.7

UNBOUNDED = 0xFFFFFFFF
"""Value of ``ssthresh`` and ``cwnd_minimum`` before any loss."""

_MTU_MAX = 1472
_DEFAULT_INITCWND_PACKETS = 10


def calc_initial_cwnd(max_packets: int, max_udp_payload_size: int) -> int:
    """Return the initial window for ``max_packets`` packets of the given size.

    At least ``MIN_CWND`` packets are used, and the payload size is capped at 1472.
    """
    max_packets = max(max_packets, MIN_CWND)
    max_udp_payload_size = min(max_udp_payload_size, _MTU_MAX)
    return max_packets * max_udp_payload_size


def _cbrt(x: float) -> float:
    if x == 0:
        return 0.0
    a = abs(x)
    r = a ** (1.0 / 3.0)
    r -= (r * r * r - a) / (3.0 * r * r)
    return math.copysign(r, x)


def _to_u32(value: float) -> int:
    """Truncate toward zero, the way a float is stored into an unsigned 32-bit field."""
    if value <= 0:
        return 0
    return int(value) & UNBOUNDED


class CCType(Enum):
    """The available congestion control algorithms."""

    RENO = "reno"
    CUBIC = "cubic"
    PICO = "pico"


@dataclass
class _CubicState:
    k: float = 0.0
    w_max: int = 0
    w_last_max: int = 0
    avoidance_start: int = 0
    last_sent_time: int = 0


class CongestionController:
    """Congestion window state driven by ACK, loss and send events."""

    def __init__(
        self,
        cc_type: CCType = CCType.RENO,
        initcwnd: int = calc_initial_cwnd(_DEFAULT_INITCWND_PACKETS, _MTU_MAX),
    ) -> None:
        self._reset(CCType(cc_type), initcwnd)

    def _reset(self, cc_type: CCType, initcwnd: int) -> None:
        self.cc_type = cc_type
        self.cwnd = initcwnd
        self.cwnd_initial = initcwnd
        self.cwnd_maximum = initcwnd
        self.cwnd_minimum = UNBOUNDED
        self.ssthresh = UNBOUNDED
        self.recovery_end = 0
        self.num_loss_episodes = 0
        self.cwnd_exiting_slow_start = 0
        self.stash = 0
        self.bytes_per_mtu_increase = 0
        self.num_persistent_congestion = 0
        self.last_persistent_congestion_at: int | None = None
        self.cubic = _CubicState()
        if cc_type is CCType.PICO:
            self._init_pico_state(0)

    def _init_pico_state(self, stash: int) -> None:
        self.stash = stash
        self.bytes_per_mtu_increase = _to_u32(self.cwnd * RENO_BETA)

    def _raise_maximum(self) -> None:
        if self.cwnd_maximum < self.cwnd:
            self.cwnd_maximum = self.cwnd

    @property
    def in_slow_start(self) -> bool:
        return self.cwnd < self.ssthresh

    # ------------------------------------------------------------------ ACKs

    def on_acked(
        self,
        bytes_acked: int,
        largest_acked: int,
        inflight: int,
        next_pn: int,
        now: int,
        max_udp_payload_size: int,
        smoothed_rtt: int,
    ) -> None:
        """Grow the window for ``bytes_acked`` newly acknowledged bytes."""
        if inflight < bytes_acked:
            raise ValueError("more bytes acknowledged than were in flight")
        # no growth while in recovery
        if largest_acked < self.recovery_end:
            return
        if self.cc_type is CCType.RENO:
            self._reno_on_acked(bytes_acked, max_udp_payload_size)
        elif self.cc_type is CCType.CUBIC:
            self._cubic_on_acked(bytes_acked, now, max_udp_payload_size, smoothed_rtt)
        else:
            self._pico_on_acked(bytes_acked, max_udp_payload_size)

    def _reno_on_acked(self, bytes_acked: int, mtu: int) -> None:
        if self.in_slow_start:
            self.cwnd += bytes_acked
            self._raise_maximum()
            return
        # one MTU per congestion window acknowledged
        self.stash += bytes_acked
        if self.stash < self.cwnd:
            return
        count = self.stash // self.cwnd
        self.stash -= count * self.cwnd
        self.cwnd += count * mtu
        self._raise_maximum()

    def _cubic_w(self, t_sec: float, mtu: int) -> float:
        tk = t_sec - self.cubic.k
        return (CUBIC_C * (tk * tk * tk) * mtu) + self.cubic.w_max

    def _cubic_on_acked(self, bytes_acked: int, now: int, mtu: int, smoothed_rtt: int) -> None:
        if self.in_slow_start:
            self.cwnd += bytes_acked
            self._raise_maximum()
            return

        t_sec = (now - self.cubic.avoidance_start) / 1000
        rtt_sec = smoothed_rtt / 1000

        w_cubic = _to_u32(self._cubic_w(t_sec, mtu))
        w_est = _to_u32(
            (self.cubic.w_max * CUBIC_BETA)
            + ((3 * (1 - CUBIC_BETA) / (1 + CUBIC_BETA)) * (t_sec / rtt_sec) * mtu)
        )

        if w_cubic < w_est:
            # TCP-friendly region; never shrink because of an RTT increase
            if w_est > self.cwnd:
                self.cwnd = w_est
        else:
            target = self._cubic_w(t_sec + rtt_sec, mtu)
            if target > self.cwnd:
                self.cwnd = _to_u32(self.cwnd + ((target / self.cwnd) - 1) * mtu)

        self._raise_maximum()

    def _pico_on_acked(self, bytes_acked: int, mtu: int) -> None:
        self.stash += bytes_acked
        per_mtu = mtu if self.in_slow_start else self.bytes_per_mtu_increase
        if self.stash < per_mtu:
            return
        count = self.stash // per_mtu
        self.cwnd += count * mtu
        self.stash -= count * per_mtu
        self._raise_maximum()

    # ---------------------------------------------------------------- losses

    def on_lost(
        self,
        bytes_lost: int,
        lost_pn: int,
        next_pn: int,
        now: int,
        max_udp_payload_size: int,
        smoothed_rtt: int,
    ) -> None:
        """Shrink the window for a packet loss, once per recovery episode."""
        if lost_pn < self.recovery_end:
            return
        self.recovery_end = next_pn

        self.num_loss_episodes += 1
        if self.cwnd_exiting_slow_start == 0:
            self.cwnd_exiting_slow_start = self.cwnd

        if self.cc_type is CCType.CUBIC:
            self._cubic_prepare_loss(now, max_udp_payload_size)
            beta = CUBIC_BETA
        else:
            if self.cc_type is CCType.PICO:
                self.bytes_per_mtu_increase = self._pico_bytes_per_mtu_increase(
                    self.cwnd, smoothed_rtt, max_udp_payload_size
                )
            beta = RENO_BETA

        self.cwnd = max(_to_u32(self.cwnd * beta), MIN_CWND * max_udp_payload_size)
        self.ssthresh = self.cwnd
        if self.cwnd_minimum > self.cwnd:
            self.cwnd_minimum = self.cwnd

    def _cubic_prepare_loss(self, now: int, mtu: int) -> None:
        state = self.cubic
        state.avoidance_start = now
        state.w_max = self.cwnd
        # fast convergence
        if state.w_max < state.w_last_max:
            state.w_last_max = state.w_max
            state.w_max = _to_u32(state.w_max * ((1.0 + CUBIC_BETA) / 2.0))
        else:
            state.w_last_max = state.w_max
        w_max_mss = state.w_max / mtu
        state.k = _cbrt(w_max_mss * ((1 - CUBIC_BETA) / CUBIC_C))

    @staticmethod
    def _pico_bytes_per_mtu_increase(cwnd: int, rtt: int, mtu: int) -> int:
        """Bytes to acknowledge per MTU of growth: the slower of Reno and CUBIC."""
        reno = _to_u32(cwnd * RENO_BETA)
        cubic = _to_u32(1.447 / 0.3 * 1000 * _cbrt(0.3 / 0.4 * cwnd / mtu) / rtt * mtu)
        return min(reno, cubic)

    def on_persistent_congestion(self, now: int) -> None:
        """Record a persistent-congestion event; the window itself is left unchanged."""
        self.num_persistent_congestion += 1
        self.last_persistent_congestion_at = now

    # ----------------------------------------------------------------- sends

    def on_sent(self, bytes_sent: int, bytes_in_flight: int, now: int) -> None:
        """Record a packet send; CUBIC discounts idle periods from its epoch."""
        if self.cc_type is not CCType.CUBIC:
            return
        state = self.cubic
        if bytes_in_flight <= bytes_sent and state.avoidance_start != 0 and state.last_sent_time != 0:
            delta = now - state.last_sent_time
            if delta > 0:
                state.avoidance_start += delta
        state.last_sent_time = now

    # ------------------------------------------------------------- switching

    def switch_to(self, cc_type: CCType | str) -> None:
        """Change algorithm, keeping state when it can be reused."""
        target = CCType(cc_type)
        current = self.cc_type
        if target is current:
            return

        if target is CCType.RENO:
            if current is CCType.PICO:
                self.cc_type = CCType.RENO
            elif self.cwnd_exiting_slow_start == 0:
                self.cc_type = CCType.RENO
                self.stash = 0
            else:
                self._reset(CCType.RENO, self.cwnd_initial)
        elif target is CCType.PICO:
            if current is CCType.RENO:
                self.cc_type = CCType.PICO
                self._init_pico_state(self.stash)
            elif self.cwnd_exiting_slow_start == 0:
                self.cc_type = CCType.PICO
                self._init_pico_state(0)
            else:
                self._reset(CCType.PICO, self.cwnd_initial)
        else:
            if self.cwnd_exiting_slow_start == 0:
                self.cc_type = CCType.CUBIC
                self.cubic = _CubicState()
            else:
                self._reset(CCType.CUBIC, self.cwnd_initial)

    def __repr__(self) -> str:
        return (
            f"CongestionController({self.cc_type.value}, cwnd={self.cwnd}, "
            f"ssthresh={self.ssthresh})"
        )