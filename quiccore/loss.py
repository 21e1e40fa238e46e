"""RTT estimation and the loss-detection / probe-timeout alarm."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, NamedTuple

__all__ = [
    "LossConf",
    "RTT",
    "LossThresholds",
    "AckReceivedKind",
    "AlarmAction",
    "Loss",
    "DEFAULT_TIME_REORDERING_PERCENTILE",
    "DEFAULT_MIN_PTO",
    "DEFAULT_INITIAL_RTT",
    "NUM_EPOCHS",
    "SPEC_CONF",
    "PERFORMANT_CONF",
]

_U32 = 0xFFFFFFFF

DEFAULT_TIME_REORDERING_PERCENTILE = 1024 // 8
"""Time-based reordering window, in 1/1024 of an RTT."""

DEFAULT_MIN_PTO = 1
"""Minimum probe timeout in milliseconds (the alarm granularity)."""

DEFAULT_INITIAL_RTT = 66
"""RTT in milliseconds assumed before the first sample."""

NUM_EPOCHS = 4
"""Number of packet number spaces tracked for largest-acked."""

_MAX_PTO_COUNT = 63


@dataclass(frozen=True)
class LossConf:
    """Loss recovery configuration."""

    time_reordering_percentile: int = DEFAULT_TIME_REORDERING_PERCENTILE
    min_pto: int = DEFAULT_MIN_PTO
    default_initial_rtt: int = DEFAULT_INITIAL_RTT
    num_speculative_ptos: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.num_speculative_ptos <= 3:
            raise ValueError("num_speculative_ptos must be between 0 and 3")


SPEC_CONF = LossConf()
"""Configuration following the specification."""

PERFORMANT_CONF = LossConf(num_speculative_ptos=2)
"""Configuration that probes speculatively at the tail to cut latency."""


class RTT:
    """RTT estimator, in milliseconds.

    ``latest == 0`` means no sample has been taken yet; ``smoothed`` and
    ``variance`` are usable even before that.
    """

    def __init__(self, initial_rtt: int = DEFAULT_INITIAL_RTT) -> None:
        self.minimum = _U32
        self.latest = 0
        self.smoothed = initial_rtt
        self.variance = initial_rtt // 2

    @property
    def has_sample(self) -> bool:
        return self.latest != 0

    def update(self, latest_rtt: int, ack_delay: int) -> None:
        """Take an RTT sample, discounting ``ack_delay`` when it is plausible."""
        if latest_rtt >= _U32:
            raise ValueError("RTT sample out of range")
        is_first_sample = self.latest == 0

        # a zero sample is counted as 1ms
        self.latest = latest_rtt if latest_rtt != 0 else 1

        if self.latest < self.minimum:
            self.minimum = self.latest

        if self.latest > self.minimum + ack_delay:
            self.latest -= ack_delay

        if is_first_sample:
            self.smoothed = self.latest
            self.variance = self.latest // 2
        else:
            absdiff = abs(self.smoothed - self.latest)
            self.variance = ((self.variance * 3 + absdiff) // 4) & _U32
            self.smoothed = ((self.smoothed * 7 + self.latest) // 8) & _U32
        if self.smoothed == 0:
            raise RuntimeError("smoothed RTT became zero")

    def get_pto(self, max_ack_delay: int, min_pto: int) -> int:
        """Return the probe timeout for the given peer ``max_ack_delay``."""
        spread = self.variance * 4 if self.variance != 0 else min_pto
        return self.smoothed + spread + max_ack_delay

    def __repr__(self) -> str:
        return (
            f"RTT(minimum={self.minimum}, smoothed={self.smoothed}, "
            f"variance={self.variance}, latest={self.latest})"
        )


@dataclass
class LossThresholds:
    """Which loss-detection thresholds are in use."""

    use_packet_based: bool = True
    time_based_percentile: int = 1024 // 8


class AckReceivedKind(IntEnum):
    """What an incoming ACK acknowledged."""

    NON_ACK_ELICITING = 0
    ACK_ELICITING = 1
    ACK_ELICITING_LATE_ACK = 2


class AlarmAction(NamedTuple):
    """What the sender must do after the loss alarm fires."""

    min_packets_to_send: int
    restrict_sending: bool


@dataclass
class Loss:
    """Loss recovery state of one connection.

    ``loss_time`` and ``alarm_at`` are None while no timer is needed.
    ``max_ack_delay`` and ``ack_delay_exponent`` are the peer's transport
    parameters and may be changed once they become known.
    """

    conf: LossConf = SPEC_CONF
    initial_rtt: int | None = None
    max_ack_delay: int = 25
    ack_delay_exponent: int = 3
    thresholds: LossThresholds = field(init=False)
    pto_count: int = field(init=False, default=0)
    time_of_last_packet_sent: int = field(init=False, default=0)
    largest_acked_packet_plus1: list[int] = field(init=False)
    total_bytes_sent: int = field(init=False, default=0)
    loss_time: int | None = field(init=False, default=None)
    alarm_at: int | None = field(init=False, default=None)
    rtt: RTT = field(init=False)

    def __post_init__(self) -> None:
        if self.initial_rtt is None:
            self.initial_rtt = self.conf.default_initial_rtt
        self.thresholds = LossThresholds()
        self.largest_acked_packet_plus1 = [0] * NUM_EPOCHS
        self.rtt = RTT(self.initial_rtt)

    def _set_alarm(self, at: int, now: int, is_after_send: bool) -> None:
        if is_after_send:
            if not now < at:
                raise ValueError("alarm set right after sending must lie in the future")
        elif at < now:
            at = now
        self.alarm_at = at

    def update_alarm(
        self,
        now: int,
        last_retransmittable_sent_at: int | None,
        has_outstanding: bool,
        can_send_stream_data: bool,
        handshake_is_in_progress: bool,
        total_bytes_sent: int,
        is_after_send: bool,
    ) -> None:
        """Recompute ``alarm_at`` from the loss time or the probe timeout."""
        if not has_outstanding:
            self.alarm_at = None
            self.loss_time = None
            return
        if last_retransmittable_sent_at is None:
            raise ValueError("outstanding data requires a last send time")

        if self.loss_time is not None:
            self._set_alarm(self.loss_time, now, is_after_send)
            return

        if self.pto_count >= _MAX_PTO_COUNT:
            raise RuntimeError("too many consecutive probe timeouts")

        # A new tail: not in PTO recovery, no stream data left, and new data
        # sent since the previous tail.  Start speculative probing.
        if (
            self.conf.num_speculative_ptos > 0
            and self.pto_count <= 0
            and not handshake_is_in_progress
            and not can_send_stream_data
            and self.total_bytes_sent < total_bytes_sent
        ):
            if self.pto_count == 0:
                self.pto_count = -self.conf.num_speculative_ptos
            self.total_bytes_sent = total_bytes_sent

        if self.pto_count < 0:
            # speculative probes need not wait for a delayed ACK
            duration = self.rtt.get_pto(0, self.conf.min_pto) >> -self.pto_count
            duration = max(duration, self.conf.min_pto)
        else:
            mad = 0 if handshake_is_in_progress else self.max_ack_delay
            duration = self.rtt.get_pto(mad, self.conf.min_pto) << self.pto_count

        self._set_alarm(last_retransmittable_sent_at + duration, now, is_after_send)

    def on_ack_received(
        self,
        largest_newly_acked: int | None,
        epoch: int,
        now: int,
        sent_at: int,
        ack_delay_encoded: int,
        kind: AckReceivedKind,
    ) -> None:
        """Update PTO count, largest acked and RTT for a received ACK.

        ``largest_newly_acked`` is None when the ACK acknowledged nothing new.
        """
        if largest_newly_acked is not None and self.pto_count > 0:
            self.pto_count = 0

        if (
            largest_newly_acked is None
            or self.largest_acked_packet_plus1[epoch] > largest_newly_acked
        ):
            return
        self.largest_acked_packet_plus1[epoch] = largest_newly_acked + 1

        kind = AckReceivedKind(kind)
        if kind is AckReceivedKind.NON_ACK_ELICITING:
            return

        ack_delay_us = ack_delay_encoded << self.ack_delay_exponent
        ack_delay_ms = ((ack_delay_us * 2 + 1000) // 2000) & _U32
        ack_delay_ms = min(ack_delay_ms, self.max_ack_delay)
        self.rtt.update((now - sent_at) & _U32, ack_delay_ms)

        # on a late ACK: first drop packet-based detection, then widen the
        # time-based window until it reaches one RTT
        if kind is AckReceivedKind.ACK_ELICITING_LATE_ACK:
            if self.thresholds.use_packet_based:
                self.thresholds.use_packet_based = False
            else:
                self.thresholds.time_based_percentile = min(
                    self.thresholds.time_based_percentile * 2, 1024
                )

    def on_alarm(self, detect_loss: Callable[[], None]) -> AlarmAction:
        """Handle the alarm firing.

        When a loss time was set, ``detect_loss`` is called to run time-based
        loss detection; otherwise the alarm is a probe timeout.
        """
        self.alarm_at = None
        if self.loss_time is not None:
            detect_loss()
            return AlarmAction(1, False)
        self.pto_count += 1
        return AlarmAction(2 if self.pto_count > 0 else 1, True)

    def get_sentmap_expiration_time(self, max_ack_delay: int) -> int:
        """Return how long sent-packet records are kept; four probe timeouts."""
        return self.rtt.get_pto(max_ack_delay, self.conf.min_pto) * 4