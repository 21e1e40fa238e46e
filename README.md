# quiccore

Pure-Python building blocks for a QUIC transport. The package uses only the
standard library. It does no I/O: each part is a small state machine that you
drive from your own code, passing in times in milliseconds and sizes in bytes.

## Modules

- `quiccore.ranges` provides `RangeSet`, a sorted list of non-overlapping
  half-open `Range(start, end)` values. Adjacent and overlapping ranges are
  merged. It supports `add`, `subtract`, `drop_by_indices`, `clear`, `len()`,
  indexing and iteration. `RangeSet.with_range(start, end)` creates a set that
  holds exactly one range, which may be empty.
- `quiccore.recvstate` provides `RecvState`, which tracks the stream offsets
  received so far and the final size (`eos`). `update(off, length, is_fin,
  max_ranges)` returns the number of new bytes. `reset(eos_at)` returns the
  number of bytes that were never received. `transfer_complete()` reports
  whether the transfer is done, and `RecvState.closed()` builds a state for a
  direction that carries no data.
- `quiccore.errors` defines `QuicError`, which carries `code` and `message`.
  Its subclasses are `TransportError`, `FinalSizeError` (0x06),
  `ProtocolViolationError` (0x0a) and `StateExhaustionError` (0xff07).
- `quiccore.rate` provides `RateMeter(num_samples=10, sample_period=50)`. It
  takes samples of the delivery rate only while the sender is limited by its
  congestion window; call `in_cwnd_limited` and `not_cwnd_limited` to mark
  those periods. `report()` returns a `Rate` with `latest`, `smoothed` and
  `stdev`, all in bytes per second.
- `quiccore.cc` provides `CongestionController` with the Reno, CUBIC and Pico
  algorithms, chosen with `CCType`. Its event methods are `on_acked`,
  `on_lost`, `on_sent` and `on_persistent_congestion`. `on_persistent_congestion`
  only counts the event and does not change the window. `switch_to` changes the
  algorithm and keeps the existing state where it can be reused.
  `calc_initial_cwnd(max_packets, max_udp_payload_size)` uses at least 2
  packets and caps the payload size at 1472.
- `quiccore.loss` provides `RTT`, an RTT estimator with `update` and
  `get_pto`, and `Loss`, which holds the loss-recovery state. `Loss` offers
  `update_alarm` for the loss or probe-timeout alarm, `on_ack_received`,
  `on_alarm` and `get_sentmap_expiration_time`. `on_alarm` returns an
  `AlarmAction(min_packets_to_send, restrict_sending)`. `SPEC_CONF` and
  `PERFORMANT_CONF` are ready-made `LossConf` values; `PERFORMANT_CONF` sends
  two speculative probes at the tail.
- `quiccore.local_cid` provides `LocalCIDSet`, which manages the connection IDs
  offered to the peer. Each ID moves through the idle, pending, in-flight and
  delivered states (`LocalCIDState`). The set supports `set_size`, `on_sent`,
  `on_acked`, `on_lost`, `retire` and `has_pending`. If the peer retires its
  only ID, `retire` raises `ProtocolViolationError`. `CIDEncryptor` turns a
  `CIDPlaintext` into an 8- or 16-byte CID plus a stateless reset token, using
  an HMAC-SHA256 keystream. `decrypt_cid` reverses it.
- `quiccore.linklist` provides `LinkNode`, an intrusive circular doubly linked
  list with `insert`, `unlink`, `insert_list`, `is_linked` and iteration.

## Examples

```python
from quiccore.ranges import RangeSet

ranges = RangeSet()
ranges.add(0, 10)
ranges.add(20, 30)
ranges.add(10, 20)        # closes the gap: [0, 30)
ranges.subtract(5, 7)     # [0, 5), [7, 30)
print(list(ranges))
```

```python
from quiccore.cc import CCType, CongestionController, calc_initial_cwnd

cc = CongestionController(CCType.CUBIC, calc_initial_cwnd(10, 1200))
cc.on_acked(1200, largest_acked=0, inflight=1200, next_pn=1, now=100,
            max_udp_payload_size=1200, smoothed_rtt=50)
cc.on_lost(1200, lost_pn=1, next_pn=5, now=200,
           max_udp_payload_size=1200, smoothed_rtt=50)
print(cc.cwnd, cc.ssthresh)
```

```python
from quiccore.recvstate import RecvState

state = RecvState()
state.update(0, 100, is_fin=False, max_ranges=63)
state.update(100, 50, is_fin=True, max_ranges=63)
print(state.transfer_complete())  # True
```

## What it does not do

These are parts, not a working QUIC endpoint. The package does not encode or
decode packets or frames, open sockets, perform the TLS handshake, or encrypt
packets. It also does not keep a map of sent packets. `Loss.on_alarm` therefore
takes a `detect_loss` callable, and detecting loss among sent packets is left
to the caller.

## Installing and testing

```
pip install .
pip install .[test]
pytest
```