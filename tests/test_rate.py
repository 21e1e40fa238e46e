import pytest

from quiccore.rate import Rate, RateMeter, RateSample


def _one_full_sample(meter, bytes_acked=5000):
    meter.in_cwnd_limited(0)
    meter.on_ack(100, 0, 0)
    meter.on_ack(150, bytes_acked, 1)


def test_empty_meter_reports_zero():
    assert RateMeter().report() == Rate(0, 0, 0)


def test_invalid_sample_count():
    with pytest.raises(ValueError):
        RateMeter(num_samples=0)


def test_ack_outside_cwnd_limited_is_ignored():
    meter = RateMeter()
    meter.on_ack(0, 0, 0)
    meter.on_ack(100, 10000, 1)
    assert meter.report() == Rate()


def test_single_full_sample():
    meter = RateMeter()
    _one_full_sample(meter)
    rate = meter.report()
    assert rate.latest == 100000
    assert rate.smoothed == rate.latest
    assert rate.stdev == 0


def test_full_sample_is_committed_to_ring():
    meter = RateMeter()
    _one_full_sample(meter)
    assert RateSample(elapsed=50, bytes_acked=5000) in meter.past_samples
    assert meter.current_sample == RateSample()


def test_partial_sample_used_when_no_full_sample():
    meter = RateMeter()
    meter.in_cwnd_limited(0)
    meter.on_ack(0, 0, 0)
    meter.on_ack(20, 1000, 1)
    rate = meter.report()
    assert rate.latest > 0
    assert rate.latest == rate.smoothed
    assert rate.stdev == 0


def test_exit_commits_partial_sample():
    meter = RateMeter()
    meter.in_cwnd_limited(0)
    meter.on_ack(0, 0, 0)
    meter.on_ack(20, 1000, 1)
    before = meter.report()
    meter.not_cwnd_limited(5)
    meter.on_ack(30, 2000, 5)
    assert meter.current_sample == RateSample()
    assert meter.report() == before
    # no longer cwnd-limited: further acks do not change the estimate
    meter.on_ack(500, 900000, 6)
    assert meter.report() == before


def test_repeated_in_cwnd_limited_is_noop():
    meter = RateMeter()
    meter.in_cwnd_limited(0)
    meter.on_ack(0, 0, 0)
    meter.in_cwnd_limited(10)
    meter.on_ack(50, 5000, 1)
    assert meter.report().latest > 0


def test_two_different_samples():
    meter = RateMeter()
    meter.in_cwnd_limited(0)
    meter.on_ack(0, 0, 0)
    meter.on_ack(50, 5000, 1)
    first = meter.report()
    meter.on_ack(100, 15000, 2)
    second = meter.report()
    assert second.latest > first.latest
    assert first.latest < second.smoothed < second.latest
    assert second.stdev > 0


def test_ring_buffer_wraps_with_equal_rates():
    meter = RateMeter(num_samples=2)
    meter.in_cwnd_limited(0)
    meter.on_ack(0, 0, 0)
    for i in range(1, 5):
        meter.on_ack(50 * i, 5000 * i, i)
    rate = meter.report()
    assert len(meter.past_samples) == 2
    assert all(s == RateSample(50, 5000) for s in meter.past_samples)
    assert rate.stdev == 0
    assert rate.latest == rate.smoothed


def test_new_phase_commits_pending_partial():
    meter = RateMeter()
    meter.in_cwnd_limited(0)
    meter.on_ack(0, 0, 0)
    meter.on_ack(20, 1000, 1)
    meter.not_cwnd_limited(3)
    meter.in_cwnd_limited(7)
    assert RateSample(elapsed=20, bytes_acked=1000) in meter.past_samples
    assert meter.current_sample == RateSample()