import pytest

from quiccore.cc import (
    MIN_CWND,
    UNBOUNDED,
    CCType,
    CongestionController,
    calc_initial_cwnd,
)

MTU = 1200
RTT = 50


def lose(cc, lost_pn=5, next_pn=10, now=1000):
    cc.on_lost(MTU, lost_pn, next_pn, now, MTU, RTT)


def ack(cc, nbytes, largest_acked=100, now=2000, inflight=None):
    cc.on_acked(nbytes, largest_acked, nbytes if inflight is None else inflight, 200, now, MTU, RTT)


def test_initial_cwnd_uses_product_of_arguments():
    assert calc_initial_cwnd(10, MTU) == 10 * MTU


def test_initial_cwnd_enforces_minimum_packets():
    assert calc_initial_cwnd(1, MTU) == calc_initial_cwnd(MIN_CWND, MTU)
    assert calc_initial_cwnd(0, MTU) == MIN_CWND * MTU


def test_initial_cwnd_caps_payload_size():
    assert calc_initial_cwnd(10, 9000) == calc_initial_cwnd(10, 1472)
    assert calc_initial_cwnd(10, 1473) == calc_initial_cwnd(10, 1472)


@pytest.mark.parametrize("cc_type", list(CCType))
def test_fresh_controller_state(cc_type):
    cc = CongestionController(cc_type, 10 * MTU)
    assert cc.cc_type is cc_type
    assert cc.cwnd == cc.cwnd_initial == cc.cwnd_maximum == 10 * MTU
    assert cc.ssthresh == UNBOUNDED
    assert cc.cwnd_minimum == UNBOUNDED
    assert cc.num_loss_episodes == 0


def test_type_from_string():
    cc = CongestionController("cubic", 10 * MTU)
    assert cc.cc_type is CCType.CUBIC


@pytest.mark.parametrize("cc_type", [CCType.RENO, CCType.CUBIC])
def test_slow_start_adds_acked_bytes(cc_type):
    cc = CongestionController(cc_type, 10 * MTU)
    ack(cc, 3000)
    assert cc.cwnd == 10 * MTU + 3000
    assert cc.cwnd_maximum == cc.cwnd


@pytest.mark.parametrize("cc_type", list(CCType))
def test_ack_more_than_inflight_rejected(cc_type):
    cc = CongestionController(cc_type, 10 * MTU)
    with pytest.raises(ValueError):
        cc.on_acked(2000, 1, 1000, 2, 0, MTU, RTT)


@pytest.mark.parametrize("cc_type", list(CCType))
def test_loss_reduces_window_and_enters_recovery(cc_type):
    cc = CongestionController(cc_type, 20 * MTU)
    before = cc.cwnd
    lose(cc, lost_pn=5, next_pn=10)
    assert cc.cwnd < before
    assert cc.ssthresh == cc.cwnd
    assert cc.cwnd_minimum == cc.cwnd
    assert cc.recovery_end == 10
    assert cc.num_loss_episodes == 1
    assert cc.cwnd_exiting_slow_start == before


@pytest.mark.parametrize("cc_type", list(CCType))
def test_loss_within_recovery_ignored(cc_type):
    cc = CongestionController(cc_type, 20 * MTU)
    lose(cc, lost_pn=5, next_pn=10)
    after = cc.cwnd
    lose(cc, lost_pn=9, next_pn=20)
    assert cc.cwnd == after
    assert cc.num_loss_episodes == 1
    assert cc.recovery_end == 10


@pytest.mark.parametrize("cc_type", list(CCType))
def test_no_growth_during_recovery(cc_type):
    cc = CongestionController(cc_type, 20 * MTU)
    lose(cc, lost_pn=5, next_pn=10)
    after = cc.cwnd
    ack(cc, 5 * MTU, largest_acked=9)
    assert cc.cwnd == after


@pytest.mark.parametrize("cc_type", list(CCType))
def test_window_never_below_minimum(cc_type):
    cc = CongestionController(cc_type, MIN_CWND * MTU)
    lose(cc)
    assert cc.cwnd == MIN_CWND * MTU


def test_reno_congestion_avoidance_one_mtu_per_window():
    cc = CongestionController(CCType.RENO, 10 * MTU)
    lose(cc, next_pn=10)
    window = cc.cwnd
    ack(cc, window - 1, largest_acked=10)
    assert cc.cwnd == window
    assert cc.stash == window - 1
    ack(cc, 1, largest_acked=11)
    assert cc.cwnd == window + MTU
    assert cc.stash == 0
    assert cc.cwnd_maximum >= cc.cwnd


def test_pico_slow_start_accumulates_per_mtu():
    cc = CongestionController(CCType.PICO, 10 * MTU)
    ack(cc, MTU // 2)
    assert cc.cwnd == 10 * MTU
    assert cc.stash == MTU // 2
    ack(cc, MTU // 2)
    assert cc.cwnd == 11 * MTU
    assert cc.stash == 0


def test_pico_congestion_avoidance_uses_increase_rate():
    cc = CongestionController(CCType.PICO, 10 * MTU)
    before = cc.cwnd
    lose(cc, next_pn=10)
    rate = cc.bytes_per_mtu_increase
    assert 0 < rate <= before
    window = cc.cwnd
    ack(cc, rate - 1, largest_acked=10)
    assert cc.cwnd == window
    ack(cc, 1, largest_acked=11)
    assert cc.cwnd == window + MTU
    assert cc.stash == 0


def test_cubic_grows_after_loss_without_shrinking():
    cc = CongestionController(CCType.CUBIC, 20 * MTU)
    lose(cc, next_pn=10, now=1000)
    after_loss = cc.cwnd
    previous = after_loss
    for step in range(1, 40):
        ack(cc, MTU, largest_acked=10 + step, now=1000 + step * 100, inflight=after_loss)
        assert cc.cwnd >= previous
        assert cc.cwnd_maximum >= cc.cwnd
        previous = cc.cwnd
    assert cc.cwnd > after_loss


def test_cubic_loss_records_epoch():
    cc = CongestionController(CCType.CUBIC, 20 * MTU)
    before = cc.cwnd
    lose(cc, now=1234)
    assert cc.cubic.avoidance_start == 1234
    assert cc.cubic.w_max == before
    assert cc.cubic.w_last_max == before
    assert cc.cubic.k > 0


def test_cubic_fast_convergence():
    cc = CongestionController(CCType.CUBIC, 20 * MTU)
    lose(cc, lost_pn=0, next_pn=10, now=1000)
    second_before = cc.cwnd
    lose(cc, lost_pn=10, next_pn=20, now=2000)
    assert cc.cubic.w_last_max == second_before
    assert cc.cubic.w_max < second_before
    assert cc.num_loss_episodes == 2


def test_cubic_on_sent_skips_idle_period():
    cc = CongestionController(CCType.CUBIC, 20 * MTU)
    lose(cc, now=1000)
    cc.on_sent(MTU, 5000, 1100)
    assert cc.cubic.avoidance_start == 1000
    assert cc.cubic.last_sent_time == 1100
    cc.on_sent(MTU, MTU, 1500)
    assert cc.cubic.avoidance_start == 1000 + (1500 - 1100)
    assert cc.cubic.last_sent_time == 1500


def test_cubic_on_sent_before_loss_keeps_epoch_zero():
    cc = CongestionController(CCType.CUBIC, 20 * MTU)
    cc.on_sent(MTU, MTU, 100)
    cc.on_sent(MTU, MTU, 500)
    assert cc.cubic.avoidance_start == 0
    assert cc.cubic.last_sent_time == 500


@pytest.mark.parametrize("cc_type", list(CCType))
def test_persistent_congestion_keeps_window(cc_type):
    cc = CongestionController(cc_type, 20 * MTU)
    lose(cc)
    window, threshold = cc.cwnd, cc.ssthresh
    cc.on_persistent_congestion(5000)
    assert (cc.cwnd, cc.ssthresh) == (window, threshold)


def test_switch_in_slow_start_keeps_window():
    cc = CongestionController(CCType.RENO, 10 * MTU)
    ack(cc, 3000)
    window = cc.cwnd
    cc.switch_to(CCType.CUBIC)
    assert cc.cc_type is CCType.CUBIC
    assert cc.cwnd == window


def test_switch_from_cubic_after_loss_restarts():
    cc = CongestionController(CCType.CUBIC, 10 * MTU)
    lose(cc)
    cc.switch_to(CCType.RENO)
    assert cc.cc_type is CCType.RENO
    assert cc.cwnd == cc.cwnd_initial
    assert cc.ssthresh == UNBOUNDED
    assert cc.num_loss_episodes == 0


def test_switch_from_reno_after_loss_to_cubic_restarts():
    cc = CongestionController(CCType.RENO, 10 * MTU)
    lose(cc)
    cc.switch_to("cubic")
    assert cc.cc_type is CCType.CUBIC
    assert cc.cwnd == cc.cwnd_initial
    assert cc.cwnd_exiting_slow_start == 0


def test_switch_between_reno_and_pico_keeps_stash():
    cc = CongestionController(CCType.RENO, 10 * MTU)
    lose(cc, next_pn=10)
    ack(cc, 500, largest_acked=10)
    window = cc.cwnd
    cc.switch_to(CCType.PICO)
    assert cc.cc_type is CCType.PICO
    assert cc.stash == 500
    assert cc.cwnd == window
    assert 0 < cc.bytes_per_mtu_increase <= window
    cc.switch_to(CCType.RENO)
    assert cc.cc_type is CCType.RENO
    assert cc.stash == 500
    assert cc.num_loss_episodes == 1


def test_switch_to_same_type_changes_nothing():
    cc = CongestionController(CCType.PICO, 10 * MTU)
    lose(cc)
    snapshot = (cc.cwnd, cc.ssthresh, cc.stash, cc.bytes_per_mtu_increase)
    cc.switch_to(CCType.PICO)
    assert (cc.cwnd, cc.ssthresh, cc.stash, cc.bytes_per_mtu_increase) == snapshot


def test_switch_to_unknown_type_rejected():
    cc = CongestionController(CCType.RENO, 10 * MTU)
    with pytest.raises(ValueError):
        cc.switch_to("vegas")