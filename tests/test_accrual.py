import pytest

from extrashare.accrual import accrue
from extrashare.records import GlobalState, UserRecord

from conftest import ADMIN, ALICE, T0, tx

RATE = 0.001


def _state(**kw):
    base = dict(
        total_slots_used=1,
        event_start_time=T0,
        event_end_time=T0 + 3600,
        max_stake_slots=10,
        initial_stake_amount_usd=8.0,
        event_duration_hours=1.0,
        max_reward_pool=1000.0,
        last_reset_time=T0,
    )
    base.update(kw)
    return GlobalState(**base)


def _user(**kw):
    base = dict(wallet_address=ALICE, referral_code=ALICE[-6:], created_at=T0,
                slots_staked=1, primary_balance=0.0, last_accrual_time=T0)
    base.update(kw)
    return UserRecord(**base)


def test_unstaked_user_earns_nothing_but_marker_moves():
    u, earned = accrue(_user(slots_staked=0), _state(), T0 + 100, RATE)
    assert earned == 0
    assert u.last_accrual_time == T0 + 100


def test_accrual_clipped_to_event_window():
    u, earned = accrue(_user(last_accrual_time=T0 - 500), _state(), T0 + 5000, RATE)
    assert earned == pytest.approx(3600 * RATE)
    assert u.last_accrual_time == T0 + 5000


def test_running_pause_holds_balance_and_marker():
    state = _state(is_paused=True, pause_start_time=T0 + 100)
    u, earned = accrue(_user(), state, T0 + 400, RATE)
    assert earned == 0
    assert u.last_accrual_time == T0

    # After resume (300s paused) the pre-pause stretch is still credited once.
    resumed = _state(paused_seconds=300.0, event_end_time=T0 + 3900)
    u2, earned2 = accrue(u, resumed, T0 + 500, RATE)
    assert earned2 == pytest.approx(200 * RATE)
    assert u2.last_accrual_time == T0 + 500


def test_completed_pause_is_subtracted_once():
    state = _state(paused_seconds=200.0, event_end_time=T0 + 3800)
    u, earned = accrue(_user(), state, T0 + 1000, RATE)
    assert earned == pytest.approx(800 * RATE)
    assert u.paused_seconds_seen == 200.0

    _, earned2 = accrue(u, state, T0 + 1100, RATE)
    assert earned2 == pytest.approx(100 * RATE)


def test_marker_from_previous_cycle_sees_no_pause():
    state = _state(event_start_time=T0 + 10000, event_end_time=T0 + 13600, last_reset_time=T0 + 10000)
    u = _user(last_accrual_time=T0 + 50, paused_seconds_seen=999.0)
    _, earned = accrue(u, state, T0 + 10100, RATE)
    assert earned == pytest.approx(100 * RATE)


def test_clock_skew_earns_nothing():
    u = _user(last_accrual_time=T0 + 500)
    u2, earned = accrue(u, _state(), T0 + 100, RATE)
    assert earned == 0
    assert u2.last_accrual_time == T0 + 500


def test_polling_does_not_double_count(actions, clock):
    actions.stake(ALICE, tx(1))
    clock.advance(100)
    first = actions.get_status(ALICE)["user"].primary_balance
    second = actions.get_status(ALICE)["user"].primary_balance
    assert first == pytest.approx(8000 + 100 * RATE)
    assert second == pytest.approx(first)

    clock.advance(50)
    third = actions.get_status(ALICE)["user"].primary_balance
    assert third == pytest.approx(8000 + 150 * RATE)


def test_pause_and_resume_through_controllers(actions, admin, clock):
    actions.stake(ALICE, tx(1))
    clock.advance(100)
    admin.toggle_pause(ADMIN)
    clock.advance(50)
    assert actions.get_status(ALICE)["user"].primary_balance == pytest.approx(8000)

    clock.advance(50)
    res = admin.toggle_pause(ADMIN)
    assert res["state"].event_end_time == pytest.approx(T0 + 3600 + 100)

    clock.advance(100)
    assert actions.get_status(ALICE)["user"].primary_balance == pytest.approx(8000 + 200 * RATE)


def test_accrual_stops_at_event_end(actions, clock):
    actions.stake(ALICE, tx(1))
    clock.advance(3600 + 900)
    bal = actions.get_status(ALICE)["user"].primary_balance
    assert bal == pytest.approx(8000 + 3600 * RATE)


def test_pause_before_event_start_does_not_eat_active_time(with_settings, clock):
    _, _, actions, admin = with_settings(cycle_start_delay_sec=600)
    actions.stake(ALICE, tx(1))
    clock.advance(100)
    admin.toggle_pause(ADMIN)
    clock.advance(200)
    state = admin.toggle_pause(ADMIN)["state"]

    clock.t = state.event_start_time + 1000
    bal = actions.get_status(ALICE)["user"].primary_balance
    assert bal == pytest.approx(8000 + 1000 * RATE)


def test_marker_written_in_reset_tick_ignores_old_pause_count():
    state = _state(last_reset_time=T0, paused_seconds=100.0)
    u = _user(last_accrual_time=T0, paused_seconds_seen=500.0)
    _, earned = accrue(u, state, T0 + 1000, RATE)
    assert earned == pytest.approx(900 * RATE)
