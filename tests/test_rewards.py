import pytest

from extrashare.config import Settings
from extrashare.rewards import RewardTable, draw, usd_to_ain

from conftest import ScriptedRng

TABLE = RewardTable.from_settings(Settings())


def test_above_threshold_draws_nothing_and_uses_no_randomness():
    rng = ScriptedRng()
    res = draw(9001, 1000.0, TABLE, rng)
    assert res.reward_usd == 0
    assert res.is_winner is False


def test_threshold_itself_still_draws():
    rng = ScriptedRng(randoms=[0.05], randints=[150])
    res = draw(9000, 1000.0, TABLE, rng)
    assert res.reward_usd == 150


def test_large_win_range():
    rng = ScriptedRng(randoms=[0.05], randints=[500])
    res = draw(10, 1000.0, TABLE, rng)
    assert res.reward_usd == 500
    assert res.is_winner is True
    assert res.clamped is False
    assert rng.randint_calls == [(100, 899)]


@pytest.mark.parametrize("roll", [0.1, 0.3, 0.5999])
def test_regular_win_range(roll):
    rng = ScriptedRng(randoms=[roll], randints=[42])
    res = draw(10, 1000.0, TABLE, rng)
    assert res.reward_usd == 42
    assert rng.randint_calls == [(10, 99)]


@pytest.mark.parametrize("roll", [0.6, 0.99])
def test_losing_roll(roll):
    rng = ScriptedRng(randoms=[roll])
    res = draw(10, 1000.0, TABLE, rng)
    assert res.reward_usd == 0
    assert res.is_winner is False
    assert rng.randint_calls == []


def test_clamped_to_remaining_pool():
    rng = ScriptedRng(randoms=[0.05], randints=[800])
    res = draw(10, 50.0, TABLE, rng)
    assert res.reward_usd == 50.0
    assert res.is_winner is True
    assert res.clamped is True


def test_empty_pool_is_not_a_win():
    rng = ScriptedRng(randoms=[0.05], randints=[800])
    res = draw(10, 0.0, TABLE, rng)
    assert res.reward_usd == 0
    assert res.is_winner is False
    assert res.clamped is True


def test_default_rng_stays_in_table():
    res = draw(1, 1_000_000.0, TABLE)
    assert res.reward_usd == 0 or 10 <= res.reward_usd <= 899


def test_usd_to_ain():
    assert usd_to_ain(13.7, 0.137) == pytest.approx(100.0)
    assert usd_to_ain(0, 0.137) == 0
