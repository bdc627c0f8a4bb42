import pytest

from extrashare import store
from extrashare.errors import StoreUnavailable
from extrashare.records import StakeTransaction

from conftest import ALICE, BOB, CAROL, T0


def test_init_db_is_idempotent(ledger):
    ledger.init_db()
    with ledger.session() as con:
        assert store.count_users(con) == 0
        assert store.get_global_state(con) is None


def test_ping(ledger):
    assert ledger.ping() is True


def test_create_user_defaults(ledger):
    with ledger.session() as con:
        u = store.create_user(con, ALICE, T0)
    assert u.wallet_address == ALICE
    assert u.referral_code == ALICE[-6:]
    assert u.slots_staked == 0
    assert u.primary_balance == 0
    assert u.last_accrual_time == T0
    assert u.stake_transactions == []


def test_upsert_user_set_inc_and_append(ledger):
    with ledger.session() as con:
        store.upsert_user(
            con, ALICE, T0,
            set_fields={"staked_usd_value": 8.0},
            inc_fields={"slots_staked": 1, "primary_balance": 100.0},
            append_tx=StakeTransaction(hash="0xabc", timestamp=T0, amount_usd=8.0),
        )
        store.upsert_user(con, ALICE, T0 + 1, inc_fields={"primary_balance": 5.0})
        u = store.get_user(con, ALICE)
    assert u.slots_staked == 1
    assert u.primary_balance == pytest.approx(105.0)
    assert u.created_at == T0
    assert [t.hash for t in u.stake_transactions] == ["0xabc"]


def test_upsert_user_rejects_unknown_fields(ledger):
    with ledger.session() as con:
        with pytest.raises(ValueError):
            store.upsert_user(con, ALICE, T0, set_fields={"wallet_address": BOB})
        with pytest.raises(ValueError):
            store.upsert_user(con, ALICE, T0, inc_fields={"revealed_at": 1})


def test_session_rolls_back_on_error(ledger):
    with pytest.raises(RuntimeError):
        with ledger.session() as con:
            store.create_user(con, ALICE, T0)
            raise RuntimeError("boom")
    with ledger.session() as con:
        assert store.get_user(con, ALICE) is None


def test_withdrawn_tx_hash_stays_recorded(ledger):
    with ledger.session() as con:
        store.upsert_user(con, ALICE, T0, append_tx=StakeTransaction("0xabc", T0, 8.0))
        assert store.withdraw_stake_transactions(con, ALICE) == 1
        assert store.tx_hash_recorded(con, ALICE, "0xabc") is True
        assert store.tx_hash_recorded(con, BOB, "0xabc") is False
        assert store.get_user(con, ALICE).stake_transactions == []


def test_referral_lookup_prefers_oldest(ledger):
    twin = "0x" + "00" * 17 + ALICE[-6:]
    with ledger.session() as con:
        store.create_user(con, twin, T0 + 10)
        store.create_user(con, ALICE, T0)
        found = store.find_user_by_referral_code(con, ALICE[-6:].upper())
        assert found.wallet_address == ALICE
        assert store.find_user_by_referral_code(con, "zzzzzz") is None


def test_clear_reward_flags_sweeps_everyone(ledger):
    with ledger.session() as con:
        for i, w in enumerate((ALICE, BOB, CAROL)):
            store.upsert_user(con, w, T0, set_fields={
                "revealed_at": T0 + i, "collected_at": T0 + i, "last_revealed_reward_usd": 10.0,
            })
        assert store.clear_reward_flags(con) == 3
        for w in (ALICE, BOB, CAROL):
            u = store.get_user(con, w)
            assert u.revealed_at is None
            assert u.collected_at is None
            assert u.last_revealed_reward_usd == 0


def test_list_users_sorted(ledger):
    with ledger.session() as con:
        store.upsert_user(con, ALICE, T0, inc_fields={"primary_balance": 10})
        store.upsert_user(con, BOB, T0, inc_fields={"primary_balance": 30})
        store.upsert_user(con, CAROL, T0, inc_fields={"primary_balance": 20})
        desc = store.list_users_sorted(con, "primary_balance", "desc", 10)
        asc = store.list_users_sorted(con, "primary_balance", "ASC", 2)
        assert [u.wallet_address for u in desc] == [BOB, CAROL, ALICE]
        assert [u.wallet_address for u in asc] == [ALICE, CAROL]
        with pytest.raises(ValueError):
            store.list_users_sorted(con, "wallet_address; DROP TABLE users", "desc", 10)
        with pytest.raises(ValueError):
            store.list_users_sorted(con, "primary_balance", "sideways", 10)


def test_increment_if_below_respects_bound(ledger):
    with ledger.session() as con:
        store.upsert_global_state(con, set_fields={"total_slots_used": 1, "max_stake_slots": 2})
        assert store.increment_if_below(con, "total_slots_used", 1, 2) is True
        assert store.increment_if_below(con, "total_slots_used", 1, 2) is False
        assert store.get_global_state(con).total_slots_used == 2
        with pytest.raises(ValueError):
            store.increment_if_below(con, "max_stake_slots", 1, 10)


def test_global_state_bool_roundtrip(ledger):
    with ledger.session() as con:
        store.upsert_global_state(con, set_fields={"is_paused": True, "withdrawals_paused": False})
        s = store.get_global_state(con)
    assert s.is_paused is True
    assert s.withdrawals_paused is False
    assert s.cycle_number == 1


def test_sqlite_error_in_session_rolls_back_as_store_unavailable(ledger):
    with pytest.raises(StoreUnavailable):
        with ledger.session() as con:
            store.create_user(con, ALICE, T0)
            con.execute("SELECT * FROM no_such_table")
    with ledger.session() as con:
        assert store.get_user(con, ALICE) is None
