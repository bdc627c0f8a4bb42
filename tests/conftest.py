import dataclasses

import pytest
from fastapi.testclient import TestClient

from extrashare.actions import ActionController
from extrashare.admin import AdminController
from extrashare.app import create_app
from extrashare.config import Settings
from extrashare.cycle import EventCycleManager
from extrashare.store import LedgerStore

T0 = 1_700_000_000.0

ADMIN = "0x" + "ad" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20
DAVE = "0x" + "d4" * 20


class FakeClock:
    def __init__(self, t: float = T0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> float:
        self.t += seconds
        return self.t


class ScriptedRng:
    """Deterministic stand-in for secrets.SystemRandom; fails loudly when over-consumed."""

    def __init__(self, randoms=(), randints=()):
        self.randoms = list(randoms)
        self.randints = list(randints)
        self.randint_calls = []

    def random(self) -> float:
        if not self.randoms:
            raise AssertionError("rng.random() called more often than scripted")
        return self.randoms.pop(0)

    def randint(self, a: int, b: int) -> int:
        self.randint_calls.append((a, b))
        if not self.randints:
            raise AssertionError("rng.randint() called more often than scripted")
        return self.randints.pop(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return ScriptedRng()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=str(tmp_path / "extrashare-test.db"),
        admin_wallet_address=ADMIN,
        event_duration_hours=1.0,
        max_stake_slots=3,
        max_reward_pool_usd=1000.0,
        staking_recipient_address="0x" + "ee" * 20,
    )


@pytest.fixture
def ledger(settings):
    led = LedgerStore(settings.db_path)
    led.init_db()
    return led


def build(settings, clock, rng):
    """Wire the controllers the way create_app does, on an initialized store."""
    led = LedgerStore(settings.db_path)
    led.init_db()
    cycles = EventCycleManager(settings)
    actions = ActionController(led, cycles, settings, rng=rng, clock=clock)
    admin = AdminController(led, cycles, settings, clock=clock)
    actions.initialize()
    return led, cycles, actions, admin


@pytest.fixture
def wired(settings, clock, rng):
    return build(settings, clock, rng)


@pytest.fixture
def actions(wired):
    return wired[2]


@pytest.fixture
def admin(wired):
    return wired[3]


@pytest.fixture
def with_settings(tmp_path, clock, rng, settings):
    """Factory for controllers on a fresh db with overridden settings."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        s = dataclasses.replace(settings, db_path=str(tmp_path / f"variant-{counter['n']}.db"), **overrides)
        return build(s, clock, rng)

    return _make


@pytest.fixture
def client(settings, clock, rng):
    with TestClient(create_app(settings, rng=rng, clock=clock)) as c:
        yield c


def tx(n: int) -> str:
    return "0x" + f"{n:064x}"
