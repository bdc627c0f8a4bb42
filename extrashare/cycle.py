"""
Event cycle state machine.

    Active -> Expired / Filled -> (reset) -> Active
    Active.Running <-> Active.Paused

All writes to the Global Event record that touch cycle bounds, the slot counter
or the pause state go through EventCycleManager so the reset and pause
invariants live in one place.
"""
from __future__ import annotations
import logging
import sqlite3
from enum import Enum
from typing import Optional, Tuple

from . import store
from .config import Settings
from .errors import PreconditionFailed, StoreUnavailable
from .records import GlobalState

log = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600.0


class CycleStatus(str, Enum):
    UPCOMING = "upcoming"   # reset done, eventStartTime not reached yet
    ACTIVE = "active"
    FILLED = "filled"
    EXPIRED = "expired"


class EventCycleManager:
    def __init__(self, settings: Settings):
        self.settings = settings

    # ---------------------------
    # Reads
    # ---------------------------
    def load(self, con: sqlite3.Connection) -> GlobalState:
        state = store.get_global_state(con)
        if state is None:
            log.error("[cycle] global state missing after initialization")
            raise StoreUnavailable()
        return state

    @staticmethod
    def status(state: GlobalState, now: float) -> CycleStatus:
        if now > state.event_end_time:
            return CycleStatus.EXPIRED
        if state.total_slots_used >= state.max_stake_slots:
            return CycleStatus.FILLED
        if now < state.event_start_time:
            return CycleStatus.UPCOMING
        return CycleStatus.ACTIVE

    # ---------------------------
    # Lifecycle
    # ---------------------------
    def ensure_initialized(self, con: sqlite3.Connection, now: float) -> GlobalState:
        """Create the singleton with default parameters if it does not exist yet."""
        state = store.get_global_state(con)
        if state is not None and state.event_end_time > state.event_start_time > 0:
            return state

        s = self.settings
        start = now + s.cycle_start_delay_sec
        store.upsert_global_state(con, set_fields={
            "total_slots_used": 0,
            "event_start_time": start,
            "event_end_time": start + s.event_duration_hours * SECONDS_PER_HOUR,
            "max_stake_slots": s.max_stake_slots,
            "initial_stake_amount_usd": s.initial_stake_amount_usd,
            "event_duration_hours": s.event_duration_hours,
            "max_reward_pool": s.max_reward_pool_usd,
            "last_reset_time": now,
            "is_paused": False,
            "pause_start_time": None,
            "paused_seconds": 0.0,
            "withdrawals_paused": False,
            "total_rewarded": 0.0,
            "staking_recipient_address": s.staking_recipient_address,
            "cycle_number": 1,
        })
        log.info("[cycle] global state initialized start=%.0f duration_h=%s", start, s.event_duration_hours)
        return self.load(con)

    def maybe_reset_cycle(self, con: sqlite3.Connection, state: GlobalState, now: float) -> Tuple[GlobalState, bool]:
        """Reset when the cycle expired (or filled, if configured). Returns (state, did_reset)."""
        status = self.status(state, now)
        if status == CycleStatus.EXPIRED or (status == CycleStatus.FILLED and self.settings.reset_when_filled):
            return self.reset_cycle(con, state, now), True
        return state, False

    def reset_cycle(
        self,
        con: sqlite3.Connection,
        state: GlobalState,
        now: float,
        duration_hours: Optional[float] = None,
    ) -> GlobalState:
        """
        Open a new cycle at `now`.

        Admin settings (slot cap, pool cap, stake amount, recipient, withdrawals
        flag) carry over; slot and pool counters, bounds and pause state do not.
        """
        hours = state.event_duration_hours if duration_hours is None else duration_hours
        start = now + self.settings.cycle_start_delay_sec
        store.upsert_global_state(con, set_fields={
            "total_slots_used": 0,
            "total_rewarded": 0.0,
            "event_start_time": start,
            "event_end_time": start + hours * SECONDS_PER_HOUR,
            "event_duration_hours": hours,
            "is_paused": False,
            "pause_start_time": None,
            "paused_seconds": 0.0,
            "last_reset_time": now,
            "cycle_number": state.cycle_number + 1,
        })
        swept = store.clear_reward_flags(con)
        log.info(
            "[cycle] reset cycle=%d start=%.0f duration_h=%s swept_users=%d",
            state.cycle_number + 1, start, hours, swept,
        )
        return self.load(con)

    def toggle_pause(self, con: sqlite3.Connection, state: GlobalState, now: float) -> Tuple[GlobalState, Optional[str]]:
        """Flip the pause flag. Resuming extends eventEndTime by the paused duration."""
        warning = None
        if not state.is_paused:
            store.upsert_global_state(con, set_fields={"is_paused": True, "pause_start_time": now})
            log.info("[cycle] paused at=%.0f", now)
        elif state.pause_start_time is None:
            warning = "Event resumed, but no pause start time was recorded; end time unchanged."
            store.upsert_global_state(con, set_fields={"is_paused": False})
            log.warning("[cycle] resumed without pause_start_time; end time unchanged")
        else:
            paused_for = now - state.pause_start_time
            if paused_for < 0:
                log.warning("[cycle] negative pause duration %.3f clamped to 0", paused_for)
                paused_for = 0.0
            # Pause time before eventStartTime pushes the start back; only the
            # part inside the running event counts as paused_seconds.
            before_start = min(paused_for, max(0.0, state.event_start_time - state.pause_start_time))
            store.upsert_global_state(
                con,
                set_fields={
                    "is_paused": False,
                    "pause_start_time": None,
                    "event_start_time": state.event_start_time + before_start,
                    "event_end_time": state.event_end_time + paused_for,
                },
                inc_fields={"paused_seconds": paused_for - before_start},
            )
            log.info(
                "[cycle] resumed paused_for=%.0fs before_start=%.0fs new_end=%.0f",
                paused_for, before_start, state.event_end_time + paused_for,
            )
        return self.load(con), warning

    def set_withdrawals_paused(self, con: sqlite3.Connection, paused: bool) -> GlobalState:
        store.upsert_global_state(con, set_fields={"withdrawals_paused": paused})
        return self.load(con)

    def set_params(self, con: sqlite3.Connection, **params) -> GlobalState:
        """Pure parameter mutation (stake amount, slot cap, pool cap, recipient); no reset."""
        allowed = {"initial_stake_amount_usd", "max_stake_slots", "max_reward_pool", "staking_recipient_address"}
        unknown = set(params) - allowed
        if unknown:
            raise ValueError(f"not an event parameter: {sorted(unknown)}")
        cap = params.get("max_reward_pool")
        if cap is not None:
            state = self.load(con)
            if cap < state.total_rewarded:
                raise PreconditionFailed(
                    f"Reward pool cap cannot be below the {state.total_rewarded:g} USD already rewarded this cycle."
                )
        store.upsert_global_state(con, set_fields=params)
        return self.load(con)

    # ---------------------------
    # Counters
    # ---------------------------
    def claim_slot(self, con: sqlite3.Connection, state: GlobalState) -> bool:
        return store.increment_if_below(con, "total_slots_used", 1, state.max_stake_slots)

    def release_slot(self, con: sqlite3.Connection, state: GlobalState) -> None:
        if state.total_slots_used <= 0:
            log.warning("[cycle] slot counter already %d; release clamped", state.total_slots_used)
            store.upsert_global_state(con, set_fields={"total_slots_used": 0})
            return
        store.upsert_global_state(con, inc_fields={"total_slots_used": -1})

    def add_rewarded(self, con: sqlite3.Connection, state: GlobalState, amount: float) -> None:
        """Commit a clamped payout against the pool; the total never passes max_reward_pool."""
        if amount <= 0:
            return
        if store.increment_if_below(con, "total_rewarded", amount, state.max_reward_pool):
            return
        # Only float rounding at the cap gets here: `amount` was clamped to the
        # remaining pool inside this same transaction.
        log.warning(
            "[cycle] pool increment rejected amount=%.6f total=%.6f cap=%.6f; pinned to cap",
            amount, state.total_rewarded, state.max_reward_pool,
        )
        store.upsert_global_state(con, set_fields={"total_rewarded": state.max_reward_pool})
