"""
BXC accrual.

Accrual is pulled, never pushed: there is no ticking job. Every request that
touches a user first calls flush_accrual(), which credits the time elapsed
since the user's last_accrual_time and moves that marker to `now` (it stays put
while the event is paused). Because the marker only moves forward and each
interval is credited once, repeated polling never double counts.
"""
from __future__ import annotations
import logging
import sqlite3
from dataclasses import replace
from typing import Tuple

from . import store
from .records import GlobalState, UserRecord

log = logging.getLogger(__name__)


def accrue(user: UserRecord, state: GlobalState, now: float, rate_per_sec: float) -> Tuple[UserRecord, float]:
    """Return (user with balance and marker advanced, amount earned)."""
    paused_now = state.paused_seconds_at(now)
    last = user.last_accrual_time

    if user.slots_staked <= 0 or last is None:
        return replace(user, last_accrual_time=now, paused_seconds_seen=paused_now), 0.0
    if state.is_paused:
        if state.pause_start_time is None:
            log.warning("[accrual] paused without pause_start_time; wallet=%s not credited", user.wallet_address)
            return replace(user, last_accrual_time=now, paused_seconds_seen=paused_now), 0.0
        # Marker held: after resume the window spans the pause and
        # paused_seconds takes the paused stretch back out.
        return user, 0.0

    if last > now:
        log.warning(
            "[accrual] clock skew wallet=%s last_accrual_time=%.3f now=%.3f",
            user.wallet_address, last, now,
        )
        return user, 0.0

    # paused_seconds restarts at 0 on reset, so a marker from an earlier cycle
    # (or written in the reset's own tick) has seen nothing of this one.
    seen = user.paused_seconds_seen if last > state.last_reset_time else 0.0
    paused_in_window = max(0.0, paused_now - seen)

    window_start = max(last, state.event_start_time)
    window_end = min(now, state.event_end_time)
    elapsed = 0.0
    if window_start < window_end:
        elapsed = max(0.0, (window_end - window_start) - paused_in_window)

    earned = elapsed * rate_per_sec
    updated = replace(
        user,
        primary_balance=user.primary_balance + earned,
        last_accrual_time=now,
        paused_seconds_seen=paused_now,
    )
    return updated, earned


def flush_accrual(
    con: sqlite3.Connection,
    user: UserRecord,
    state: GlobalState,
    now: float,
    rate_per_sec: float,
) -> UserRecord:
    """Accrue and commit in the caller's transaction."""
    updated, earned = accrue(user, state, now, rate_per_sec)
    store.upsert_user(
        con,
        user.wallet_address,
        now,
        set_fields={
            "last_accrual_time": updated.last_accrual_time,
            "paused_seconds_seen": updated.paused_seconds_seen,
        },
        inc_fields={"primary_balance": earned} if earned > 0 else None,
    )
    if earned > 0:
        log.debug("[accrual] wallet=%s earned=%.4f balance=%.4f", user.wallet_address, earned, updated.primary_balance)
    return updated
