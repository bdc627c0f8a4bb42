from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class StakeTransaction:
    hash: str
    timestamp: float
    amount_usd: float


@dataclass(frozen=True)
class UserRecord:
    wallet_address: str
    referral_code: str
    created_at: float
    slots_staked: int = 0
    staked_usd_value: float = 0.0
    primary_balance: float = 0.0      # BXC
    secondary_balance: float = 0.0    # AIN
    last_accrual_time: Optional[float] = None
    # GlobalState.paused_seconds as observed at last_accrual_time
    paused_seconds_seen: float = 0.0
    revealed_at: Optional[float] = None
    collected_at: Optional[float] = None
    last_revealed_reward_usd: float = 0.0
    last_referral_bonus_at: Optional[float] = None
    referral_count: int = 0
    stake_transactions: List[StakeTransaction] = field(default_factory=list)

    def staked_since(self, ts: float) -> bool:
        return any(tx.timestamp >= ts for tx in self.stake_transactions)


@dataclass(frozen=True)
class GlobalState:
    total_slots_used: int
    event_start_time: float
    event_end_time: float
    max_stake_slots: int
    initial_stake_amount_usd: float
    event_duration_hours: float
    max_reward_pool: float
    last_reset_time: float
    is_paused: bool = False
    pause_start_time: Optional[float] = None
    # paused time accumulated in the current cycle (excluding a pause still running)
    paused_seconds: float = 0.0
    withdrawals_paused: bool = False
    total_rewarded: float = 0.0
    staking_recipient_address: str = ""
    cycle_number: int = 1

    @property
    def reward_pool_remaining(self) -> float:
        return max(0.0, self.max_reward_pool - self.total_rewarded)

    def paused_seconds_at(self, now: float) -> float:
        """Cycle paused time including the part of a running pause after event start."""
        if self.is_paused and self.pause_start_time is not None:
            return self.paused_seconds + max(0.0, now - max(self.pause_start_time, self.event_start_time))
        return self.paused_seconds
