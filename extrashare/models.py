# models.py
from typing import List, Optional

from pydantic import BaseModel

from .cycle import EventCycleManager
from .records import GlobalState, UserRecord


# Input models
class WalletIn(BaseModel):
    wallet_address: Optional[str] = None


class StakeIn(BaseModel):
    wallet_address: Optional[str] = None
    transaction_hash: Optional[str] = None
    referrer_ref: Optional[str] = None


class WithdrawIn(BaseModel):
    wallet_address: Optional[str] = None
    token: str = "BXC"              # BXC or AIN
    amount: Optional[float] = None  # missing -> full balance


class SetDurationIn(BaseModel):
    hours: Optional[float] = None


class SetStakeAmountIn(BaseModel):
    amount_usd: Optional[float] = None


class SetMaxSlotsIn(BaseModel):
    max_slots: Optional[int] = None


class SetRewardPoolIn(BaseModel):
    max_reward_pool: Optional[float] = None


class SetRecipientIn(BaseModel):
    address: Optional[str] = None


class FundUserIn(BaseModel):
    wallet_address: Optional[str] = None
    token: str = "BXC"
    amount: Optional[float] = None


# Output models
class StakeTransactionOut(BaseModel):
    hash: str
    timestamp: float
    amount_usd: float


class UserOut(BaseModel):
    wallet_address: str
    slots_staked: int
    staked_usd_value: float
    bxc_balance: float
    ain_balance: float
    last_accrual_time: Optional[float]
    revealed_at: Optional[float]
    collected_at: Optional[float]
    last_revealed_reward_usd: float
    last_referral_bonus_at: Optional[float]
    referral_code: str
    referral_count: int
    created_at: float
    stake_transactions: List[StakeTransactionOut]


class EventOut(BaseModel):
    cycle_number: int
    cycle_status: str
    total_slots_used: int
    max_stake_slots: int
    event_start_time: float
    event_end_time: float
    event_duration_hours: float
    is_paused: bool
    pause_start_time: Optional[float]
    withdrawals_paused: bool
    initial_stake_amount_usd: float
    max_reward_pool: float
    total_rewarded: float
    reward_pool_remaining: float
    staking_recipient_address: str
    last_reset_time: float
    server_time: float


class StatusOut(BaseModel):
    message: str
    user: Optional[UserOut] = None
    event: EventOut
    server_time: float


class StakeOut(BaseModel):
    message: str
    transaction_hash: str
    referrer: Optional[str] = None
    cycle_reset: bool
    user: UserOut
    event: EventOut


class WithdrawStakeOut(BaseModel):
    message: str
    withdrawn_usd: float
    user: UserOut
    event: EventOut


class RevealOut(BaseModel):
    message: str
    reward_usd: float
    ain_amount: float
    is_lucky_winner: bool
    already_revealed: bool
    user: UserOut


class CollectOut(BaseModel):
    message: str
    collected_ain_amount: float
    user: UserOut


class WithdrawOut(BaseModel):
    message: str
    token: str
    withdrawn_amount: float
    balance: float
    user: UserOut


class ReferralBonusOut(BaseModel):
    message: str
    awarded_amount: float
    bxc_balance: float


class AdminEventOut(BaseModel):
    ok: bool
    event: EventOut
    warning: Optional[str] = None


class FundUserOut(BaseModel):
    ok: bool
    token: str
    amount: float
    user: UserOut


class LeaderboardOut(BaseModel):
    total_users: int
    field: str
    direction: str
    users: List[UserOut]


class ConfigOut(BaseModel):
    bxc_accrual_per_second: float
    initial_bxc: float
    referral_bxc: float
    referral_copy_bxc_bonus: float
    ain_usd_price: float
    reward_chance_large_win: float
    reward_chance_regular_win: float
    reward_usd_large_min: int
    reward_usd_large_max: int
    reward_usd_regular_min: int
    reward_usd_regular_max: int
    lucky_winner_slot_threshold: int
    cycle_start_delay_sec: float


def user_out(user: UserRecord) -> UserOut:
    return UserOut(
        wallet_address=user.wallet_address,
        slots_staked=user.slots_staked,
        staked_usd_value=user.staked_usd_value,
        bxc_balance=user.primary_balance,
        ain_balance=user.secondary_balance,
        last_accrual_time=user.last_accrual_time,
        revealed_at=user.revealed_at,
        collected_at=user.collected_at,
        last_revealed_reward_usd=user.last_revealed_reward_usd,
        last_referral_bonus_at=user.last_referral_bonus_at,
        referral_code=user.referral_code,
        referral_count=user.referral_count,
        created_at=user.created_at,
        stake_transactions=[
            StakeTransactionOut(hash=t.hash, timestamp=t.timestamp, amount_usd=t.amount_usd)
            for t in user.stake_transactions
        ],
    )


def event_out(state: GlobalState, now: float) -> EventOut:
    return EventOut(
        cycle_number=state.cycle_number,
        cycle_status=EventCycleManager.status(state, now).value,
        total_slots_used=state.total_slots_used,
        max_stake_slots=state.max_stake_slots,
        event_start_time=state.event_start_time,
        event_end_time=state.event_end_time,
        event_duration_hours=state.event_duration_hours,
        is_paused=state.is_paused,
        pause_start_time=state.pause_start_time,
        withdrawals_paused=state.withdrawals_paused,
        initial_stake_amount_usd=state.initial_stake_amount_usd,
        max_reward_pool=state.max_reward_pool,
        total_rewarded=state.total_rewarded,
        reward_pool_remaining=state.reward_pool_remaining,
        staking_recipient_address=state.staking_recipient_address,
        last_reset_time=state.last_reset_time,
        server_time=now,
    )
