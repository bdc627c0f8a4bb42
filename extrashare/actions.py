from __future__ import annotations
import logging
import time
from typing import Any, Callable, Dict, Optional

from . import store
from .accrual import flush_accrual
from .config import Settings
from .cycle import EventCycleManager
from .errors import PreconditionFailed, ValidationError
from .records import StakeTransaction
from .rewards import RandomSource, RewardTable, draw, usd_to_ain
from .store import LedgerStore
from .wallets import normalize_address, normalize_tx_hash

log = logging.getLogger(__name__)

TOKENS = {"BXC": "primary_balance", "AIN": "secondary_balance"}


class ActionController:
    """
    User-facing verbs. Each call is one store session, so its precondition
    checks and writes are serialized against every other mutating call.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        cycles: EventCycleManager,
        settings: Settings,
        rng: Optional[RandomSource] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.ledger = ledger
        self.cycles = cycles
        self.settings = settings
        self.rng = rng
        self.clock = clock or time.time
        self.reward_table = RewardTable.from_settings(settings)

    def _address(self, raw: Optional[str]) -> str:
        return normalize_address(raw, require_evm=self.settings.require_evm_address)

    def initialize(self) -> None:
        now = self.clock()
        with self.ledger.session() as con:
            self.cycles.ensure_initialized(con, now)

    # ---------------------------
    # GetStatus
    # ---------------------------
    def get_status(self, wallet_address: Optional[str] = None) -> Dict[str, Any]:
        address = self._address(wallet_address) if wallet_address else None
        now = self.clock()
        with self.ledger.session() as con:
            state = self.cycles.ensure_initialized(con, now)
            user = None
            if address:
                user = store.get_user(con, address)
                if user is None:
                    user = store.create_user(con, address, now)
                    log.info("[status] new user wallet=%s", address)
                user = flush_accrual(con, user, state, now, self.settings.bxc_accrual_per_second)
        return {"user": user, "state": state, "now": now}

    # ---------------------------
    # Stake
    # ---------------------------
    def stake(self, wallet_address: Optional[str], transaction_hash: Optional[str],
              referrer_code: Optional[str] = None) -> Dict[str, Any]:
        address = self._address(wallet_address)
        tx_hash = normalize_tx_hash(transaction_hash)
        code = (referrer_code or "").strip().lower() or None
        now = self.clock()
        s = self.settings

        with self.ledger.session() as con:
            state = self.cycles.ensure_initialized(con, now)
            if state.is_paused:
                raise PreconditionFailed("The event is currently paused. Staking is unavailable.")

            state, did_reset = self.cycles.maybe_reset_cycle(con, state, now)
            if state.total_slots_used >= state.max_stake_slots:
                raise PreconditionFailed("All staking slots are currently filled. Please check back later.")

            if store.tx_hash_recorded(con, address, tx_hash):
                raise PreconditionFailed("This transaction has already been recorded for your account.")

            user = store.get_user(con, address)
            if user is not None and user.staked_since(state.last_reset_time):
                raise PreconditionFailed("You have already completed the one-time stake for this event cycle.")
            if user is None:
                user = store.create_user(con, address, now)
            user = flush_accrual(con, user, state, now, s.bxc_accrual_per_second)

            if not self.cycles.claim_slot(con, state):
                raise PreconditionFailed("All staking slots are currently filled. Please check back later.")

            stake_usd = state.initial_stake_amount_usd
            store.upsert_user(
                con, address, now,
                set_fields={"staked_usd_value": stake_usd},
                inc_fields={"slots_staked": 1, "primary_balance": s.initial_bxc},
                append_tx=StakeTransaction(hash=tx_hash, timestamp=now, amount_usd=stake_usd),
            )
            log.info("[stake] wallet=%s tx=%s usd=%s cycle=%d", address, tx_hash, stake_usd, state.cycle_number)

            referrer_address = None
            if code and code != user.referral_code:
                referrer = store.find_user_by_referral_code(con, code)
                if referrer is not None and referrer.wallet_address != address:
                    # Flush first so the bonus write does not swallow unaccrued time.
                    flush_accrual(con, referrer, state, now, s.bxc_accrual_per_second)
                    store.upsert_user(
                        con, referrer.wallet_address, now,
                        inc_fields={"primary_balance": s.referral_bxc, "referral_count": 1},
                    )
                    referrer_address = referrer.wallet_address
                    log.info("[stake] referral bonus=%s to=%s from=%s", s.referral_bxc, referrer_address, address)

            return {
                "user": store.get_user(con, address),
                "state": self.cycles.load(con),
                "now": now,
                "transaction_hash": tx_hash,
                "referrer": referrer_address,
                "cycle_reset": did_reset,
            }

    # ---------------------------
    # WithdrawStake
    # ---------------------------
    def withdraw_stake(self, wallet_address: Optional[str]) -> Dict[str, Any]:
        address = self._address(wallet_address)
        now = self.clock()
        with self.ledger.session() as con:
            state = self.cycles.ensure_initialized(con, now)
            user = store.get_user(con, address)
            if user is None or user.slots_staked <= 0 or user.staked_usd_value <= 0:
                raise PreconditionFailed("You have no active stake to withdraw.")
            if state.is_paused:
                raise PreconditionFailed("The event is currently paused.")
            if state.withdrawals_paused:
                raise PreconditionFailed("Withdrawals are currently paused.")
            if now >= state.event_start_time:
                raise PreconditionFailed("Stake withdrawal is not allowed once the event has started.")

            store.upsert_user(con, address, now, set_fields={
                "slots_staked": 0,
                "staked_usd_value": 0.0,
                "primary_balance": 0.0,
                "secondary_balance": 0.0,
                "revealed_at": None,
                "collected_at": None,
                "last_revealed_reward_usd": 0.0,
                "last_accrual_time": now,
                "paused_seconds_seen": state.paused_seconds_at(now),
            })
            store.withdraw_stake_transactions(con, address)
            # Only a stake made in this cycle holds one of this cycle's slots.
            if user.staked_since(state.last_reset_time):
                self.cycles.release_slot(con, state)
            log.info("[withdraw-stake] wallet=%s usd=%s", address, user.staked_usd_value)

            return {
                "withdrawn_usd": user.staked_usd_value,
                "user": store.get_user(con, address),
                "state": self.cycles.load(con),
                "now": now,
            }

    # ---------------------------
    # RevealReward
    # ---------------------------
    def reveal_reward(self, wallet_address: Optional[str]) -> Dict[str, Any]:
        address = self._address(wallet_address)
        now = self.clock()
        s = self.settings
        with self.ledger.session() as con:
            state = self.cycles.ensure_initialized(con, now)
            user = store.get_user(con, address)
            if user is None or user.slots_staked <= 0:
                raise PreconditionFailed("You must stake first to reveal rewards.")
            if state.is_paused:
                raise PreconditionFailed("The event is currently paused.")
            if now < state.event_end_time:
                raise PreconditionFailed("Reward reveal is only available after the event ends.")

            user = flush_accrual(con, user, state, now, s.bxc_accrual_per_second)

            if user.revealed_at is not None and user.revealed_at >= state.event_start_time:
                usd = user.last_revealed_reward_usd
                return {
                    "reward_usd": usd,
                    "ain_amount": usd_to_ain(usd, s.ain_usd_price),
                    "is_winner": usd > 0,
                    "clamped": False,
                    "already_revealed": True,
                    "user": user,
                    "now": now,
                }

            result = draw(state.total_slots_used, state.reward_pool_remaining, self.reward_table, self.rng)
            store.upsert_user(con, address, now, set_fields={
                "revealed_at": now,
                "last_revealed_reward_usd": result.reward_usd,
            })
            self.cycles.add_rewarded(con, state, result.reward_usd)
            log.info(
                "[reveal] wallet=%s usd=%s winner=%s clamped=%s",
                address, result.reward_usd, result.is_winner, result.clamped,
            )

            return {
                "reward_usd": result.reward_usd,
                "ain_amount": usd_to_ain(result.reward_usd, s.ain_usd_price),
                "is_winner": result.is_winner,
                "clamped": result.clamped,
                "already_revealed": False,
                "user": store.get_user(con, address),
                "now": now,
            }

    # ---------------------------
    # CollectReward
    # ---------------------------
    def collect_reward(self, wallet_address: Optional[str]) -> Dict[str, Any]:
        address = self._address(wallet_address)
        now = self.clock()
        with self.ledger.session() as con:
            state = self.cycles.ensure_initialized(con, now)
            user = store.get_user(con, address)
            if user is None or user.slots_staked <= 0:
                raise PreconditionFailed("You must stake first to collect rewards.")
            if user.revealed_at is None or user.revealed_at < state.event_start_time:
                raise PreconditionFailed("You must reveal your reward first!")
            if user.collected_at is not None and user.collected_at >= state.event_start_time:
                raise PreconditionFailed("You have already collected this event's reward.")

            ain = usd_to_ain(user.last_revealed_reward_usd, self.settings.ain_usd_price)
            if ain <= 0:
                raise PreconditionFailed("No AIN reward available to collect.")

            flush_accrual(con, user, state, now, self.settings.bxc_accrual_per_second)
            store.upsert_user(
                con, address, now,
                set_fields={"collected_at": now},
                inc_fields={"secondary_balance": ain},
            )
            log.info("[collect] wallet=%s ain=%.4f", address, ain)

            return {"collected_ain": ain, "user": store.get_user(con, address), "now": now}

    # ---------------------------
    # WithdrawBalance
    # ---------------------------
    def withdraw_balance(self, wallet_address: Optional[str], token: Optional[str],
                         amount: Optional[float] = None) -> Dict[str, Any]:
        address = self._address(wallet_address)
        token = (token or "").strip().upper()
        field = TOKENS.get(token)
        if field is None:
            raise ValidationError("Token must be BXC or AIN.")
        now = self.clock()

        with self.ledger.session() as con:
            state = self.cycles.ensure_initialized(con, now)
            if state.withdrawals_paused:
                raise PreconditionFailed("Withdrawals are currently paused.")
            user = store.get_user(con, address)
            if user is None:
                raise PreconditionFailed(f"No {token} balance to withdraw.")
            user = flush_accrual(con, user, state, now, self.settings.bxc_accrual_per_second)

            balance = getattr(user, field)
            if balance <= 0:
                raise PreconditionFailed(f"No {token} balance to withdraw.")

            if amount is not None and 0 < amount < balance:
                withdraw = float(amount)
                store.upsert_user(con, address, now, inc_fields={field: -withdraw})
            else:
                withdraw = balance
                store.upsert_user(con, address, now, set_fields={field: 0.0})
            log.info("[withdraw] wallet=%s token=%s amount=%.4f", address, token, withdraw)

            updated = store.get_user(con, address)
            return {
                "token": token,
                "withdrawn": withdraw,
                "balance": getattr(updated, field),
                "user": updated,
                "now": now,
            }

    # ---------------------------
    # ReferralCopyBonus
    # ---------------------------
    def referral_copy_bonus(self, wallet_address: Optional[str]) -> Dict[str, Any]:
        address = self._address(wallet_address)
        now = self.clock()
        s = self.settings
        with self.ledger.session() as con:
            state = self.cycles.ensure_initialized(con, now)
            user = store.get_user(con, address)
            if user is None or user.slots_staked <= 0:
                raise PreconditionFailed("Stake at least once to earn referral copy bonuses!")
            if now < state.event_start_time:
                raise PreconditionFailed("Event has not started yet.")
            if state.is_paused:
                raise PreconditionFailed("The event is currently paused.")
            if user.last_referral_bonus_at is not None and user.last_referral_bonus_at >= state.event_start_time:
                raise PreconditionFailed("You've already received the referral copy bonus for this event cycle.")

            flush_accrual(con, user, state, now, s.bxc_accrual_per_second)
            store.upsert_user(
                con, address, now,
                set_fields={"last_referral_bonus_at": now},
                inc_fields={"primary_balance": s.referral_copy_bxc_bonus},
            )
            log.info("[referral-copy] wallet=%s bonus=%s", address, s.referral_copy_bxc_bonus)

            return {
                "awarded": s.referral_copy_bxc_bonus,
                "user": store.get_user(con, address),
                "now": now,
            }
