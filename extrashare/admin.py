from __future__ import annotations
import hmac
import logging
import time
from typing import Any, Callable, Dict, Optional

from . import store
from .accrual import flush_accrual
from .actions import TOKENS
from .config import Settings
from .cycle import EventCycleManager
from .errors import AuthorizationFailed, ValidationError
from .store import LedgerStore
from .wallets import normalize_address

log = logging.getLogger(__name__)


def consteq(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())


class AdminController:
    """Privileged mutations of the Global Event record, user funding and leaderboard reads."""

    def __init__(
        self,
        ledger: LedgerStore,
        cycles: EventCycleManager,
        settings: Settings,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.ledger = ledger
        self.cycles = cycles
        self.settings = settings
        self.clock = clock or time.time

    def require_admin(self, caller: Optional[str]) -> str:
        admin = (self.settings.admin_wallet_address or "").strip().lower()
        who = (caller or "").strip().lower()
        if not admin or not who or not consteq(who, admin):
            log.warning("[admin] rejected caller=%s", who or "-")
            raise AuthorizationFailed("Admin access required.")
        return who

    # ---------------------------
    # Event parameters
    # ---------------------------
    def toggle_pause(self, caller: Optional[str]) -> Dict[str, Any]:
        who = self.require_admin(caller)
        now = self.clock()
        with self.ledger.session() as con:
            state = self.cycles.ensure_initialized(con, now)
            state, warning = self.cycles.toggle_pause(con, state, now)
        log.info("[admin] %s toggled pause -> %s", who, state.is_paused)
        return {"state": state, "warning": warning, "now": now}

    def toggle_withdrawals(self, caller: Optional[str]) -> Dict[str, Any]:
        who = self.require_admin(caller)
        now = self.clock()
        with self.ledger.session() as con:
            state = self.cycles.ensure_initialized(con, now)
            state = self.cycles.set_withdrawals_paused(con, not state.withdrawals_paused)
        log.info("[admin] %s toggled withdrawals_paused -> %s", who, state.withdrawals_paused)
        return {"state": state, "warning": None, "now": now}

    def set_event_duration(self, caller: Optional[str], hours: Optional[float]) -> Dict[str, Any]:
        """Changing the duration restarts the cycle immediately."""
        who = self.require_admin(caller)
        if hours is None or hours <= 0:
            raise ValidationError("Event duration must be a positive number of hours.")
        now = self.clock()
        with self.ledger.session() as con:
            state = self.cycles.ensure_initialized(con, now)
            state = self.cycles.reset_cycle(con, state, now, duration_hours=float(hours))
        log.info("[admin] %s set event duration %sh (cycle reset)", who, hours)
        return {"state": state, "warning": None, "now": now}

    def set_stake_amount(self, caller: Optional[str], amount_usd: Optional[float]) -> Dict[str, Any]:
        who = self.require_admin(caller)
        if amount_usd is None or amount_usd <= 0:
            raise ValidationError("Stake amount must be positive.")
        return self._set_param(who, initial_stake_amount_usd=float(amount_usd))

    def set_max_slots(self, caller: Optional[str], max_slots: Optional[int]) -> Dict[str, Any]:
        who = self.require_admin(caller)
        if max_slots is None or int(max_slots) < 1:
            raise ValidationError("Max stake slots must be at least 1.")
        return self._set_param(who, max_stake_slots=int(max_slots))

    def set_reward_pool(self, caller: Optional[str], max_reward_pool: Optional[float]) -> Dict[str, Any]:
        who = self.require_admin(caller)
        if max_reward_pool is None or max_reward_pool < 0:
            raise ValidationError("Reward pool cap must not be negative.")
        return self._set_param(who, max_reward_pool=float(max_reward_pool))

    def set_recipient(self, caller: Optional[str], address: Optional[str]) -> Dict[str, Any]:
        who = self.require_admin(caller)
        recipient = normalize_address(address, require_evm=self.settings.require_evm_address)
        return self._set_param(who, staking_recipient_address=recipient)

    def _set_param(self, who: str, **params) -> Dict[str, Any]:
        now = self.clock()
        with self.ledger.session() as con:
            self.cycles.ensure_initialized(con, now)
            state = self.cycles.set_params(con, **params)
        log.info("[admin] %s set %s", who, params)
        return {"state": state, "warning": None, "now": now}

    # ---------------------------
    # Users
    # ---------------------------
    def fund_user(self, caller: Optional[str], wallet_address: Optional[str],
                  token: Optional[str], amount: Optional[float]) -> Dict[str, Any]:
        who = self.require_admin(caller)
        address = normalize_address(wallet_address, require_evm=self.settings.require_evm_address)
        token = (token or "BXC").strip().upper()
        field = TOKENS.get(token)
        if field is None:
            raise ValidationError("Token must be BXC or AIN.")
        if amount is None or amount <= 0:
            raise ValidationError("Amount must be positive.")
        now = self.clock()

        with self.ledger.session() as con:
            state = self.cycles.ensure_initialized(con, now)
            user = store.get_user(con, address)
            if user is None:
                user = store.create_user(con, address, now)
            flush_accrual(con, user, state, now, self.settings.bxc_accrual_per_second)
            store.upsert_user(con, address, now, inc_fields={field: float(amount)})
            user = store.get_user(con, address)
        log.info("[admin] %s funded wallet=%s token=%s amount=%s", who, address, token, amount)
        return {"user": user, "token": token, "amount": float(amount), "now": now}

    def leaderboard(self, caller: Optional[str], field: str = "primary_balance",
                    direction: str = "desc", limit: int = 10) -> Dict[str, Any]:
        self.require_admin(caller)
        with self.ledger.session() as con:
            try:
                users = store.list_users_sorted(con, field=field, direction=direction, limit=limit)
            except ValueError as e:
                raise ValidationError(str(e))
            total = store.count_users(con)
        return {"users": users, "total_users": total, "field": field, "direction": direction.lower()}
