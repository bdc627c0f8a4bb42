# api.py
from fastapi import APIRouter, Request

from .actions import ActionController
from .admin import AdminController
from .models import (
    AdminEventOut,
    CollectOut,
    FundUserIn,
    FundUserOut,
    LeaderboardOut,
    ReferralBonusOut,
    RevealOut,
    SetDurationIn,
    SetMaxSlotsIn,
    SetRecipientIn,
    SetRewardPoolIn,
    SetStakeAmountIn,
    StakeIn,
    StakeOut,
    StatusOut,
    WalletIn,
    WithdrawIn,
    WithdrawOut,
    WithdrawStakeOut,
    event_out,
    user_out,
)

ADMIN_HEADER = "x-admin-wallet"


def create_public_router(actions: ActionController) -> APIRouter:
    router = APIRouter()

    @router.post("/status", response_model=StatusOut)
    def status(data: WalletIn):
        res = actions.get_status(data.wallet_address)
        user = res["user"]
        return StatusOut(
            message="Status fetched successfully.",
            user=user_out(user) if user else None,
            event=event_out(res["state"], res["now"]),
            server_time=res["now"],
        )

    @router.post("/stake", response_model=StakeOut)
    def stake(data: StakeIn):
        res = actions.stake(data.wallet_address, data.transaction_hash, data.referrer_ref)
        return StakeOut(
            message="Stake successful! Welcome to ExtraShare BXC!",
            transaction_hash=res["transaction_hash"],
            referrer=res["referrer"],
            cycle_reset=res["cycle_reset"],
            user=user_out(res["user"]),
            event=event_out(res["state"], res["now"]),
        )

    @router.post("/withdraw-stake", response_model=WithdrawStakeOut)
    def withdraw_stake(data: WalletIn):
        res = actions.withdraw_stake(data.wallet_address)
        usd = res["withdrawn_usd"]
        return WithdrawStakeOut(
            message=f"Your ${usd:g} stake has been successfully withdrawn (simulated).",
            withdrawn_usd=usd,
            user=user_out(res["user"]),
            event=event_out(res["state"], res["now"]),
        )

    @router.post("/reveal-reward", response_model=RevealOut)
    def reveal_reward(data: WalletIn):
        res = actions.reveal_reward(data.wallet_address)
        ain = res["ain_amount"]
        if res["already_revealed"]:
            message = (
                f"You already revealed {ain:.4f} AIN!" if ain > 0
                else "You revealed 0 AIN. Better luck next time!"
            )
        else:
            message = f"You revealed {ain:.4f} AIN!" if ain > 0 else "Better luck next time! (0 AIN)"
        return RevealOut(
            message=message,
            reward_usd=res["reward_usd"],
            ain_amount=ain,
            is_lucky_winner=res["is_winner"],
            already_revealed=res["already_revealed"],
            user=user_out(res["user"]),
        )

    @router.post("/collect-reward", response_model=CollectOut)
    def collect_reward(data: WalletIn):
        res = actions.collect_reward(data.wallet_address)
        ain = res["collected_ain"]
        return CollectOut(
            message=f"Successfully collected {ain:.4f} AIN!",
            collected_ain_amount=ain,
            user=user_out(res["user"]),
        )

    def _withdraw(data: WithdrawIn, token: str) -> WithdrawOut:
        res = actions.withdraw_balance(data.wallet_address, token, data.amount)
        return WithdrawOut(
            message=f"{res['withdrawn']:.4f} {res['token']} successfully withdrawn (simulated).",
            token=res["token"],
            withdrawn_amount=res["withdrawn"],
            balance=res["balance"],
            user=user_out(res["user"]),
        )

    @router.post("/withdraw", response_model=WithdrawOut)
    def withdraw(data: WithdrawIn):
        return _withdraw(data, data.token)

    @router.post("/withdrawAIN", response_model=WithdrawOut)
    def withdraw_ain_alias(data: WithdrawIn):
        """Alias kept for older frontends: always withdraws AIN."""
        return _withdraw(data, "AIN")

    @router.post("/referral-copied", response_model=ReferralBonusOut)
    def referral_copied(data: WalletIn):
        res = actions.referral_copy_bonus(data.wallet_address)
        awarded = res["awarded"]
        return ReferralBonusOut(
            message=f"You received {awarded:g} BXC for sharing the referral link!",
            awarded_amount=awarded,
            bxc_balance=res["user"].primary_balance,
        )

    return router


def create_admin_router(admin: AdminController) -> APIRouter:
    """Admin-only endpoints. Mount with prefix `/api/admin`; caller sends X-Admin-Wallet."""
    router = APIRouter()

    def _event(res) -> AdminEventOut:
        return AdminEventOut(ok=True, event=event_out(res["state"], res["now"]), warning=res["warning"])

    @router.post("/toggle-pause", response_model=AdminEventOut)
    def admin_toggle_pause(req: Request):
        return _event(admin.toggle_pause(req.headers.get(ADMIN_HEADER)))

    @router.post("/toggle-withdrawals", response_model=AdminEventOut)
    def admin_toggle_withdrawals(req: Request):
        return _event(admin.toggle_withdrawals(req.headers.get(ADMIN_HEADER)))

    @router.post("/set-duration", response_model=AdminEventOut)
    def admin_set_duration(data: SetDurationIn, req: Request):
        return _event(admin.set_event_duration(req.headers.get(ADMIN_HEADER), data.hours))

    @router.post("/set-stake-amount", response_model=AdminEventOut)
    def admin_set_stake_amount(data: SetStakeAmountIn, req: Request):
        return _event(admin.set_stake_amount(req.headers.get(ADMIN_HEADER), data.amount_usd))

    @router.post("/set-max-slots", response_model=AdminEventOut)
    def admin_set_max_slots(data: SetMaxSlotsIn, req: Request):
        return _event(admin.set_max_slots(req.headers.get(ADMIN_HEADER), data.max_slots))

    @router.post("/set-reward-pool", response_model=AdminEventOut)
    def admin_set_reward_pool(data: SetRewardPoolIn, req: Request):
        return _event(admin.set_reward_pool(req.headers.get(ADMIN_HEADER), data.max_reward_pool))

    @router.post("/set-recipient", response_model=AdminEventOut)
    def admin_set_recipient(data: SetRecipientIn, req: Request):
        return _event(admin.set_recipient(req.headers.get(ADMIN_HEADER), data.address))

    @router.post("/fund-user", response_model=FundUserOut)
    def admin_fund_user(data: FundUserIn, req: Request):
        res = admin.fund_user(req.headers.get(ADMIN_HEADER), data.wallet_address, data.token, data.amount)
        return FundUserOut(ok=True, token=res["token"], amount=res["amount"], user=user_out(res["user"]))

    @router.get("/leaderboard", response_model=LeaderboardOut)
    def admin_leaderboard(req: Request, field: str = "primary_balance", direction: str = "desc", limit: int = 10):
        res = admin.leaderboard(req.headers.get(ADMIN_HEADER), field=field, direction=direction, limit=limit)
        return LeaderboardOut(
            total_users=res["total_users"],
            field=res["field"],
            direction=res["direction"],
            users=[user_out(u) for u in res["users"]],
        )

    return router
