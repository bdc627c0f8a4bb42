from __future__ import annotations
import os
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


# ---------------------------
# Config
# ---------------------------
@dataclass(frozen=True)
class Settings:
    db_path: str = "extrashare.db"

    # Single admin allow-list entry; empty string disables every admin endpoint.
    admin_wallet_address: str = ""

    # Defaults for a freshly created Global Event record (admin-tunable afterwards)
    event_duration_hours: float = 95.0
    max_stake_slots: int = 30000
    max_reward_pool_usd: float = 100000.0
    initial_stake_amount_usd: float = 8.0
    staking_recipient_address: str = ""

    # Seconds between a cycle reset and eventStartTime (stake withdrawal window)
    cycle_start_delay_sec: float = 0.0
    # Whether a filled (but unexpired) cycle is reset by the next stake attempt
    reset_when_filled: bool = False

    # BXC (primary currency)
    bxc_accrual_per_second: float = 0.001
    initial_bxc: float = 8000.0
    referral_bxc: float = 1050.0
    referral_copy_bxc_bonus: float = 50.0

    # AIN (secondary currency)
    ain_usd_price: float = 0.137

    # Reward draw table:
    # 10% chance: $100-$899 (large), 50% chance: $10-$99 (regular), 40%: $0
    reward_chance_large_win: float = 0.1
    reward_chance_regular_win: float = 0.5
    reward_usd_large_min: int = 100
    reward_usd_large_max: int = 899
    reward_usd_regular_min: int = 10
    reward_usd_regular_max: int = 99
    lucky_winner_slot_threshold: int = 9000

    require_evm_address: bool = True
    cors_origins: tuple = ("*",)
    log_level: str = "INFO"


def _split_csv(raw: str) -> List[str]:
    return [p.strip() for p in (raw or "").split(",") if p.strip()]


def load_settings() -> Settings:
    """Build Settings from the process environment (and .env, if present)."""
    return Settings(
        db_path=os.getenv("EXTRASHARE_DB", "extrashare.db"),
        admin_wallet_address=(os.getenv("ADMIN_WALLET_ADDRESS", "") or "").strip().lower(),
        event_duration_hours=float(os.getenv("EVENT_DURATION_HOURS", "95")),
        max_stake_slots=int(os.getenv("MAX_STAKE_SLOTS", "30000")),
        max_reward_pool_usd=float(os.getenv("MAX_REWARD_POOL_USD", "100000")),
        initial_stake_amount_usd=float(os.getenv("INITIAL_STAKE_AMOUNT_USD", "8")),
        staking_recipient_address=(os.getenv("STAKING_RECIPIENT_ADDRESS", "") or "").strip(),
        cycle_start_delay_sec=float(os.getenv("CYCLE_START_DELAY_SEC", "0")),
        reset_when_filled=os.getenv("RESET_WHEN_FILLED", "0") == "1",
        bxc_accrual_per_second=float(os.getenv("BXC_ACCRUAL_PER_SECOND", "0.001")),
        initial_bxc=float(os.getenv("INITIAL_BXC", "8000")),
        referral_bxc=float(os.getenv("REFERRAL_BXC", "1050")),
        referral_copy_bxc_bonus=float(os.getenv("REFERRAL_COPY_BXC_BONUS", "50")),
        ain_usd_price=float(os.getenv("AIN_USD_PRICE", "0.137")),
        reward_chance_large_win=float(os.getenv("REWARD_CHANCE_LARGE_WIN", "0.1")),
        reward_chance_regular_win=float(os.getenv("REWARD_CHANCE_REGULAR_WIN", "0.5")),
        reward_usd_large_min=int(os.getenv("REWARD_USD_LARGE_MIN", "100")),
        reward_usd_large_max=int(os.getenv("REWARD_USD_LARGE_MAX", "899")),
        reward_usd_regular_min=int(os.getenv("REWARD_USD_REGULAR_MIN", "10")),
        reward_usd_regular_max=int(os.getenv("REWARD_USD_REGULAR_MAX", "99")),
        lucky_winner_slot_threshold=int(os.getenv("LUCKY_WINNER_SLOT_THRESHOLD", "9000")),
        require_evm_address=os.getenv("REQUIRE_EVM_ADDRESS", "1") == "1",
        cors_origins=tuple(_split_csv(os.getenv("CORS_ORIGINS", "*"))) or ("*",),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
