from __future__ import annotations
import secrets
from dataclasses import dataclass
from typing import Optional, Protocol

from .config import Settings


class RandomSource(Protocol):
    def random(self) -> float: ...

    def randint(self, a: int, b: int) -> int: ...


@dataclass(frozen=True)
class RewardTable:
    large_chance: float
    regular_chance: float
    large_min: int
    large_max: int
    regular_min: int
    regular_max: int
    lucky_slot_threshold: int

    @classmethod
    def from_settings(cls, s: Settings) -> "RewardTable":
        return cls(
            large_chance=s.reward_chance_large_win,
            regular_chance=s.reward_chance_regular_win,
            large_min=s.reward_usd_large_min,
            large_max=s.reward_usd_large_max,
            regular_min=s.reward_usd_regular_min,
            regular_max=s.reward_usd_regular_max,
            lucky_slot_threshold=s.lucky_winner_slot_threshold,
        )


@dataclass(frozen=True)
class DrawResult:
    reward_usd: float
    is_winner: bool
    clamped: bool = False


def draw(
    slots_used: int,
    pool_remaining: float,
    table: RewardTable,
    rng: Optional[RandomSource] = None,
) -> DrawResult:
    """
    One reveal-time draw. Side-effect free: the caller commits the returned
    (already clamped) amount against the pool.
    """
    if slots_used > table.lucky_slot_threshold:
        return DrawResult(reward_usd=0, is_winner=False)

    rng = rng or secrets.SystemRandom()
    roll = rng.random()
    if roll < table.large_chance:
        reward = rng.randint(table.large_min, table.large_max)
    elif roll < table.large_chance + table.regular_chance:
        reward = rng.randint(table.regular_min, table.regular_max)
    else:
        return DrawResult(reward_usd=0, is_winner=False)

    if reward > pool_remaining:
        clamped = max(0, pool_remaining)
        return DrawResult(reward_usd=clamped, is_winner=clamped > 0, clamped=True)
    return DrawResult(reward_usd=reward, is_winner=True)


def usd_to_ain(usd: float, ain_usd_price: float) -> float:
    if usd <= 0:
        return 0.0
    return usd / ain_usd_price
