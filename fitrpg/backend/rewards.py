"""Randomized XP, currency and tier-gated gear rolls."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fitrpg.backend.catalog import Catalog, CatalogItem


@dataclass(frozen=True)
class RewardBand:
    xp: tuple[int, int]
    currency: tuple[int, int]
    gear_odds: float = 0.0


@dataclass(frozen=True)
class RewardRoll:
    xp: int
    currency: int
    item: CatalogItem | None = None


def _draw(rng: random.Random, bounds: tuple[int, int]) -> int:
    low, high = bounds
    if high <= low:
        return low
    return rng.randint(low, high)


def roll_reward(
    band: RewardBand,
    player_level: int,
    catalog: Catalog,
    rng: random.Random,
    guaranteed: bool = False,
) -> RewardRoll:
    """Draw XP, currency and an optional gear drop independently.

    The gear pool is filtered by ``max_tier_unlocked(player_level)``; an empty
    pool means no drop. ``guaranteed`` forces the trial to succeed but never
    grants gear from a band without gear odds.
    """
    xp = _draw(rng, band.xp)
    currency = _draw(rng, band.currency)

    item: CatalogItem | None = None
    if band.gear_odds > 0:
        hit = guaranteed or rng.random() < band.gear_odds
        pool = catalog.gear_pool(player_level)
        if hit and pool:
            item = rng.choice(pool)
    return RewardRoll(xp=xp, currency=currency, item=item)
