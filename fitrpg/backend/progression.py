"""Pure progression functions: XP curve, levels, tier gates and activity rates."""

from __future__ import annotations

import math
from bisect import bisect_right
from dataclasses import dataclass
from typing import Iterable, Mapping

from fitrpg.backend.errors import UnsupportedActivityError, ValidationError

MAX_LEVEL = 1000

TIER_GATES: tuple[tuple[int, int], ...] = (
    (900, 10),
    (750, 9),
    (600, 8),
    (450, 7),
    (325, 6),
    (225, 5),
    (150, 4),
    (90, 3),
    (40, 2),
)

DOUBLE_XP_BUFF = "double_xp"
XP_BOOST_BUFF = "xp_boost"
GUARANTEED_LOOT_BUFF = "guaranteed_loot"


@dataclass(frozen=True)
class Activity:
    unit: str
    rate: float


@dataclass(frozen=True)
class Theme:
    key: str
    label: str
    unit: str
    activity: str


@dataclass(frozen=True)
class ActivityGain:
    xp: int
    currency: int
    consumed_buffs: tuple[str, ...] = ()


ACTIVITIES: dict[str, Activity] = {
    "pushups": Activity(unit="reps", rate=0.55),
    "situps": Activity(unit="reps", rate=0.45),
    "squats": Activity(unit="reps", rate=0.45),
    "pullups": Activity(unit="reps", rate=2.2),
    "burpees": Activity(unit="reps", rate=1.2),
    "dips": Activity(unit="reps", rate=1.6),
    "plank": Activity(unit="seconds", rate=0.22),
    "run_miles": Activity(unit="miles", rate=40),
    "run": Activity(unit="minutes", rate=0.35),
    "cycle_miles": Activity(unit="miles", rate=14),
    "row_minutes": Activity(unit="minutes", rate=0.45),
    "swim_laps": Activity(unit="laps", rate=20),
    "bench": Activity(unit="reps", rate=1.2),
    "legpress": Activity(unit="reps", rate=1.2),
    "deadlift": Activity(unit="reps", rate=1.4),
    "squat_barbell": Activity(unit="reps", rate=1.4),
    "ohp": Activity(unit="reps", rate=1.1),
    "strengthsession": Activity(unit="sessions", rate=40),
}

THEMES: dict[str, Theme] = {
    "pushups": Theme(key="pushups", label="Pushups", unit="reps", activity="pushups"),
    "squats": Theme(key="squats", label="Bodyweight Squats", unit="reps", activity="squats"),
    "situps": Theme(key="situps", label="Sit-ups", unit="reps", activity="situps"),
    "pullups": Theme(key="pullups", label="Pull-ups", unit="reps", activity="pullups"),
    "burpees": Theme(key="burpees", label="Burpees", unit="reps", activity="burpees"),
    "plank_seconds": Theme(key="plank_seconds", label="Plank (seconds)", unit="seconds", activity="plank"),
    "run_miles": Theme(key="run_miles", label="Run Distance", unit="miles", activity="run_miles"),
}


def xp_required_for_level(level: int) -> int:
    """XP needed to go from ``level - 1`` to ``level``."""
    if level <= 1:
        return 100
    return math.floor(60 * math.pow(level, 1.15) + 40)


def total_xp_for_level(level: int) -> int:
    """Cumulative XP at which ``level`` is reached."""
    if level <= 0:
        return 0
    return _THRESHOLDS[min(level, MAX_LEVEL) - 1] + sum(
        xp_required_for_level(extra) for extra in range(MAX_LEVEL + 1, level + 1)
    )


def _build_thresholds() -> tuple[int, ...]:
    thresholds: list[int] = []
    accumulated = 0
    for level in range(1, MAX_LEVEL + 1):
        accumulated += xp_required_for_level(level)
        thresholds.append(accumulated)
    return tuple(thresholds)


_THRESHOLDS = _build_thresholds()


def level_from_xp(xp: float) -> int:
    """Greedy inverse of the cumulative curve, capped at ``MAX_LEVEL``.

    Equivalent to consuming ``xp_required_for_level`` increments from level 0
    until the next one no longer fits.
    """
    if xp <= 0:
        return 0
    return bisect_right(_THRESHOLDS, xp)


def level_progress(xp: float) -> tuple[int, float, int]:
    """Return (level, xp into current level, xp needed for the next level)."""
    level = level_from_xp(xp)
    return level, xp - total_xp_for_level(level), xp_required_for_level(level + 1)


def max_tier_unlocked(level: int) -> int:
    for threshold, tier in TIER_GATES:
        if level >= threshold:
            return tier
    return 1


def beginner_multiplier(level: int) -> float:
    if level < 5:
        return 1.2
    if level < 20:
        return 1.1
    return 1.0


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def currency_for_xp(xp: int) -> int:
    return max(1, xp // 3)


def activity_xp(
    activity: str,
    amount: float,
    level: int,
    equipped_bonuses: Iterable[float] = (),
    buffs: Mapping[str, int] | None = None,
) -> ActivityGain:
    """Compute the XP and currency a logged activity is worth.

    ``equipped_bonuses`` are the fractional XP bonuses of equipped passive
    items that match ``activity``. Buffs that were applied are listed in
    ``consumed_buffs``; clearing them is up to the caller.
    """
    if amount <= 0:
        raise ValidationError("Amount must be positive", {"amount": amount})
    rate = ACTIVITIES.get(activity)
    if rate is None:
        raise UnsupportedActivityError(f"Unsupported activity: {activity}", {"activity": activity})

    xp = amount * rate.rate * beginner_multiplier(level)
    for bonus in equipped_bonuses:
        xp *= 1 + bonus

    active = buffs or {}
    consumed: list[str] = []
    if active.get(DOUBLE_XP_BUFF, 0) > 0:
        xp *= 2
        consumed.append(DOUBLE_XP_BUFF)
    if active.get(XP_BOOST_BUFF, 0) > 0:
        xp *= 1.10
        consumed.append(XP_BOOST_BUFF)

    gained = _round_half_up(xp)
    return ActivityGain(xp=gained, currency=currency_for_xp(gained), consumed_buffs=tuple(consumed))


def theme_for(key: str) -> Theme:
    theme = THEMES.get(key)
    if theme is None:
        raise ValidationError(f"Unknown theme: {key}", {"theme": key})
    return theme


def player_power(level: int, atk: int = 0, defense: int = 0, has_pet: bool = False, has_mount: bool = False) -> int:
    power = 12 + level * 2.2 + atk * 2.2 + defense * 1.6
    if has_pet:
        power += 2
    if has_mount:
        power += 3
    return max(10, math.floor(power))
