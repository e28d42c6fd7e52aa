"""Raid engine: admin-started boss HP pool depleted by any in-channel contributor."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from fitrpg.backend.encounters import EncounterEngine
from fitrpg.backend.errors import ValidationError
from fitrpg.backend.models import RAID, ActionResult, Participant, Raid
from fitrpg.backend.progression import THEMES, theme_for

logger = logging.getLogger(__name__)

VICTORY = "victory"
TIME_UP = "time_up"
CANCELLED = "cancelled"

BOSS_NAMES: dict[str, str] = {
    "pushups": "Titan of Iron",
    "squats": "Colossus of Stone",
    "situps": "Serpent of Cores",
    "pullups": "Spire Warden",
    "burpees": "Storm Harrier",
    "plank_seconds": "Timebound Phantom",
    "run_miles": "Roadbreaker Behemoth",
}

BOSS_HP: dict[str, float] = {
    "pushups": 20000,
    "squats": 28000,
    "situps": 24000,
    "pullups": 6000,
    "burpees": 12000,
    "plank_seconds": 36000,
    "run_miles": 800,
}


def default_boss_name(theme: str) -> str:
    return BOSS_NAMES.get(theme, "Ancient Sovereign")


def default_boss_hp(theme: str) -> float:
    return BOSS_HP.get(theme, 20000)


class RaidEngine(EncounterEngine):
    kind = RAID

    def _live(self) -> dict[str, Raid]:
        return self.state.raids

    def start(
        self,
        channel_id: str,
        theme: str,
        initiator_id: str,
        now: datetime,
        hp: float | None = None,
        duration_hours: float | None = None,
        boss_name: str | None = None,
    ) -> ActionResult:
        theme_for(theme)
        if hp is not None and hp <= 0:
            raise ValidationError("Boss HP must be positive", {"hp": hp})
        if duration_hours is not None and duration_hours <= 0:
            raise ValidationError("Raid duration must be positive", {"hours": duration_hours})
        self._ensure_vacant(channel_id)

        pool = hp if hp is not None else default_boss_hp(theme)
        hours = duration_hours if duration_hours is not None else self.config.raid_duration_hours
        raid = Raid(
            channel_id=channel_id,
            theme=theme,
            boss_name=boss_name or default_boss_name(theme),
            hp=pool,
            hp_max=pool,
            deadline=now + timedelta(hours=hours),
            started_by=initiator_id,
            started_at=now,
        )
        self.state.raids[channel_id] = raid
        logger.info("Raid started: channel=%s theme=%s boss=%s hp=%s", channel_id, theme, raid.boss_name, pool)
        return ActionResult(
            result=raid,
            engine_events=[{"kind": "raid_created", "channelId": channel_id, "raid": self.status(channel_id, now)}],
        )

    def apply_damage(self, channel_id: str, user_id: str, activity: str, amount: float, now: datetime) -> ActionResult:
        """Deal damage from a logged activity. ``result`` is the damage counted."""
        raid = self.get(channel_id)
        if raid is None or not self._is_open(raid, now) or raid.hp <= 0 or amount <= 0:
            return ActionResult(result=0, engine_events=[])
        if THEMES[raid.theme].activity != activity:
            return ActionResult(result=0, engine_events=[])

        raid.hp = max(0, raid.hp - amount)
        participant = raid.participants.get(user_id)
        if participant is None:
            participant = Participant(joined_at=now)
            raid.participants[user_id] = participant
        participant.contribution += amount

        events: list[dict[str, Any]] = [
            {
                "kind": "raid_progress",
                "channelId": channel_id,
                "userId": user_id,
                "damage": amount,
                "hp": raid.hp,
                "hpMax": raid.hp_max,
            }
        ]
        if raid.hp == 0:
            events.extend(
                self._resolve(
                    raid,
                    VICTORY,
                    self.config.raid_victory,
                    bossName=raid.boss_name,
                    depletedFraction=raid.depleted_fraction,
                )
            )
        return ActionResult(result=amount, engine_events=events)

    def expire(self, channel_id: str, now: datetime) -> ActionResult:
        raid = self.get(channel_id)
        if raid is None or now < raid.deadline:
            return ActionResult(result=False, engine_events=[])
        events = self._resolve(
            raid,
            TIME_UP,
            self.config.raid_consolation,
            bossName=raid.boss_name,
            depletedFraction=raid.depleted_fraction,
        )
        return ActionResult(result=bool(events), engine_events=events)

    def cancel(self, channel_id: str) -> ActionResult:
        raid = self.require(channel_id)
        events = self._resolve(
            raid,
            CANCELLED,
            None,
            bossName=raid.boss_name,
            depletedFraction=raid.depleted_fraction,
        )
        return ActionResult(result=bool(events), engine_events=events)

    def status(self, channel_id: str, now: datetime) -> dict[str, Any]:
        raid = self.require(channel_id)
        theme = THEMES[raid.theme]
        payload = raid.to_dict()
        payload.update(
            {
                "kind": RAID,
                "label": theme.label,
                "unit": theme.unit,
                "remainingSeconds": self._remaining_seconds(raid, now),
                "depletedFraction": raid.depleted_fraction,
            }
        )
        return payload
