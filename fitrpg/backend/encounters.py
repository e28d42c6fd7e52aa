"""Shared state-machine plumbing for channel-scoped encounters."""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union

from fitrpg.backend.catalog import Catalog
from fitrpg.backend.config import EngineConfig
from fitrpg.backend.errors import ConflictError, NotFoundError
from fitrpg.backend.models import ACTIVE, RESOLVED, Hunt, Raid
from fitrpg.backend.progression import GUARANTEED_LOOT_BUFF
from fitrpg.backend.rewards import RewardBand, roll_reward
from fitrpg.backend.state import EngineState

logger = logging.getLogger(__name__)

Encounter = Union[Hunt, Raid]


class ResolutionGuard:
    """Single compare-and-set from active to resolved."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def claim(self, encounter: Encounter) -> bool:
        with self._lock:
            if encounter.state != ACTIVE:
                return False
            encounter.state = RESOLVED
            return True


@dataclass(frozen=True)
class ParticipantReward:
    user_id: str
    contribution: float
    xp: int = 0
    currency: int = 0
    item: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "contribution": self.contribution,
            "xp": self.xp,
            "currency": self.currency,
            "item": self.item,
        }


class EncounterEngine:
    kind = ""

    def __init__(
        self,
        state: EngineState,
        config: EngineConfig,
        catalog: Catalog,
        rng: random.Random,
        guard: ResolutionGuard,
    ) -> None:
        self.state = state
        self.config = config
        self.catalog = catalog
        self.rng = rng
        self.guard = guard

    def _live(self) -> dict[str, Any]:
        raise NotImplementedError

    def get(self, channel_id: str) -> Any | None:
        encounter = self._live().get(channel_id)
        if encounter is None or not encounter.is_active:
            return None
        return encounter

    def require(self, channel_id: str) -> Any:
        encounter = self.get(channel_id)
        if encounter is None:
            raise NotFoundError(f"No active {self.kind} in this channel", {"channelId": channel_id, "kind": self.kind})
        return encounter

    def _ensure_vacant(self, channel_id: str) -> None:
        if self.get(channel_id) is not None:
            raise ConflictError(f"A {self.kind} is already active here", {"channelId": channel_id, "kind": self.kind})

    def live_channels(self) -> list[str]:
        return [channel_id for channel_id, encounter in self._live().items() if encounter.is_active]

    def _resolve(
        self,
        encounter: Encounter,
        outcome: str,
        band: RewardBand | None,
        **details: Any,
    ) -> list[dict[str, Any]]:
        if not self.guard.claim(encounter):
            logger.debug("Ignoring repeated resolution: kind=%s channel=%s", self.kind, encounter.channel_id)
            return []
        live = self._live()
        if live.get(encounter.channel_id) is encounter:
            del live[encounter.channel_id]

        if band is None:
            rewards = [
                ParticipantReward(user_id=user_id, contribution=entry.contribution)
                for user_id, entry in encounter.participants.items()
            ]
        else:
            rewards = self._distribute(encounter, band)
        logger.info(
            "Resolved %s: channel=%s outcome=%s participants=%d",
            self.kind,
            encounter.channel_id,
            outcome,
            len(rewards),
        )
        return [
            {
                "kind": f"{self.kind}_resolved",
                "channelId": encounter.channel_id,
                "outcome": outcome,
                "theme": encounter.theme,
                "participants": [reward.to_dict() for reward in rewards],
                **details,
            }
        ]

    def _distribute(self, encounter: Encounter, band: RewardBand) -> list[ParticipantReward]:
        rewards: list[ParticipantReward] = []
        for user_id, entry in encounter.participants.items():
            player = self.state.ensure_player(user_id)
            guaranteed = band.gear_odds > 0 and player.buffs.get(GUARANTEED_LOOT_BUFF, 0) > 0
            roll = roll_reward(band, player.level, self.catalog, self.rng, guaranteed=guaranteed)
            if guaranteed:
                player.consume_buffs((GUARANTEED_LOOT_BUFF,))
            player.xp += roll.xp
            player.currency += roll.currency
            if roll.item is not None:
                player.inventory.append(roll.item.name)
            rewards.append(
                ParticipantReward(
                    user_id=user_id,
                    contribution=entry.contribution,
                    xp=roll.xp,
                    currency=roll.currency,
                    item=roll.item.name if roll.item is not None else None,
                )
            )
        return rewards

    @staticmethod
    def _is_open(encounter: Encounter, now: datetime) -> bool:
        return encounter.is_active and now < encounter.deadline

    @staticmethod
    def _remaining_seconds(encounter: Encounter, now: datetime) -> int:
        return max(0, int((encounter.deadline - now).total_seconds()))
