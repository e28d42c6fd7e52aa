"""Engine facade: activity logging, encounter commands and the item shop."""

from __future__ import annotations

import logging
import random
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterator

from fitrpg.backend.catalog import Armor, Catalog, CatalogItem, Consumable, Mount, Passive, Pet, Trinket, Weapon
from fitrpg.backend.config import EngineConfig
from fitrpg.backend.encounters import ResolutionGuard
from fitrpg.backend.errors import ConflictError, CooldownError, EngineError, NotFoundError, ValidationError
from fitrpg.backend.hunts import HuntEngine
from fitrpg.backend.models import HUNT, RAID, ActionResult, PlayerRecord, utc_now
from fitrpg.backend.progression import activity_xp, level_progress, max_tier_unlocked, player_power
from fitrpg.backend.raids import RaidEngine
from fitrpg.backend.state import EngineState

logger = logging.getLogger(__name__)

LOG_COOLDOWN = "log"
HUNT_JOIN_COOLDOWN = "hunt_join"
RAID_HIT_COOLDOWN = "raid_hit"


@dataclass(frozen=True)
class ActivityResult:
    xp_gained: int = 0
    currency_gained: int = 0
    token_gained: int = 0
    level_before: int = 0
    level_after: int = 0
    hunt_contribution: float = 0
    raid_damage: float = 0
    error_kind: str | None = None
    retry_after: int | None = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def slot_for(item: CatalogItem) -> str:
    if isinstance(item, Weapon):
        return "weapon"
    if isinstance(item, Armor):
        return "armor"
    if isinstance(item, Trinket):
        return "trinket"
    if isinstance(item, Pet):
        return "pet"
    if isinstance(item, Mount):
        return "mount"
    if isinstance(item, Consumable):
        raise ValidationError(f"{item.name} is a consumable and cannot be equipped", {"item": item.name})
    raise ValidationError(f"{item.name} is not equippable", {"item": item.name})


class GameEngine:
    """Synchronous mutations over one injected ``EngineState``.

    Every operation returns an ``ActionResult`` whose ``engine_events`` are
    structured payloads for the notification layer. ``on_change`` is called
    after each successful mutation so a write-behind store can mark itself
    dirty.
    """

    def __init__(
        self,
        state: EngineState | None = None,
        config: EngineConfig | None = None,
        catalog: Catalog | None = None,
        rng: random.Random | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.state = state if state is not None else EngineState()
        self.config = config if config is not None else EngineConfig()
        self.catalog = catalog if catalog is not None else self.state.build_catalog()
        self.rng = rng if rng is not None else random.Random()
        self.on_change = on_change
        guard = ResolutionGuard()
        self.hunts = HuntEngine(self.state, self.config, self.catalog, self.rng, guard)
        self.raids = RaidEngine(self.state, self.config, self.catalog, self.rng, guard)

    @classmethod
    def from_blob(cls, blob: dict[str, Any] | None, **kwargs: Any) -> "GameEngine":
        return cls(state=EngineState.from_blob(blob), **kwargs)

    def snapshot(self) -> dict[str, Any]:
        return self.state.to_blob()

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()

    @staticmethod
    def _check_cooldown(player: PlayerRecord, action: str, seconds: float, now: datetime) -> None:
        last = player.cooldowns.get(action)
        if last is None:
            return
        elapsed = (now - last).total_seconds()
        if elapsed < seconds:
            raise CooldownError(action, seconds - elapsed)

    def _equipped_items(self, player: PlayerRecord) -> Iterator[CatalogItem]:
        for name in player.equipped.values():
            if not name:
                continue
            item = self.catalog.find(name)
            if item is not None:
                yield item

    def _equipped_bonuses(self, player: PlayerRecord, activity: str) -> list[float]:
        return [
            item.xp_bonus
            for item in self._equipped_items(player)
            if isinstance(item, Passive) and item.applies_to(activity)
        ]

    @staticmethod
    def _touch_streak(player: PlayerRecord, today: date) -> None:
        last = player.last_active_date
        if last == today:
            return
        if last is not None and last == today - timedelta(days=1):
            player.streak += 1
        else:
            player.streak = 1
        player.last_active_date = today

    def report_activity(
        self,
        user_id: str,
        channel_id: str,
        activity: str,
        amount: float,
        now: datetime | None = None,
    ) -> ActionResult:
        now = now or utc_now()
        player = self.state.ensure_player(user_id)
        try:
            self._check_cooldown(player, LOG_COOLDOWN, self.config.log_cooldown_sec, now)
            gain = activity_xp(activity, amount, player.level, self._equipped_bonuses(player, activity), player.buffs)
        except EngineError as exc:
            logger.debug("Activity rejected: user=%s activity=%s kind=%s", user_id, activity, exc.kind)
            return ActionResult(
                result=ActivityResult(error_kind=exc.kind, retry_after=getattr(exc, "retry_after", None)),
                engine_events=[],
            )

        level_before = player.level
        player.xp += gain.xp
        player.currency += gain.currency
        player.tokens += 1
        player.consume_buffs(gain.consumed_buffs)
        player.cooldowns[LOG_COOLDOWN] = now
        self._touch_streak(player, now.date())

        events: list[dict[str, Any]] = []
        contribution = self.hunts.apply_contribution(channel_id, user_id, activity, amount, now)
        events.extend(contribution.engine_events)

        damage = 0
        if self.raids.get(channel_id) is not None:
            try:
                self._check_cooldown(player, RAID_HIT_COOLDOWN, self.config.raid_hit_cooldown_sec, now)
            except CooldownError:
                logger.debug("Raid hit skipped on cooldown: user=%s channel=%s", user_id, channel_id)
            else:
                hit = self.raids.apply_damage(channel_id, user_id, activity, amount, now)
                damage = hit.result
                if damage:
                    player.cooldowns[RAID_HIT_COOLDOWN] = now
                events.extend(hit.engine_events)

        level_after = player.level
        if level_after > level_before:
            events.append(
                {"kind": "level_up", "channelId": channel_id, "userId": user_id, "level": level_after, "previousLevel": level_before}
            )
        self._changed()
        return ActionResult(
            result=ActivityResult(
                xp_gained=gain.xp,
                currency_gained=gain.currency,
                token_gained=1,
                level_before=level_before,
                level_after=level_after,
                hunt_contribution=contribution.result,
                raid_damage=damage,
            ),
            engine_events=events,
        )

    def start_hunt(self, channel_id: str, mode: str, theme: str, initiator_id: str, now: datetime | None = None) -> ActionResult:
        result = self.hunts.start(channel_id, mode, theme, initiator_id, now or utc_now())
        self._changed()
        return result

    def join_hunt(self, channel_id: str, user_id: str, now: datetime | None = None) -> ActionResult:
        """Join the channel's hunt, charging one token on a fresh join only."""
        now = now or utc_now()
        hunt = self.hunts.require(channel_id)
        if user_id in hunt.participants:
            return self.hunts.join(channel_id, user_id, now)

        player = self.state.ensure_player(user_id)
        self._check_cooldown(player, HUNT_JOIN_COOLDOWN, self.config.hunt_cooldown_sec, now)
        if player.tokens <= 0:
            raise ConflictError("You need 1 token to join; log a workout to earn tokens", {"tokens": player.tokens})

        result = self.hunts.join(channel_id, user_id, now)
        if result.result:
            player.tokens -= 1
            player.cooldowns[HUNT_JOIN_COOLDOWN] = now
            self._changed()
        return result

    def leave_hunt(self, channel_id: str, user_id: str, now: datetime | None = None) -> ActionResult:
        result = self.hunts.leave(channel_id, user_id, now or utc_now())
        self._changed()
        return result

    def cancel_hunt(self, channel_id: str) -> ActionResult:
        result = self.hunts.cancel(channel_id)
        self._changed()
        return result

    def start_raid(
        self,
        channel_id: str,
        theme: str,
        initiator_id: str,
        hp: float | None = None,
        duration_hours: float | None = None,
        boss_name: str | None = None,
        now: datetime | None = None,
    ) -> ActionResult:
        result = self.raids.start(
            channel_id,
            theme,
            initiator_id,
            now or utc_now(),
            hp=hp,
            duration_hours=duration_hours,
            boss_name=boss_name,
        )
        self._changed()
        return result

    def cancel_raid(self, channel_id: str) -> ActionResult:
        result = self.raids.cancel(channel_id)
        self._changed()
        return result

    def expire_encounters(self, now: datetime | None = None) -> ActionResult:
        """Resolve every live hunt and raid whose deadline has passed."""
        now = now or utc_now()
        events: list[dict[str, Any]] = []
        resolved = 0
        for channel_id in self.hunts.live_channels():
            outcome = self.hunts.expire(channel_id, now)
            resolved += int(outcome.result)
            events.extend(outcome.engine_events)
        for channel_id in self.raids.live_channels():
            outcome = self.raids.expire(channel_id, now)
            resolved += int(outcome.result)
            events.extend(outcome.engine_events)
        if resolved:
            self._changed()
        return ActionResult(result=resolved, engine_events=events)

    def get_encounter_status(self, channel_id: str, kind: str, now: datetime | None = None) -> dict[str, Any]:
        now = now or utc_now()
        if kind == HUNT:
            return self.hunts.status(channel_id, now)
        if kind == RAID:
            return self.raids.status(channel_id, now)
        raise ValidationError(f"Unknown encounter kind: {kind}", {"kind": kind})

    def buy_item(self, user_id: str, name: str) -> ActionResult:
        item = self.catalog.get(name)
        player = self.state.ensure_player(user_id)
        self.catalog.ensure_purchasable(item, player.level)
        if player.currency < item.price:
            raise ConflictError(f"Need {item.price} coins", {"item": item.name, "price": item.price, "currency": player.currency})
        player.currency -= item.price
        player.inventory.append(item.name)
        logger.info("Item purchased: user=%s item=%s", user_id, item.name)
        self._changed()
        return ActionResult(result=item.to_dict(), engine_events=[])

    def _owned_item(self, player: PlayerRecord, name: str) -> CatalogItem:
        item = self.catalog.get(name)
        if item.name not in player.inventory:
            raise NotFoundError(f"You do not own {item.name}", {"item": item.name})
        return item

    def equip_item(self, user_id: str, name: str) -> ActionResult:
        player = self.state.ensure_player(user_id)
        item = self._owned_item(player, name)
        slot = slot_for(item)
        player.equipped[slot] = item.name
        self._changed()
        return ActionResult(result={"slot": slot, "item": item.name}, engine_events=[])

    def use_item(self, user_id: str, name: str) -> ActionResult:
        player = self.state.ensure_player(user_id)
        item = self._owned_item(player, name)
        if not isinstance(item, Consumable):
            raise ValidationError(f"{item.name} is not a consumable", {"item": item.name})
        player.inventory.remove(item.name)
        if item.buff:
            player.grant_buff(item.buff)
        self._changed()
        return ActionResult(result={"item": item.name, "buff": item.buff}, engine_events=[])

    def get_profile(self, user_id: str) -> dict[str, Any]:
        """Read-only view; unknown users get a blank profile that is not stored."""
        player = self.state.players.get(user_id) or PlayerRecord()
        level, into_level, needed = level_progress(player.xp)
        weapon = self.catalog.find(player.equipped.get("weapon") or "")
        armor = self.catalog.find(player.equipped.get("armor") or "")
        profile = player.to_dict()
        profile.update(
            {
                "userId": user_id,
                "level": level,
                "xpIntoLevel": into_level,
                "xpForNextLevel": needed,
                "maxTier": max_tier_unlocked(level),
                "power": player_power(
                    level,
                    atk=weapon.atk if isinstance(weapon, Weapon) else 0,
                    defense=armor.defense if isinstance(armor, Armor) else 0,
                    has_pet=bool(player.equipped.get("pet")),
                    has_mount=bool(player.equipped.get("mount")),
                ),
            }
        )
        return profile
