"""Domain records for players and live encounters, with blob serialization."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from fitrpg.backend.progression import THEMES, level_from_xp

SLOTS = ("weapon", "armor", "trinket", "pet", "mount", "cosmetic")

ACTIVE = "active"
RESOLVED = "resolved"

HUNT = "hunt"
RAID = "raid"
ENCOUNTER_KINDS = (HUNT, RAID)


@dataclass(frozen=True)
class HuntMode:
    label: str
    party_size: int
    reward: str


HUNT_MODES: dict[str, HuntMode] = {
    "solo": HuntMode(label="Solo", party_size=1, reward="decent"),
    "trio": HuntMode(label="Trio", party_size=3, reward="good"),
    "party": HuntMode(label="Party", party_size=5, reward="great"),
}


@dataclass(frozen=True)
class ActionResult:
    result: Any
    engine_events: list[dict[str, Any]] = field(default_factory=list)


_LEGACY_COOLDOWNS = {"lastLog": "log", "lastHunt": "hunt_join", "lastRaidHit": "raid_hit"}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Accept ISO strings and legacy epoch-millisecond numbers."""
    if value is None or value == "" or value == 0:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_date(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass
class PlayerRecord:
    xp: float = 0
    currency: int = 0
    tokens: int = 0
    inventory: list[str] = field(default_factory=list)
    equipped: dict[str, str | None] = field(default_factory=lambda: {slot: None for slot in SLOTS})
    cooldowns: dict[str, datetime] = field(default_factory=dict)
    streak: int = 0
    last_active_date: date | None = None
    buffs: dict[str, int] = field(default_factory=dict)

    @property
    def level(self) -> int:
        return level_from_xp(self.xp)

    def consume_buffs(self, names: tuple[str, ...] | list[str]) -> None:
        for name in names:
            remaining = self.buffs.get(name, 0) - 1
            if remaining > 0:
                self.buffs[name] = remaining
            else:
                self.buffs.pop(name, None)

    def grant_buff(self, name: str, count: int = 1) -> None:
        self.buffs[name] = self.buffs.get(name, 0) + count

    def to_dict(self) -> dict[str, Any]:
        return {
            "xp": self.xp,
            "currency": self.currency,
            "tokens": self.tokens,
            "inventory": list(self.inventory),
            "equipped": dict(self.equipped),
            "cooldowns": {action: format_timestamp(stamp) for action, stamp in self.cooldowns.items()},
            "streak": self.streak,
            "lastActiveDate": self.last_active_date.isoformat() if self.last_active_date else None,
            "buffs": dict(self.buffs),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "PlayerRecord":
        equipped: dict[str, str | None] = {slot: None for slot in SLOTS}
        raw_equipped = payload.get("equipped")
        if isinstance(raw_equipped, dict):
            for slot in SLOTS:
                equipped[slot] = raw_equipped.get(slot) or None

        cooldowns: dict[str, datetime] = {}
        raw_cooldowns = payload.get("cooldowns")
        if isinstance(raw_cooldowns, dict):
            for action, stamp in raw_cooldowns.items():
                parsed = parse_timestamp(stamp)
                if parsed is not None:
                    cooldowns[action] = parsed
        for legacy_key, action in _LEGACY_COOLDOWNS.items():
            parsed = parse_timestamp(payload.get(legacy_key))
            if parsed is not None:
                cooldowns.setdefault(action, parsed)

        raw_buffs = payload.get("buffs", payload.get("_buffs")) or {}
        buffs = {str(name): int(count) for name, count in raw_buffs.items() if count}

        return cls(
            xp=max(0.0, float(payload.get("xp", 0) or 0)),
            currency=max(0, int(payload.get("currency", payload.get("coins", 0)) or 0)),
            tokens=max(0, int(payload.get("tokens", 0) or 0)),
            inventory=[str(name) for name in payload.get("inventory", []) or []],
            equipped=equipped,
            cooldowns=cooldowns,
            streak=int(payload.get("streak", 0) or 0),
            last_active_date=_parse_date(payload.get("lastActiveDate", payload.get("lastActiveISO"))),
            buffs=buffs,
        )


@dataclass
class Participant:
    joined_at: datetime
    contribution: float = 0

    def to_dict(self) -> dict[str, Any]:
        return {"joinedAt": format_timestamp(self.joined_at), "contribution": self.contribution}

    @classmethod
    def from_dict(cls, payload: Any, fallback: datetime) -> "Participant":
        # legacy raid participants were stored as a bare damage number
        if isinstance(payload, (int, float)):
            return cls(joined_at=fallback, contribution=payload)
        return cls(
            joined_at=parse_timestamp(payload.get("joinedAt")) or fallback,
            contribution=payload.get("contribution", 0) or 0,
        )


def _participants_from(payload: Any, fallback: datetime) -> dict[str, Participant]:
    if not isinstance(payload, dict):
        return {}
    return {str(user_id): Participant.from_dict(entry, fallback) for user_id, entry in payload.items()}


@dataclass
class Hunt:
    channel_id: str
    mode: str
    theme: str
    target: float
    max_party: int
    deadline: datetime
    started_by: str
    started_at: datetime
    participants: dict[str, Participant] = field(default_factory=dict)
    total: float = 0
    state: str = ACTIVE

    kind = HUNT

    @property
    def is_active(self) -> bool:
        return self.state == ACTIVE

    @property
    def is_playable(self) -> bool:
        return self.theme in THEMES and self.mode in HUNT_MODES

    def to_dict(self) -> dict[str, Any]:
        return {
            "channelId": self.channel_id,
            "mode": self.mode,
            "theme": self.theme,
            "target": self.target,
            "maxParty": self.max_party,
            "deadline": format_timestamp(self.deadline),
            "startedBy": self.started_by,
            "startedAt": format_timestamp(self.started_at),
            "participants": {user_id: entry.to_dict() for user_id, entry in self.participants.items()},
            "total": self.total,
            "state": self.state,
        }

    @classmethod
    def from_dict(cls, channel_id: str, payload: dict[str, Any]) -> "Hunt":
        deadline = parse_timestamp(payload.get("deadline")) or utc_now()
        started_at = parse_timestamp(payload.get("startedAt")) or deadline
        completed = payload.get("state") == RESOLVED or bool(payload.get("completed"))
        return cls(
            channel_id=str(payload.get("channelId", channel_id)),
            mode=str(payload.get("mode", "trio")),
            theme=str(payload.get("theme", payload.get("exercise", "pushups"))),
            target=payload.get("target", 0),
            max_party=int(payload.get("maxParty", 1)),
            deadline=deadline,
            started_by=str(payload.get("startedBy", "")),
            started_at=started_at,
            participants=_participants_from(payload.get("participants"), started_at),
            total=payload.get("total", 0) or 0,
            state=RESOLVED if completed else ACTIVE,
        )


@dataclass
class Raid:
    channel_id: str
    theme: str
    boss_name: str
    hp: float
    hp_max: float
    deadline: datetime
    started_by: str
    started_at: datetime
    participants: dict[str, Participant] = field(default_factory=dict)
    state: str = ACTIVE

    kind = RAID

    @property
    def is_active(self) -> bool:
        return self.state == ACTIVE

    @property
    def is_playable(self) -> bool:
        return self.theme in THEMES and self.hp_max > 0

    @property
    def depleted_fraction(self) -> float:
        if self.hp_max <= 0:
            return 0.0
        return max(0.0, min(1.0, 1 - self.hp / self.hp_max))

    def to_dict(self) -> dict[str, Any]:
        return {
            "channelId": self.channel_id,
            "theme": self.theme,
            "bossName": self.boss_name,
            "hp": self.hp,
            "hpMax": self.hp_max,
            "deadline": format_timestamp(self.deadline),
            "startedBy": self.started_by,
            "startedAt": format_timestamp(self.started_at),
            "participants": {user_id: entry.to_dict() for user_id, entry in self.participants.items()},
            "state": self.state,
        }

    @classmethod
    def from_dict(cls, channel_id: str, payload: dict[str, Any]) -> "Raid":
        deadline = parse_timestamp(payload.get("deadline")) or utc_now()
        started_at = parse_timestamp(payload.get("startedAt")) or deadline
        hp_max = payload.get("hpMax", payload.get("hp", 0)) or 0
        done = payload.get("state") == RESOLVED or bool(payload.get("done"))
        return cls(
            channel_id=str(payload.get("channelId", channel_id)),
            theme=str(payload["exercise"]) if "exercise" in payload else str(payload.get("theme", "pushups")),
            boss_name=str(payload.get("bossName", "Ancient Sovereign")),
            hp=max(0, min(hp_max, payload.get("hp", hp_max) or 0)),
            hp_max=hp_max,
            deadline=deadline,
            started_by=str(payload.get("startedBy", "")),
            started_at=started_at,
            participants=_participants_from(payload.get("participants"), started_at),
            state=RESOLVED if done else ACTIVE,
        )
