"""Static equipment and consumable catalog with tier lookups."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, ClassVar, Iterable

from fitrpg.backend.errors import ConflictError, NotFoundError, ValidationError
from fitrpg.backend.progression import max_tier_unlocked

GEAR_TYPES = frozenset({"weapon", "armor"})


@dataclass(frozen=True)
class CatalogItem:
    type: ClassVar[str] = ""

    name: str
    price: int
    tier: int | None = None

    @property
    def effective_tier(self) -> int:
        return self.tier or 1

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["type"] = self.type
        return payload


@dataclass(frozen=True)
class Weapon(CatalogItem):
    type: ClassVar[str] = "weapon"

    atk: int = 0


@dataclass(frozen=True)
class Armor(CatalogItem):
    type: ClassVar[str] = "armor"

    defense: int = 0


@dataclass(frozen=True)
class Passive(CatalogItem):
    """Item granting a small XP bonus while equipped."""

    bonus: str = ""
    xp_bonus: float = 0.0
    activity: str | None = None

    def applies_to(self, activity: str) -> bool:
        return self.xp_bonus > 0 and (self.activity is None or self.activity == activity)


@dataclass(frozen=True)
class Trinket(Passive):
    type: ClassVar[str] = "trinket"


@dataclass(frozen=True)
class Pet(Passive):
    type: ClassVar[str] = "pet"


@dataclass(frozen=True)
class Mount(Passive):
    type: ClassVar[str] = "mount"


@dataclass(frozen=True)
class Consumable(CatalogItem):
    type: ClassVar[str] = "consumable"

    effect: str = ""
    buff: str | None = None


ITEM_CLASSES: dict[str, type[CatalogItem]] = {
    cls.type: cls for cls in (Weapon, Armor, Trinket, Pet, Mount, Consumable)
}


def item_from_dict(payload: dict[str, Any]) -> CatalogItem:
    item_type = str(payload.get("type", ""))
    cls = ITEM_CLASSES.get(item_type)
    if cls is None:
        raise ValidationError(f"Unknown item type: {item_type!r}", {"type": item_type})
    values = dict(payload)
    values.pop("type", None)
    # legacy records spell armor defense as "def"
    if cls is Armor and "def" in values:
        values.setdefault("defense", values.pop("def"))
    allowed = {item_field.name for item_field in fields(cls)}
    return cls(**{key: value for key, value in values.items() if key in allowed})


def is_unlocked(item: CatalogItem, level: int) -> bool:
    """Tier gate shared by the purchase and loot paths."""
    if item.type not in GEAR_TYPES:
        return True
    return item.effective_tier <= max_tier_unlocked(level)


class Catalog:
    def __init__(self, items: Iterable[CatalogItem]) -> None:
        self._items: list[CatalogItem] = list(items)
        self._by_name = {item.name.lower(): item for item in self._items}

    def __iter__(self):
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def find(self, name: str) -> CatalogItem | None:
        return self._by_name.get(name.strip().lower())

    def get(self, name: str) -> CatalogItem:
        item = self.find(name)
        if item is None:
            raise NotFoundError(f"Item not found: {name}", {"item": name})
        return item

    def items_of_type(self, item_type: str) -> list[CatalogItem]:
        if item_type not in ITEM_CLASSES:
            raise ValidationError(f"Unknown item type: {item_type!r}", {"type": item_type})
        return [item for item in self._items if item.type == item_type]

    def items_at_or_below_tier(self, max_tier: int, types: Iterable[str]) -> list[CatalogItem]:
        wanted = set(types)
        return [item for item in self._items if item.type in wanted and item.effective_tier <= max_tier]

    def gear_pool(self, level: int) -> list[CatalogItem]:
        return self.items_at_or_below_tier(max_tier_unlocked(level), GEAR_TYPES)

    def ensure_purchasable(self, item: CatalogItem, level: int) -> None:
        if not is_unlocked(item, level):
            raise ConflictError(
                f"Tier too high: {item.name} needs tier {item.effective_tier} unlocked",
                {"item": item.name, "tier": item.effective_tier, "maxTier": max_tier_unlocked(level)},
            )

    def to_list(self) -> list[dict[str, Any]]:
        return [item.to_dict() for item in self._items]

    @classmethod
    def from_list(cls, payload: Iterable[dict[str, Any]]) -> "Catalog":
        return cls(item_from_dict(entry) for entry in payload)


def build_default_items() -> list[CatalogItem]:
    weapons = [
        Weapon(name="Wooden Club", tier=1, atk=2, price=120),
        Weapon(name="Bronze Dagger", tier=1, atk=3, price=180),
        Weapon(name="Iron Sword", tier=2, atk=6, price=420),
        Weapon(name="Steel Saber", tier=2, atk=8, price=650),
        Weapon(name="Runed Blade", tier=3, atk=12, price=1200),
        Weapon(name="Sunforged Spear", tier=4, atk=18, price=2000),
        Weapon(name="Dragonbone Axe", tier=5, atk=26, price=3100),
        Weapon(name="Celestial Halberd", tier=6, atk=35, price=4500),
        Weapon(name="Starpiercer Lance", tier=7, atk=46, price=6400),
        Weapon(name="Voidreaver Scythe", tier=8, atk=58, price=8800),
        Weapon(name="Aurora Greatsword", tier=9, atk=72, price=12000),
        Weapon(name="Transcendent Blade", tier=10, atk=90, price=16000),
    ]
    armors = [
        Armor(name="Padded Vest", tier=1, defense=2, price=110),
        Armor(name="Leather Coat", tier=1, defense=3, price=170),
        Armor(name="Chainmail", tier=2, defense=6, price=420),
        Armor(name="Scale Plate", tier=2, defense=8, price=650),
        Armor(name="Runed Aegis", tier=3, defense=12, price=1200),
        Armor(name="Sunforged Plate", tier=4, defense=18, price=2000),
        Armor(name="Dragonhide Mail", tier=5, defense=26, price=3100),
        Armor(name="Celestial Carapace", tier=6, defense=35, price=4500),
        Armor(name="Aegis of Dawn", tier=7, defense=46, price=6300),
        Armor(name="Eclipse Barrier", tier=8, defense=58, price=8700),
        Armor(name="Mythril Bastion", tier=9, defense=72, price=11800),
        Armor(name="Omega Bulwark", tier=10, defense=90, price=15800),
    ]
    trinkets = [
        Trinket(name="Lucky Charm", tier=2, bonus="+2% coins", price=800),
        Trinket(name="Runner's Band", tier=2, bonus="+3% run XP", xp_bonus=0.03, activity="run_miles", price=1000),
        Trinket(name="Focus Bead", tier=3, bonus="+3% all XP", xp_bonus=0.03, price=1800),
        Trinket(name="Philosopher's Sigil", tier=5, bonus="+4% all XP", xp_bonus=0.04, price=3200),
        Trinket(name="King's Crest", tier=6, bonus="+6% coins", price=4200),
        Trinket(name="Eternal Compass", tier=7, bonus="+8% adventure loot", price=5600),
        Trinket(name="Fateweaver Charm", tier=8, bonus="+10% hunt loot", price=7200),
        Trinket(name="Celestial Relic", tier=9, bonus="+12% all XP", xp_bonus=0.12, price=9200),
        Trinket(name="Omniscient Eye", tier=10, bonus="+14% all XP", xp_bonus=0.14, price=12000),
    ]
    consumables = [
        Consumable(name="Health Potion", effect="Restore stamina (flavor)", price=100),
        Consumable(name="Energy Drink", effect="+10% XP for next log", buff="xp_boost", price=160),
        Consumable(name="Treasure Map", effect="Guarantee loot on next gear roll", buff="guaranteed_loot", price=500),
    ]
    pets = [
        Pet(name="Pocket Slime", tier=2, bonus="+2% XP from logs", xp_bonus=0.02, price=900),
        Pet(name="Trail Hawk", tier=3, bonus="+3% run XP", xp_bonus=0.03, activity="run_miles", price=1200),
    ]
    mounts = [
        Mount(name="Sprint Goat", tier=3, bonus="+5% hunt token chance", price=1500),
        Mount(name="Shadow Steed", tier=4, bonus="+5 Power in hunts", price=2200),
    ]
    return [*weapons, *armors, *trinkets, *consumables, *pets, *mounts]


def build_default_catalog() -> Catalog:
    return Catalog(build_default_items())
