import pytest

from fitrpg.backend.catalog import (
    Armor,
    Catalog,
    Consumable,
    Trinket,
    Weapon,
    build_default_catalog,
    is_unlocked,
    item_from_dict,
)
from fitrpg.backend.errors import ConflictError, NotFoundError, ValidationError


def test_default_catalog_lookup_is_case_insensitive() -> None:
    catalog = build_default_catalog()

    item = catalog.get("  iron sword ")

    assert isinstance(item, Weapon)
    assert item.atk == 6
    assert item.tier == 2


def test_get_unknown_item_raises_not_found() -> None:
    with pytest.raises(NotFoundError):
        build_default_catalog().get("Excalibur")


def test_items_of_type_rejects_unknown_type() -> None:
    catalog = build_default_catalog()

    assert {item.type for item in catalog.items_of_type("armor")} == {"armor"}
    with pytest.raises(ValidationError):
        catalog.items_of_type("shield")


def test_gear_pool_respects_tier_gate() -> None:
    catalog = build_default_catalog()

    beginner_pool = catalog.gear_pool(level=1)
    veteran_pool = catalog.gear_pool(level=90)

    assert beginner_pool
    assert {item.effective_tier for item in beginner_pool} == {1}
    assert {item.type for item in beginner_pool} == {"weapon", "armor"}
    assert max(item.effective_tier for item in veteran_pool) == 3


def test_purchase_gate_matches_loot_pool() -> None:
    catalog = build_default_catalog()
    level = 45
    pool = {item.name for item in catalog.gear_pool(level)}

    for item in catalog:
        if item.type not in {"weapon", "armor"}:
            continue
        if item.name in pool:
            catalog.ensure_purchasable(item, level)
        else:
            with pytest.raises(ConflictError):
                catalog.ensure_purchasable(item, level)


def test_non_gear_items_are_never_tier_gated() -> None:
    relic = build_default_catalog().get("Omniscient Eye")

    assert isinstance(relic, Trinket)
    assert is_unlocked(relic, level=0)


def test_item_from_dict_accepts_legacy_armor_field() -> None:
    item = item_from_dict({"type": "armor", "name": "Old Plate", "tier": 2, "def": 7, "price": 300, "extra": "x"})

    assert item == Armor(name="Old Plate", price=300, tier=2, defense=7)


def test_item_from_dict_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        item_from_dict({"type": "spell", "name": "Fireball", "price": 10})


def test_catalog_list_round_trip_keeps_variant_fields() -> None:
    catalog = Catalog(
        [
            Weapon(name="Stick", price=5, tier=1, atk=1),
            Consumable(name="Tonic", price=50, effect="+10% XP", buff="xp_boost"),
        ]
    )

    restored = Catalog.from_list(catalog.to_list())

    assert list(restored) == list(catalog)
    assert restored.get("tonic").buff == "xp_boost"
    assert len(restored) == 2
