import random
from datetime import datetime, timedelta, timezone

import pytest

from fitrpg.backend.config import EngineConfig
from fitrpg.backend.engine import GameEngine, slot_for
from fitrpg.backend.errors import ConflictError, CooldownError, NotFoundError, ValidationError

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _engine(config: EngineConfig | None = None, seed: int = 13) -> GameEngine:
    return GameEngine(config=config, rng=random.Random(seed))


def test_report_activity_awards_xp_currency_and_token() -> None:
    changes: list[int] = []
    engine = GameEngine(rng=random.Random(1), on_change=lambda: changes.append(1))

    outcome = engine.report_activity("u1", "c1", "pushups", 100, now=NOW)

    result = outcome.result
    assert result.ok
    assert result.xp_gained == 66
    assert result.currency_gained == 22
    assert result.token_gained == 1
    player = engine.state.players["u1"]
    assert (player.xp, player.currency, player.tokens) == (66, 22, 1)
    assert player.cooldowns["log"] == NOW
    assert player.streak == 1
    assert changes == [1]


def test_report_activity_rejections_do_not_mutate() -> None:
    engine = _engine()
    engine.report_activity("u1", "c1", "pushups", 100, now=NOW)

    cooldown = engine.report_activity("u1", "c1", "pushups", 100, now=NOW + timedelta(seconds=5)).result
    unsupported = engine.report_activity("u1", "c1", "yoga", 10, now=NOW + timedelta(seconds=20)).result
    invalid = engine.report_activity("u1", "c1", "pushups", 0, now=NOW + timedelta(seconds=20)).result

    assert cooldown.error_kind == "cooldown"
    assert cooldown.retry_after == 5
    assert unsupported.error_kind == "unsupported_activity"
    assert invalid.error_kind == "validation"
    player = engine.state.players["u1"]
    assert (player.xp, player.tokens) == (66, 1)


def test_report_activity_emits_level_up_event() -> None:
    engine = _engine()

    outcome = engine.report_activity("u1", "c1", "pullups", 50, now=NOW)

    assert outcome.result.level_before == 0
    assert outcome.result.level_after == 1
    assert outcome.engine_events == [
        {"kind": "level_up", "channelId": "c1", "userId": "u1", "level": 1, "previousLevel": 0}
    ]


def test_streak_extends_on_consecutive_days_and_resets_after_gap() -> None:
    engine = _engine()

    engine.report_activity("u1", "c1", "pushups", 10, now=NOW)
    engine.report_activity("u1", "c1", "pushups", 10, now=NOW + timedelta(days=1))
    assert engine.state.players["u1"].streak == 2

    engine.report_activity("u1", "c1", "pushups", 10, now=NOW + timedelta(days=3))
    assert engine.state.players["u1"].streak == 1


def test_join_hunt_charges_one_token_on_fresh_join_only() -> None:
    engine = _engine()
    engine.start_hunt("c1", "trio", "pushups", "u1", now=NOW)

    with pytest.raises(ConflictError):
        engine.join_hunt("c1", "u1", now=NOW)

    engine.report_activity("u1", "c2", "pushups", 10, now=NOW)
    assert engine.join_hunt("c1", "u1", now=NOW).result is True
    assert engine.state.players["u1"].tokens == 0
    assert engine.join_hunt("c1", "u1", now=NOW + timedelta(seconds=1)).result is False
    assert engine.state.players["u1"].tokens == 0


def test_join_hunt_respects_join_cooldown() -> None:
    engine = _engine()
    player = engine.state.ensure_player("u1")
    player.tokens = 3
    engine.start_hunt("c1", "trio", "pushups", "u1", now=NOW)
    engine.start_hunt("c2", "trio", "squats", "u1", now=NOW)
    engine.join_hunt("c1", "u1", now=NOW)

    with pytest.raises(CooldownError) as excinfo:
        engine.join_hunt("c2", "u1", now=NOW + timedelta(seconds=10))

    assert excinfo.value.retry_after == 20
    assert player.tokens == 2


def test_logged_activity_feeds_joined_hunt_until_success() -> None:
    engine = _engine()
    engine.state.ensure_player("a").tokens = 1
    engine.start_hunt("c1", "solo", "pushups", "a", now=NOW)
    engine.join_hunt("c1", "a", now=NOW)

    first = engine.report_activity("a", "c1", "pushups", 60, now=NOW)
    outsider = engine.report_activity("b", "c1", "pushups", 50, now=NOW)
    final = engine.report_activity("a", "c1", "pushups", 40, now=NOW + timedelta(seconds=15))

    assert first.result.hunt_contribution == 60
    assert outsider.result.ok
    assert outsider.result.hunt_contribution == 0
    resolved = [event for event in final.engine_events if event["kind"] == "hunt_resolved"]
    assert len(resolved) == 1
    assert resolved[0]["outcome"] == "success"
    reward = resolved[0]["participants"][0]
    assert engine.state.players["a"].currency >= reward["currency"]


def test_raid_hit_cooldown_skips_damage_but_keeps_xp() -> None:
    engine = _engine(EngineConfig(log_cooldown_sec=0))
    engine.start_raid("c1", "pushups", "admin", hp=500, now=NOW)

    first = engine.report_activity("u1", "c1", "pushups", 20, now=NOW)
    second = engine.report_activity("u1", "c1", "pushups", 20, now=NOW + timedelta(seconds=3))
    third = engine.report_activity("u1", "c1", "pushups", 20, now=NOW + timedelta(seconds=9))

    assert first.result.raid_damage == 20
    assert second.result.raid_damage == 0
    assert second.result.xp_gained > 0
    assert third.result.raid_damage == 20
    assert engine.state.raids["c1"].hp == 460


def test_guaranteed_loot_buff_forces_gear_and_is_consumed() -> None:
    engine = _engine()
    player = engine.state.ensure_player("a")
    player.tokens = 1
    player.grant_buff("guaranteed_loot")
    engine.start_hunt("c1", "solo", "pushups", "a", now=NOW)
    engine.join_hunt("c1", "a", now=NOW)

    outcome = engine.report_activity("a", "c1", "pushups", 100, now=NOW)

    reward = next(event for event in outcome.engine_events if event["kind"] == "hunt_resolved")["participants"][0]
    assert reward["item"] is not None
    assert reward["item"] in player.inventory
    assert "guaranteed_loot" not in player.buffs


def test_buy_equip_and_use_items() -> None:
    engine = _engine()
    player = engine.state.ensure_player("u1")
    player.currency = 400

    bought = engine.buy_item("u1", "bronze dagger")
    engine.buy_item("u1", "Energy Drink")
    equipped = engine.equip_item("u1", "Bronze Dagger")
    used = engine.use_item("u1", "Energy Drink")

    assert bought.result["name"] == "Bronze Dagger"
    assert player.currency == 400 - 180 - 160
    assert equipped.result == {"slot": "weapon", "item": "Bronze Dagger"}
    assert used.result == {"item": "Energy Drink", "buff": "xp_boost"}
    assert player.inventory == ["Bronze Dagger"]

    boosted = engine.report_activity("u1", "c1", "pushups", 100, now=NOW)
    assert boosted.result.xp_gained == 73
    assert player.buffs == {}


def test_buy_item_enforces_tier_and_funds() -> None:
    engine = _engine()
    engine.state.ensure_player("u1").currency = 10_000

    with pytest.raises(ConflictError):
        engine.buy_item("u1", "Iron Sword")

    engine.state.players["u1"].currency = 10
    with pytest.raises(ConflictError):
        engine.buy_item("u1", "Wooden Club")
    with pytest.raises(NotFoundError):
        engine.buy_item("u1", "Excalibur")


def test_equip_and_use_reject_wrong_items() -> None:
    engine = _engine()
    player = engine.state.ensure_player("u1")
    player.inventory = ["Health Potion", "Padded Vest"]

    with pytest.raises(ValidationError):
        engine.equip_item("u1", "Health Potion")
    with pytest.raises(ValidationError):
        engine.use_item("u1", "Padded Vest")
    with pytest.raises(NotFoundError):
        engine.equip_item("u1", "Wooden Club")
    assert slot_for(engine.catalog.get("Padded Vest")) == "armor"


def test_expire_encounters_resolves_only_overdue() -> None:
    engine = _engine()
    engine.start_hunt("c1", "trio", "pushups", "u1", now=NOW)
    engine.start_raid("c2", "squats", "admin", duration_hours=2, now=NOW)

    first = engine.expire_encounters(now=NOW + timedelta(minutes=90))
    second = engine.expire_encounters(now=NOW + timedelta(hours=3))

    assert first.result == 1
    assert [event["outcome"] for event in first.engine_events] == ["failure"]
    assert second.result == 1
    assert [event["outcome"] for event in second.engine_events] == ["time_up"]
    assert engine.expire_encounters(now=NOW + timedelta(hours=4)).result == 0


def test_encounter_status_and_unknown_kind() -> None:
    engine = _engine()
    engine.start_raid("c1", "pushups", "admin", hp=400, now=NOW)

    status = engine.get_encounter_status("c1", "raid", now=NOW + timedelta(hours=1))

    assert status["hp"] == 400
    assert status["remainingSeconds"] == 23 * 3600
    with pytest.raises(NotFoundError):
        engine.get_encounter_status("c1", "hunt", now=NOW)
    with pytest.raises(ValidationError):
        engine.get_encounter_status("c1", "quest", now=NOW)


def test_state_survives_snapshot_and_keeps_pending_hunt() -> None:
    engine = _engine()
    engine.state.ensure_player("a").tokens = 1
    engine.start_hunt("c1", "solo", "pushups", "a", now=NOW)
    engine.join_hunt("c1", "a", now=NOW)
    engine.report_activity("a", "c1", "pushups", 60, now=NOW)

    restored = GameEngine.from_blob(engine.snapshot(), rng=random.Random(2))
    outcome = restored.report_activity("a", "c1", "pushups", 40, now=NOW + timedelta(seconds=30))

    assert restored.state.players["a"].xp == engine.state.players["a"].xp + outcome.result.xp_gained + next(
        event for event in outcome.engine_events if event["kind"] == "hunt_resolved"
    )["participants"][0]["xp"]
    assert "c1" not in restored.state.hunts


def test_get_profile_reports_progress_and_power() -> None:
    engine = _engine()
    player = engine.state.ensure_player("u1")
    player.xp = 150
    player.inventory = ["Wooden Club"]
    engine.equip_item("u1", "Wooden Club")

    profile = engine.get_profile("u1")

    assert profile["level"] == 1
    assert profile["xpIntoLevel"] == 50
    assert profile["xpForNextLevel"] == 173
    assert profile["maxTier"] == 1
    assert profile["power"] == 18
    assert profile["equipped"]["weapon"] == "Wooden Club"


def test_activity_in_channel_with_unplayable_stored_hunt_is_not_blocked() -> None:
    deadline = (NOW + timedelta(hours=1)).isoformat()
    engine = GameEngine.from_blob(
        {
            "hunts": {
                "c1": {
                    "mode": "solo",
                    "theme": "yoga",
                    "target": 10,
                    "deadline": deadline,
                    "participants": {"a": {"joinedAt": NOW.isoformat(), "contribution": 0}},
                }
            }
        },
        rng=random.Random(3),
    )

    outcome = engine.report_activity("a", "c1", "pushups", 10, now=NOW)

    assert outcome.result.ok
    assert outcome.result.hunt_contribution == 0
    assert engine.expire_encounters(now=NOW + timedelta(hours=2)).result == 0


def test_get_profile_does_not_create_player_records() -> None:
    engine = _engine()

    profile = engine.get_profile("ghost")

    assert profile["level"] == 0
    assert profile["currency"] == 0
    assert engine.state.players == {}
