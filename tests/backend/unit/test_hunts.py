import random
from datetime import datetime, timedelta, timezone

import pytest

from fitrpg.backend.catalog import build_default_catalog
from fitrpg.backend.config import EngineConfig
from fitrpg.backend.encounters import ResolutionGuard
from fitrpg.backend.errors import ConflictError, NotFoundError, ValidationError
from fitrpg.backend.hunts import HuntEngine, target_for
from fitrpg.backend.state import EngineState

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _engine(seed: int = 5) -> HuntEngine:
    return HuntEngine(EngineState(), EngineConfig(), build_default_catalog(), random.Random(seed), ResolutionGuard())


def _resolved(events: list[dict]) -> list[dict]:
    return [event for event in events if event["kind"] == "hunt_resolved"]


def test_start_sets_target_party_and_deadline() -> None:
    hunts = _engine()

    result = hunts.start("c1", "trio", "squats", "u1", NOW)

    hunt = result.result
    assert hunt.target == target_for("trio", "squats") == 700
    assert hunt.max_party == 3
    assert hunt.deadline == NOW + timedelta(minutes=60)
    assert result.engine_events[0]["kind"] == "hunt_created"
    assert result.engine_events[0]["hunt"]["remainingSeconds"] == 3600


def test_start_rejects_unknown_mode_theme_and_duplicates() -> None:
    hunts = _engine()

    with pytest.raises(ValidationError):
        hunts.start("c1", "army", "pushups", "u1", NOW)
    with pytest.raises(ValidationError):
        hunts.start("c1", "solo", "yoga", "u1", NOW)

    hunts.start("c1", "solo", "pushups", "u1", NOW)
    with pytest.raises(ConflictError):
        hunts.start("c1", "trio", "squats", "u2", NOW)


def test_pushup_hunt_counts_only_joined_members_and_resolves_once() -> None:
    hunts = _engine()
    hunts.start("c1", "solo", "pushups", "a", NOW)
    hunts.join("c1", "a", NOW)

    first = hunts.apply_contribution("c1", "a", "pushups", 60, NOW)
    outsider = hunts.apply_contribution("c1", "b", "pushups", 50, NOW)
    assert first.result == 60
    assert outsider.result == 0
    assert hunts.state.hunts["c1"].total == 60

    final = hunts.apply_contribution("c1", "a", "pushups", 40, NOW)

    resolved = _resolved(final.engine_events)
    assert len(resolved) == 1
    assert resolved[0]["outcome"] == "success"
    assert resolved[0]["participants"][0]["userId"] == "a"
    assert resolved[0]["participants"][0]["contribution"] == 100
    assert resolved[0]["participants"][0]["xp"] > 0
    assert "c1" not in hunts.state.hunts

    late = hunts.apply_contribution("c1", "a", "pushups", 10, NOW)
    assert late.result == 0
    assert late.engine_events == []


def test_contribution_with_wrong_activity_is_ignored() -> None:
    hunts = _engine()
    hunts.start("c1", "trio", "plank_seconds", "a", NOW)
    hunts.join("c1", "a", NOW)

    wrong = hunts.apply_contribution("c1", "a", "pushups", 100, NOW)
    right = hunts.apply_contribution("c1", "a", "plank", 90, NOW)

    assert wrong.result == 0
    assert right.result == 90
    assert hunts.state.hunts["c1"].total == 90


def test_join_enforces_capacity_and_is_idempotent() -> None:
    hunts = _engine()
    hunts.start("c1", "trio", "pushups", "a", NOW)

    assert hunts.join("c1", "a", NOW).result is True
    assert hunts.join("c1", "a", NOW).result is False
    hunts.join("c1", "b", NOW)
    hunts.join("c1", "c", NOW)

    with pytest.raises(ConflictError):
        hunts.join("c1", "d", NOW)
    assert len(hunts.state.hunts["c1"].participants) == 3


def test_join_after_deadline_or_without_hunt_is_rejected() -> None:
    hunts = _engine()

    with pytest.raises(NotFoundError):
        hunts.join("c1", "a", NOW)

    hunts.start("c1", "trio", "pushups", "a", NOW)
    with pytest.raises(ConflictError):
        hunts.join("c1", "a", NOW + timedelta(minutes=61))


def test_guard_prevents_second_resolution_of_same_hunt() -> None:
    hunts = _engine()
    hunts.start("c1", "solo", "pushups", "a", NOW)
    hunts.join("c1", "a", NOW)
    hunt = hunts.state.hunts["c1"]
    hunt.total = hunt.target

    first = hunts._resolve_outcome(hunt)
    player = hunts.state.players["a"]
    rewarded = (player.xp, player.currency, list(player.inventory))
    second = hunts._resolve_outcome(hunt)

    assert len(first) == 1
    assert first[0]["outcome"] == "success"
    assert rewarded[0] > 0 and rewarded[1] > 0
    assert second == []
    assert (player.xp, player.currency, list(player.inventory)) == rewarded


def test_expire_waits_for_deadline_then_fails_short_hunt() -> None:
    hunts = _engine()
    hunts.start("c1", "trio", "pushups", "a", NOW)
    hunts.join("c1", "a", NOW)
    hunts.apply_contribution("c1", "a", "pushups", 100, NOW)

    early = hunts.expire("c1", NOW + timedelta(minutes=30))
    late = hunts.expire("c1", NOW + timedelta(minutes=60))

    assert early.result is False
    assert late.result is True
    event = late.engine_events[0]
    assert event["outcome"] == "failure"
    assert event["participants"][0]["xp"] == 0
    assert 30 <= event["participants"][0]["currency"] <= 70
    assert event["participants"][0]["item"] is None


def test_last_member_leaving_abandons_hunt_without_rewards() -> None:
    hunts = _engine()
    hunts.start("c1", "trio", "pushups", "a", NOW)
    hunts.join("c1", "a", NOW)

    result = hunts.leave("c1", "a", NOW)

    kinds = [event["kind"] for event in result.engine_events]
    assert kinds == ["hunt_left", "hunt_resolved"]
    assert result.engine_events[1]["outcome"] == "abandoned"
    assert "c1" not in hunts.state.hunts
    assert hunts.state.players == {}


def test_cancel_resolves_without_rewards() -> None:
    hunts = _engine()
    hunts.start("c1", "trio", "pushups", "a", NOW)
    hunts.join("c1", "a", NOW)
    hunts.join("c1", "b", NOW)

    result = hunts.cancel("c1")

    event = result.engine_events[0]
    assert event["outcome"] == "cancelled"
    assert [entry["xp"] for entry in event["participants"]] == [0, 0]
    with pytest.raises(NotFoundError):
        hunts.cancel("c1")
