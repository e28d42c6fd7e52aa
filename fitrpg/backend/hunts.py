"""Hunt engine: join-gated, party-capped cooperative accumulation."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from fitrpg.backend.encounters import EncounterEngine
from fitrpg.backend.errors import ConflictError, ValidationError
from fitrpg.backend.models import HUNT, HUNT_MODES, ActionResult, Hunt, HuntMode, Participant
from fitrpg.backend.progression import THEMES, theme_for

logger = logging.getLogger(__name__)

SUCCESS = "success"
FAILURE = "failure"
CANCELLED = "cancelled"
ABANDONED = "abandoned"

HUNT_TARGETS: dict[str, dict[str, float]] = {
    "pushups": {"solo": 100, "trio": 500, "party": 800},
    "squats": {"solo": 150, "trio": 700, "party": 1100},
    "situps": {"solo": 120, "trio": 600, "party": 900},
    "pullups": {"solo": 25, "trio": 80, "party": 130},
    "burpees": {"solo": 50, "trio": 220, "party": 360},
    "plank_seconds": {"solo": 180, "trio": 600, "party": 900},
    "run_miles": {"solo": 2, "trio": 5, "party": 8},
}


def hunt_mode(mode: str) -> HuntMode:
    found = HUNT_MODES.get(mode)
    if found is None:
        raise ValidationError(f"Unknown hunt mode: {mode}", {"mode": mode, "allowed": sorted(HUNT_MODES)})
    return found


def target_for(mode: str, theme: str) -> float:
    return HUNT_TARGETS.get(theme, HUNT_TARGETS["pushups"])[mode]


class HuntEngine(EncounterEngine):
    kind = HUNT

    def _live(self) -> dict[str, Hunt]:
        return self.state.hunts

    def start(self, channel_id: str, mode: str, theme: str, initiator_id: str, now: datetime) -> ActionResult:
        selected = hunt_mode(mode)
        theme_for(theme)
        self._ensure_vacant(channel_id)

        hunt = Hunt(
            channel_id=channel_id,
            mode=mode,
            theme=theme,
            target=target_for(mode, theme),
            max_party=selected.party_size,
            deadline=now + timedelta(minutes=self.config.hunt_duration_min),
            started_by=initiator_id,
            started_at=now,
        )
        self.state.hunts[channel_id] = hunt
        logger.info("Hunt started: channel=%s mode=%s theme=%s target=%s", channel_id, mode, theme, hunt.target)
        return ActionResult(
            result=hunt,
            engine_events=[{"kind": "hunt_created", "channelId": channel_id, "hunt": self.status(channel_id, now)}],
        )

    def join(self, channel_id: str, user_id: str, now: datetime) -> ActionResult:
        """Join the live hunt. ``result`` is True only for a fresh join."""
        hunt = self.require(channel_id)
        if user_id in hunt.participants:
            return ActionResult(result=False, engine_events=[])
        if now >= hunt.deadline:
            raise ConflictError("The hunt has already ended", {"channelId": channel_id})
        if len(hunt.participants) >= hunt.max_party:
            raise ConflictError(f"Party is full ({hunt.max_party})", {"channelId": channel_id, "maxParty": hunt.max_party})

        hunt.participants[user_id] = Participant(joined_at=now)
        return ActionResult(
            result=True,
            engine_events=[
                {
                    "kind": "hunt_joined",
                    "channelId": channel_id,
                    "userId": user_id,
                    "partySize": len(hunt.participants),
                    "maxParty": hunt.max_party,
                }
            ],
        )

    def leave(self, channel_id: str, user_id: str, now: datetime) -> ActionResult:
        hunt = self.require(channel_id)
        if hunt.participants.pop(user_id, None) is None:
            return ActionResult(result=False, engine_events=[])
        events: list[dict[str, Any]] = [{"kind": "hunt_left", "channelId": channel_id, "userId": user_id}]
        if not hunt.participants:
            events.extend(self._resolve(hunt, ABANDONED, None, total=hunt.total, target=hunt.target))
        return ActionResult(result=True, engine_events=events)

    def apply_contribution(self, channel_id: str, user_id: str, activity: str, amount: float, now: datetime) -> ActionResult:
        """Feed a logged activity into the hunt. ``result`` is the amount counted."""
        hunt = self.get(channel_id)
        if hunt is None or not self._is_open(hunt, now) or amount <= 0:
            return ActionResult(result=0, engine_events=[])
        participant = hunt.participants.get(user_id)
        if participant is None or THEMES[hunt.theme].activity != activity:
            return ActionResult(result=0, engine_events=[])

        hunt.total += amount
        participant.contribution += amount
        events: list[dict[str, Any]] = [
            {
                "kind": "hunt_progress",
                "channelId": channel_id,
                "userId": user_id,
                "amount": amount,
                "total": hunt.total,
                "target": hunt.target,
            }
        ]
        if hunt.total >= hunt.target:
            events.extend(self._resolve_outcome(hunt))
        return ActionResult(result=amount, engine_events=events)

    def expire(self, channel_id: str, now: datetime) -> ActionResult:
        hunt = self.get(channel_id)
        if hunt is None or now < hunt.deadline:
            return ActionResult(result=False, engine_events=[])
        events = self._resolve_outcome(hunt)
        return ActionResult(result=bool(events), engine_events=events)

    def cancel(self, channel_id: str) -> ActionResult:
        hunt = self.require(channel_id)
        events = self._resolve(hunt, CANCELLED, None, total=hunt.total, target=hunt.target)
        return ActionResult(result=bool(events), engine_events=events)

    def _resolve_outcome(self, hunt: Hunt) -> list[dict[str, Any]]:
        if hunt.total >= hunt.target:
            band = self.config.hunt_rewards[HUNT_MODES[hunt.mode].reward]
            outcome = SUCCESS
        else:
            band = self.config.hunt_consolation
            outcome = FAILURE
        return self._resolve(hunt, outcome, band, mode=hunt.mode, total=hunt.total, target=hunt.target)

    def status(self, channel_id: str, now: datetime) -> dict[str, Any]:
        hunt = self.require(channel_id)
        theme = THEMES[hunt.theme]
        payload = hunt.to_dict()
        payload.update(
            {
                "kind": HUNT,
                "label": f"{HUNT_MODES[hunt.mode].label} {theme.label}",
                "unit": theme.unit,
                "remainingSeconds": self._remaining_seconds(hunt, now),
                "partySize": len(hunt.participants),
            }
        )
        return payload
