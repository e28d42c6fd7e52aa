"""State builders and the in-memory container for players and live encounters."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from fitrpg.backend.catalog import Catalog, build_default_catalog
from fitrpg.backend.models import Hunt, PlayerRecord, Raid

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_initial_state() -> dict[str, Any]:
    """Return the empty global state blob."""
    now = _utc_now_iso()
    return {
        "version": STATE_VERSION,
        "users": {},
        "hunts": {},
        "raids": {},
        "catalog": [],
        "meta": {
            "createdAt": now,
            "updatedAt": now,
        },
    }


def merge_legacy_state(blob: dict[str, Any] | None) -> dict[str, Any]:
    """Overlay a stored blob onto the initial state, keeping unknown keys out."""
    merged = build_initial_state()
    if not blob:
        return merged
    for key in ("users", "hunts", "raids"):
        value = blob.get(key)
        if isinstance(value, dict):
            merged[key] = value
    catalog = blob.get("catalog")
    if isinstance(catalog, list):
        merged["catalog"] = catalog
    meta = blob.get("meta")
    if isinstance(meta, dict):
        merged["meta"] = {**merged["meta"], **meta}
    return merged


@dataclass
class EngineState:
    players: dict[str, PlayerRecord] = field(default_factory=dict)
    hunts: dict[str, Hunt] = field(default_factory=dict)
    raids: dict[str, Raid] = field(default_factory=dict)
    catalog_overrides: list[dict[str, Any]] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=lambda: dict(build_initial_state()["meta"]))

    def ensure_player(self, user_id: str) -> PlayerRecord:
        record = self.players.get(user_id)
        if record is None:
            record = PlayerRecord()
            self.players[user_id] = record
        return record

    def build_catalog(self) -> Catalog:
        if self.catalog_overrides:
            return Catalog.from_list(self.catalog_overrides)
        return build_default_catalog()

    def to_blob(self) -> dict[str, Any]:
        meta = dict(self.meta)
        meta["updatedAt"] = _utc_now_iso()
        return {
            "version": STATE_VERSION,
            "users": {user_id: record.to_dict() for user_id, record in self.players.items()},
            "hunts": {channel_id: hunt.to_dict() for channel_id, hunt in self.hunts.items()},
            "raids": {channel_id: raid.to_dict() for channel_id, raid in self.raids.items()},
            "catalog": [dict(entry) for entry in self.catalog_overrides],
            "meta": meta,
        }

    @classmethod
    def from_blob(cls, blob: dict[str, Any] | None) -> "EngineState":
        merged = merge_legacy_state(blob)
        state = cls(catalog_overrides=list(merged["catalog"]), meta=dict(merged["meta"]))
        for user_id, payload in merged["users"].items():
            if isinstance(payload, dict):
                state.players[str(user_id)] = PlayerRecord.from_dict(payload)
        for channel_id, payload in merged["hunts"].items():
            if not isinstance(payload, dict):
                continue
            hunt = Hunt.from_dict(str(channel_id), payload)
            if _keep_encounter(hunt):
                state.hunts[hunt.channel_id] = hunt
        for channel_id, payload in merged["raids"].items():
            if not isinstance(payload, dict):
                continue
            raid = Raid.from_dict(str(channel_id), payload)
            if _keep_encounter(raid):
                state.raids[raid.channel_id] = raid
        return state


def _keep_encounter(encounter: Hunt | Raid) -> bool:
    if not encounter.is_active:
        logger.info("Dropping resolved %s from stored state: channel=%s", encounter.kind, encounter.channel_id)
        return False
    if not encounter.is_playable:
        logger.warning(
            "Dropping unplayable %s from stored state: channel=%s theme=%s",
            encounter.kind,
            encounter.channel_id,
            encounter.theme,
        )
        return False
    return True
