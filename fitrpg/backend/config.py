"""Configuration helpers for backend runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from fitrpg.backend.rewards import RewardBand


@dataclass(frozen=True)
class EngineConfig:
    log_cooldown_sec: float = 10
    raid_hit_cooldown_sec: float = 8
    hunt_cooldown_sec: float = 30
    hunt_duration_min: float = 60
    raid_duration_hours: float = 24
    hunt_rewards: dict[str, RewardBand] = field(
        default_factory=lambda: {
            "decent": RewardBand(xp=(150, 240), currency=(120, 220), gear_odds=0.18),
            "good": RewardBand(xp=(260, 420), currency=(220, 380), gear_odds=0.28),
            "great": RewardBand(xp=(380, 640), currency=(360, 600), gear_odds=0.38),
        }
    )
    hunt_consolation: RewardBand = RewardBand(xp=(0, 0), currency=(30, 70), gear_odds=0.0)
    raid_victory: RewardBand = RewardBand(xp=(800, 1600), currency=(600, 1200), gear_odds=0.25)
    raid_consolation: RewardBand = RewardBand(xp=(0, 0), currency=(120, 260), gear_odds=0.0)


@dataclass(frozen=True)
class BackendSettings:
    server_salt: str
    admin_token: str | None
    database_url: str | None
    data_file: str | None
    host: str
    port: int
    save_delay_sec: float = 0.5
    expiry_interval_sec: float = 30
    engine: EngineConfig = field(default_factory=EngineConfig)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def load_engine_config() -> EngineConfig:
    return EngineConfig(
        log_cooldown_sec=_env_float("FITRPG_LOG_COOLDOWN_SEC", 10),
        raid_hit_cooldown_sec=_env_float("FITRPG_RAID_HIT_COOLDOWN_SEC", 8),
        hunt_cooldown_sec=_env_float("FITRPG_HUNT_COOLDOWN_SEC", 30),
        hunt_duration_min=_env_float("FITRPG_HUNT_DURATION_MIN", 60),
        raid_duration_hours=_env_float("FITRPG_RAID_DURATION_HOURS", 24),
    )


def load_settings() -> BackendSettings:
    port_raw = os.getenv("FITRPG_PORT", "8000")
    return BackendSettings(
        server_salt=os.getenv("FITRPG_SERVER_SALT", "dev-salt"),
        admin_token=os.getenv("FITRPG_ADMIN_TOKEN") or None,
        database_url=os.getenv("FITRPG_DATABASE_URL") or None,
        data_file=os.getenv("FITRPG_DATA_FILE") or None,
        host=os.getenv("FITRPG_HOST", "127.0.0.1"),
        port=int(port_raw),
        save_delay_sec=_env_float("FITRPG_SAVE_DELAY_SEC", 0.5),
        expiry_interval_sec=_env_float("FITRPG_EXPIRY_INTERVAL_SEC", 30),
        engine=load_engine_config(),
    )
