"""Persistence gateways for the engine state blob and a write-behind cache."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "GLOBAL"


class StateGateway(Protocol):
    def load(self) -> dict[str, Any] | None:
        """Return the stored blob, or None when nothing was saved yet."""

    def save(self, blob: dict[str, Any]) -> None:
        """Replace the stored blob."""


@dataclass
class InMemoryStateGateway:
    blob: dict[str, Any] | None = None
    saves: int = 0

    def load(self) -> dict[str, Any] | None:
        return copy.deepcopy(self.blob)

    def save(self, blob: dict[str, Any]) -> None:
        self.blob = copy.deepcopy(blob)
        self.saves += 1


@dataclass
class JsonFileStateGateway:
    path: Path

    def __post_init__(self) -> None:
        self.path = Path(self.path)

    def load(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.exception("Failed to read state file %s; starting fresh", self.path)
            return None
        return payload if isinstance(payload, dict) else None

    def save(self, blob: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(blob, handle, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


@dataclass
class PostgresStateGateway:
    database_url: str
    scope: str = DEFAULT_SCOPE

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    def load(self) -> dict[str, Any] | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT state_json
                    FROM engine_state
                    WHERE scope = %s
                    """,
                    (self.scope,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        (state_json,) = row
        return state_json if isinstance(state_json, dict) else json.loads(state_json)

    def save(self, blob: dict[str, Any]) -> None:
        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO engine_state (scope, state_json, updated_at)
                    VALUES (%s, %s::jsonb, %s)
                    ON CONFLICT (scope)
                    DO UPDATE SET state_json = EXCLUDED.state_json, updated_at = EXCLUDED.updated_at
                    """,
                    (self.scope, json.dumps(blob), now),
                )
            conn.commit()


def create_gateway(database_url: str | None, data_file: str | None = None) -> StateGateway:
    if database_url:
        return PostgresStateGateway(database_url=database_url)
    if data_file:
        return JsonFileStateGateway(path=Path(data_file))
    return InMemoryStateGateway()


@dataclass
class WriteBehindStore:
    """Coalesces mutations into delayed saves of a snapshot.

    ``mark_dirty`` (re)arms a timer on the running event loop; without a loop
    it only sets the flag and ``flush_now`` must be called explicitly.
    """

    gateway: StateGateway
    snapshot: Callable[[], dict[str, Any]]
    delay: float = 0.5
    dirty: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self._timer: asyncio.TimerHandle | None = None
        self._flush_task: asyncio.Task[None] | None = None

    def mark_dirty(self) -> None:
        self.dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.delay, self._start_flush)

    def _start_flush(self) -> None:
        self._timer = None
        if self._flush_task is not None and not self._flush_task.done():
            # a save is in flight; it re-arms itself if still dirty
            return
        self._flush_task = asyncio.get_running_loop().create_task(self.aflush())

    async def aflush(self) -> bool:
        if not self.dirty:
            return False
        blob = self.snapshot()
        self.dirty = False
        try:
            await asyncio.to_thread(self.gateway.save, blob)
        except Exception:
            self.dirty = True
            logger.exception("Deferred state save failed; will retry on next change")
            return False
        if self.dirty:
            self.mark_dirty()
        return True

    def flush_now(self) -> bool:
        """Save synchronously if dirty. Used on shutdown and in tests."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if not self.dirty:
            return False
        blob = self.snapshot()
        try:
            self.gateway.save(blob)
        except Exception:
            logger.exception("State save failed")
            return False
        self.dirty = False
        return True

    async def close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._flush_task is not None and not self._flush_task.done():
            await self._flush_task
        if self.dirty:
            await self.aflush()
