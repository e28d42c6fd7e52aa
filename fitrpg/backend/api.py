"""FastAPI endpoints for activity logging, hunts, raids, the shop and websocket events."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from fitrpg.backend.engine import GameEngine
from fitrpg.backend.errors import ConflictError, CooldownError, EngineError, NotFoundError, ValidationError
from fitrpg.backend.models import ENCOUNTER_KINDS, HUNT, RAID, ActionResult
from fitrpg.backend.notify import publish_events
from fitrpg.backend.security import hash_token, verify_token
from fitrpg.backend.store import WriteBehindStore

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[str, int] = {
    ValidationError.kind: 400,
    "unsupported_activity": 400,
    NotFoundError.kind: 404,
    ConflictError.kind: 409,
    CooldownError.kind: 429,
}


class ActivityEnvelope(BaseModel):
    user_id: str = Field(min_length=1)
    channel_id: str = Field(min_length=1)
    activity: str = Field(min_length=1)
    amount: float


class StartHuntEnvelope(BaseModel):
    user_id: str = Field(min_length=1)
    mode: str = Field(default="trio", min_length=1)
    theme: str = Field(min_length=1)


class MemberEnvelope(BaseModel):
    user_id: str = Field(min_length=1)


class AdminEnvelope(BaseModel):
    admin_token: str = Field(min_length=1)


class StartRaidEnvelope(AdminEnvelope):
    user_id: str = Field(min_length=1)
    theme: str = Field(min_length=1)
    hp: int | None = Field(default=None, gt=0)
    hours: float | None = Field(default=None, gt=0)
    boss_name: str | None = Field(default=None, max_length=100)


class ItemEnvelope(BaseModel):
    item: str = Field(min_length=1, max_length=200)


class ActionResponse(BaseModel):
    result: Any = None
    events: list[dict[str, Any]] = Field(default_factory=list)


class ChannelWebSocketHub:
    """Fans structured engine events out to websocket subscribers of a channel."""

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, channel_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[channel_id].add(websocket)

    def disconnect(self, channel_id: str, websocket: WebSocket) -> None:
        connections = self._connections.get(channel_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            self._connections.pop(channel_id, None)

    async def send_status(self, websocket: WebSocket, status: dict[str, Any]) -> None:
        await websocket.send_json({"type": "status", "encounters": status})

    async def publish(self, channel_id: str, event: dict[str, Any]) -> None:
        stale_connections: list[WebSocket] = []
        for websocket in list(self._connections.get(channel_id, set())):
            try:
                await websocket.send_json({"type": "event", "event": event})
            except RuntimeError:
                stale_connections.append(websocket)
        for websocket in stale_connections:
            self.disconnect(channel_id=channel_id, websocket=websocket)


def _serialize_result(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


def create_app(
    engine: GameEngine | None = None,
    store: WriteBehindStore | None = None,
    admin_token: str | None = None,
    server_salt: str = "dev-salt",
    expiry_interval: float | None = None,
) -> FastAPI:
    game = engine if engine is not None else GameEngine()
    if store is not None and game.on_change is None:
        game.on_change = store.mark_dirty
    admin_hash = hash_token(admin_token, server_salt) if admin_token else None
    websocket_hub = ChannelWebSocketHub()

    async def expiry_ticker(interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                outcome = game.expire_encounters()
            except Exception:
                logger.exception("Expiry sweep failed")
                continue
            await publish_events(websocket_hub, outcome.engine_events)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        ticker = asyncio.create_task(expiry_ticker(expiry_interval)) if expiry_interval else None
        try:
            yield
        finally:
            if ticker is not None:
                ticker.cancel()
                try:
                    await ticker
                except asyncio.CancelledError:
                    pass
            if store is not None:
                await store.close()

    app = FastAPI(title="FitRPG Engine API", version="0.1.0", lifespan=lifespan)
    app.state.engine = game
    app.state.websocket_hub = websocket_hub

    @app.exception_handler(EngineError)
    async def engine_error_handler(_: Request, exc: EngineError) -> JSONResponse:
        headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, CooldownError) else None
        return JSONResponse(status_code=ERROR_STATUS.get(exc.kind, 400), content={"detail": exc.to_dict()}, headers=headers)

    def require_admin(token: str) -> None:
        if admin_hash is None or not verify_token(token, admin_hash, server_salt):
            raise HTTPException(status_code=403, detail="Admin token required")

    async def respond(outcome: ActionResult) -> ActionResponse:
        await publish_events(websocket_hub, outcome.engine_events)
        return ActionResponse(result=_serialize_result(outcome.result), events=outcome.engine_events)

    @app.post("/api/activities", response_model=ActionResponse)
    async def post_activity(payload: ActivityEnvelope) -> Any:
        outcome = game.report_activity(
            user_id=payload.user_id,
            channel_id=payload.channel_id,
            activity=payload.activity,
            amount=payload.amount,
        )
        result = outcome.result
        if not result.ok:
            headers = {"Retry-After": str(result.retry_after)} if result.retry_after else None
            return JSONResponse(
                status_code=ERROR_STATUS.get(result.error_kind, 400),
                content={"result": result.to_dict(), "events": []},
                headers=headers,
            )
        return await respond(outcome)

    @app.post("/api/channels/{channel_id}/hunt", response_model=ActionResponse)
    async def start_hunt(channel_id: str, payload: StartHuntEnvelope) -> ActionResponse:
        outcome = game.start_hunt(channel_id, payload.mode, payload.theme, payload.user_id)
        return await respond(ActionResult(result=game.get_encounter_status(channel_id, HUNT), engine_events=outcome.engine_events))

    @app.post("/api/channels/{channel_id}/hunt/join", response_model=ActionResponse)
    async def join_hunt(channel_id: str, payload: MemberEnvelope) -> ActionResponse:
        outcome = game.join_hunt(channel_id, payload.user_id)
        return await respond(ActionResult(result={"joined": outcome.result}, engine_events=outcome.engine_events))

    @app.post("/api/channels/{channel_id}/hunt/leave", response_model=ActionResponse)
    async def leave_hunt(channel_id: str, payload: MemberEnvelope) -> ActionResponse:
        outcome = game.leave_hunt(channel_id, payload.user_id)
        return await respond(ActionResult(result={"left": outcome.result}, engine_events=outcome.engine_events))

    @app.post("/api/channels/{channel_id}/hunt/cancel", response_model=ActionResponse)
    async def cancel_hunt(channel_id: str, payload: AdminEnvelope) -> ActionResponse:
        require_admin(payload.admin_token)
        return await respond(game.cancel_hunt(channel_id))

    @app.post("/api/channels/{channel_id}/raid", response_model=ActionResponse)
    async def start_raid(channel_id: str, payload: StartRaidEnvelope) -> ActionResponse:
        require_admin(payload.admin_token)
        outcome = game.start_raid(
            channel_id,
            payload.theme,
            payload.user_id,
            hp=payload.hp,
            duration_hours=payload.hours,
            boss_name=payload.boss_name,
        )
        return await respond(ActionResult(result=game.get_encounter_status(channel_id, RAID), engine_events=outcome.engine_events))

    @app.post("/api/channels/{channel_id}/raid/cancel", response_model=ActionResponse)
    async def cancel_raid(channel_id: str, payload: AdminEnvelope) -> ActionResponse:
        require_admin(payload.admin_token)
        return await respond(game.cancel_raid(channel_id))

    @app.get("/api/channels/{channel_id}/encounters/{kind}")
    async def get_encounter(channel_id: str, kind: str) -> dict[str, Any]:
        return game.get_encounter_status(channel_id, kind)

    @app.post("/api/encounters/expire", response_model=ActionResponse)
    async def expire_encounters(payload: AdminEnvelope) -> ActionResponse:
        require_admin(payload.admin_token)
        return await respond(game.expire_encounters())

    @app.get("/api/players/{user_id}")
    async def get_player(user_id: str) -> dict[str, Any]:
        return game.get_profile(user_id)

    @app.post("/api/players/{user_id}/buy", response_model=ActionResponse)
    async def buy_item(user_id: str, payload: ItemEnvelope) -> ActionResponse:
        return await respond(game.buy_item(user_id, payload.item))

    @app.post("/api/players/{user_id}/equip", response_model=ActionResponse)
    async def equip_item(user_id: str, payload: ItemEnvelope) -> ActionResponse:
        return await respond(game.equip_item(user_id, payload.item))

    @app.post("/api/players/{user_id}/use", response_model=ActionResponse)
    async def use_item(user_id: str, payload: ItemEnvelope) -> ActionResponse:
        return await respond(game.use_item(user_id, payload.item))

    @app.get("/api/catalog")
    async def get_catalog(
        type: str | None = Query(default=None),
        max_tier: int | None = Query(default=None, ge=1),
    ) -> list[dict[str, Any]]:
        if type is not None:
            items = game.catalog.items_of_type(type)
        else:
            items = list(game.catalog)
        if max_tier is not None:
            items = [item for item in items if item.effective_tier <= max_tier]
        return [item.to_dict() for item in items]

    @app.websocket("/ws/channels/{channel_id}")
    async def channel_ws(websocket: WebSocket, channel_id: str) -> None:
        await websocket_hub.connect(channel_id=channel_id, websocket=websocket)
        status: dict[str, Any] = {}
        for kind in ENCOUNTER_KINDS:
            try:
                status[kind] = game.get_encounter_status(channel_id, kind)
            except NotFoundError:
                status[kind] = None
        await websocket_hub.send_status(websocket=websocket, status=status)

        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            websocket_hub.disconnect(channel_id=channel_id, websocket=websocket)

    return app


app = create_app()
