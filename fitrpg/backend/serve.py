"""Run the engine API with persistence and the expiry sweep wired in."""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn
from fastapi import FastAPI

from fitrpg.backend.api import create_app
from fitrpg.backend.config import BackendSettings, load_settings
from fitrpg.backend.engine import GameEngine
from fitrpg.backend.security import generate_token
from fitrpg.backend.store import WriteBehindStore, create_gateway

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="FitRPG engine server")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def build_app(settings: BackendSettings) -> FastAPI:
    gateway = create_gateway(settings.database_url, settings.data_file)
    engine = GameEngine.from_blob(gateway.load(), config=settings.engine)
    store = WriteBehindStore(gateway=gateway, snapshot=engine.snapshot, delay=settings.save_delay_sec)
    admin_token = settings.admin_token
    if admin_token is None:
        admin_token = generate_token()
        print(f"Generated admin token: {admin_token}", file=sys.stderr)
    logger.info(
        "Loaded state: players=%d hunts=%d raids=%d",
        len(engine.state.players),
        len(engine.state.hunts),
        len(engine.state.raids),
    )
    return create_app(
        engine=engine,
        store=store,
        admin_token=admin_token,
        server_salt=settings.server_salt,
        expiry_interval=settings.expiry_interval_sec,
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = load_settings()
    app = build_app(settings)
    uvicorn.run(app, host=args.host or settings.host, port=args.port or settings.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
