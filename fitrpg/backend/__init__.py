"""Backend package for the FitRPG engine."""

from .config import BackendSettings, EngineConfig, load_settings
from .engine import ActivityResult, GameEngine
from .errors import ConflictError, CooldownError, EngineError, NotFoundError, UnsupportedActivityError, ValidationError
from .security import generate_token, hash_token, verify_token
from .state import EngineState, build_initial_state
from .store import (
    InMemoryStateGateway,
    JsonFileStateGateway,
    PostgresStateGateway,
    StateGateway,
    WriteBehindStore,
    create_gateway,
)

__all__ = [
    "ActivityResult",
    "BackendSettings",
    "build_initial_state",
    "ConflictError",
    "CooldownError",
    "create_gateway",
    "EngineConfig",
    "EngineError",
    "EngineState",
    "GameEngine",
    "generate_token",
    "hash_token",
    "InMemoryStateGateway",
    "JsonFileStateGateway",
    "load_settings",
    "NotFoundError",
    "PostgresStateGateway",
    "StateGateway",
    "UnsupportedActivityError",
    "ValidationError",
    "verify_token",
    "WriteBehindStore",
]
