"""Error taxonomy shared by the engine and its callers."""

from __future__ import annotations

import math
from typing import Any


class EngineError(Exception):
    """Base class for recoverable, per-call engine rejections."""

    kind = "engine"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "details": dict(self.details)}


class ValidationError(EngineError):
    kind = "validation"


class UnsupportedActivityError(ValidationError):
    kind = "unsupported_activity"


class ConflictError(EngineError):
    kind = "conflict"


class NotFoundError(EngineError):
    kind = "not_found"


class CooldownError(EngineError):
    kind = "cooldown"

    def __init__(self, action: str, retry_after: float) -> None:
        wait = max(1, math.ceil(retry_after))
        super().__init__(f"{action} is on cooldown, retry in {wait}s", {"action": action, "retryAfter": wait})
        self.action = action
        self.retry_after = wait
