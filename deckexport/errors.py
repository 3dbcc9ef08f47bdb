"""
Error taxonomy shared by the renderer, the job store and the API.

Every error carries a stable ``code`` that is safe to show to clients.
"""

from typing import Any, Dict, Optional


class DeckExportError(Exception):
    """Base class for all export errors."""

    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return {"error": body}


class ValidationError(DeckExportError):
    """Malformed or missing request fields."""

    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid request"


class NotFoundError(DeckExportError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class NotReadyError(DeckExportError):
    """The export exists but has no artifact yet."""

    code = "NOT_READY"
    status_code = 400
    default_message = "Export is not completed"


class UnknownBlockKindError(DeckExportError):
    """A deck contains a block whose ``kind`` no renderer knows."""

    code = "UNKNOWN_BLOCK_KIND"
    status_code = 422

    def __init__(self, kind: Any, location: Optional[str] = None):
        self.kind = kind
        where = f" at {location}" if location else ""
        super().__init__(f"Unknown block kind {kind!r}{where}")


class RenderTimeoutError(DeckExportError):
    code = "RENDER_TIMEOUT"
    status_code = 504

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Rendering exceeded {timeout_seconds:g}s")


class InvalidTransitionError(DeckExportError):
    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, current: Any, target: Any):
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition export job from {current} to {target}")


class InternalError(DeckExportError):
    """Catch-all; the message sent to clients never includes internals."""
