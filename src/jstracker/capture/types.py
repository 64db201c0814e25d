from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Mapping, Optional
import traceback as _traceback

NO_STACK = "no stack"


class ErrorKind(IntEnum):
    """Kind of captured error; values are the stable wire codes."""
    RUNTIME = 1
    SCRIPT_LOAD = 2
    STYLE_LOAD = 3
    IMAGE_LOAD = 4
    AUDIO_LOAD = 5
    VIDEO_LOAD = 6
    CONSOLE = 7
    GUARDED_CALL = 8


_INTERPRETATIONS: Mapping[ErrorKind, str] = {
    ErrorKind.RUNTIME: "js runtime error",
    ErrorKind.SCRIPT_LOAD: "script load failed",
    ErrorKind.STYLE_LOAD: "stylesheet load failed",
    ErrorKind.IMAGE_LOAD: "image load failed",
    ErrorKind.AUDIO_LOAD: "audio load failed",
    ErrorKind.VIDEO_LOAD: "video load failed",
    ErrorKind.CONSOLE: "console.error",
    ErrorKind.GUARDED_CALL: "try catch",
}


def interpretation_for(kind: ErrorKind) -> str:
    """Human-readable label used for display and log grouping."""
    return _INTERPRETATIONS[kind]


def stack_of(error: Any) -> str:
    """
    Best-effort stack trace for ``error``.

    Raised Python exceptions give their formatted traceback. Host error
    objects (or mappings) carrying a string ``stack`` give that string.
    Everything else, including exceptions that were never raised, gives
    :data:`NO_STACK`.
    """
    if error is None:
        return NO_STACK
    if isinstance(error, BaseException):
        if error.__traceback__ is None:
            return NO_STACK
        return "".join(_traceback.format_exception(type(error), error, error.__traceback__))
    if isinstance(error, Mapping):
        stack = error.get("stack")
    else:
        stack = getattr(error, "stack", None)
    if isinstance(stack, str) and stack:
        return stack
    return NO_STACK


@dataclass(frozen=True)
class ErrorRecord:
    """
    A normalized telemetry record for one captured error.

    ``description`` is kind-specific: a ``{message, source, lineno, colno}``
    mapping for RUNTIME, ``{baseUrl, href}`` for resource loads, the raw
    argument for CONSOLE and the exception message for GUARDED_CALL.

    Usage example
    -------------
        rec = ErrorRecord(kind=ErrorKind.CONSOLE, description="boom")
        rec.interpretation  # "console.error"
    """
    kind: ErrorKind
    description: Any
    stack: str = NO_STACK

    @property
    def interpretation(self) -> str:
        return interpretation_for(self.kind)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form handed to file sinks and the CLI."""
        description: Any = self.description
        if isinstance(description, Mapping):
            description = dict(description)
        return {
            "kind": self.kind.name,
            "code": int(self.kind),
            "interpretation": self.interpretation,
            "description": description,
            "stack": self.stack,
        }


@dataclass(frozen=True)
class DeliveryStats:
    """Counters kept by the controller; rendered by its summary."""
    captured: int = 0
    sampled_out: int = 0
    dropped_overflow: int = 0
    suppressed: int = 0
    delivered: int = 0
    batches: int = 0
    sink_failures: int = 0
    last_error: Optional[str] = None
