"""Map raw capture signals to ErrorRecord values."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from .types import NO_STACK, ErrorKind, ErrorRecord, stack_of

# Tag names whose load failures are reported; everything else is ignored.
LOAD_ERROR_KINDS: Mapping[str, ErrorKind] = {
    "SCRIPT": ErrorKind.SCRIPT_LOAD,
    "LINK": ErrorKind.STYLE_LOAD,
    "IMG": ErrorKind.IMAGE_LOAD,
    "AUDIO": ErrorKind.AUDIO_LOAD,
    "VIDEO": ErrorKind.VIDEO_LOAD,
}


def classify_runtime_error(
    message: Any,
    source: Any = None,
    lineno: Any = None,
    colno: Any = None,
    error: Any = None,
) -> ErrorRecord:
    """Build a RUNTIME record from an uncaught-error signal."""
    return ErrorRecord(
        kind=ErrorKind.RUNTIME,
        description={
            "message": message,
            "source": source,
            "lineno": lineno,
            "colno": colno,
        },
        stack=stack_of(error),
    )


def classify_load_error(
    tag_name: Any,
    url: Any,
    base_url: Any,
    *,
    is_window_target: bool = False,
) -> Optional[ErrorRecord]:
    """
    Build a resource-load record, or None when the signal is not one we report.

    Signals targeting the window itself are the duplicate of a runtime error
    seen through the capturing listener and are ignored.
    """
    if is_window_target:
        return None
    if not isinstance(tag_name, str) or not tag_name:
        return None
    kind = LOAD_ERROR_KINDS.get(tag_name.upper())
    if kind is None:
        return None
    return ErrorRecord(
        kind=kind,
        description={"baseUrl": base_url, "href": url},
        stack=NO_STACK,
    )


def classify_console_error(arg: Any) -> ErrorRecord:
    """Build a CONSOLE record; the argument is kept verbatim."""
    return ErrorRecord(kind=ErrorKind.CONSOLE, description=arg, stack=NO_STACK)


def classify_guarded_error(exc: Any) -> Optional[ErrorRecord]:
    """Build a GUARDED_CALL record from an exception caught by a guard."""
    if not isinstance(exc, BaseException):
        return None
    return ErrorRecord(kind=ErrorKind.GUARDED_CALL, description=str(exc), stack=stack_of(exc))
