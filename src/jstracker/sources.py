"""Python-side event source: forward uncaught exceptions to the tracker."""

from __future__ import annotations

import logging
import sys
from types import TracebackType
from typing import Any, Callable, Optional, Type

from jstracker.capture.controller import CaptureHandlers, PipelineController

logger = logging.getLogger(__name__)

ExceptHook = Callable[[Type[BaseException], BaseException, Optional[TracebackType]], Any]


def _innermost_location(tb: Optional[TracebackType]) -> tuple[Optional[str], Optional[int]]:
    if tb is None:
        return None, None
    while tb.tb_next is not None:
        tb = tb.tb_next
    return tb.tb_frame.f_code.co_filename, tb.tb_lineno


class ExceptHookSource:
    """
    Chains ``sys.excepthook`` so uncaught exceptions reach ``on_runtime_error``.

    The previous hook always runs afterwards, so the interpreter's normal
    traceback output is kept. KeyboardInterrupt is passed straight through.

    Usage example
    -------------
        source = ExceptHookSource()
        tracker.init(report_sink=send_batch, event_sources=[source])
        ...
        source.uninstall()
    """

    def __init__(self) -> None:
        self._handlers: Optional[CaptureHandlers] = None
        self._previous: Optional[ExceptHook] = None

    @property
    def installed(self) -> bool:
        return self._handlers is not None

    def install(self, handlers: CaptureHandlers) -> None:
        if self._handlers is not None:
            raise RuntimeError("ExceptHookSource is already installed.")
        self._handlers = handlers
        self._previous = sys.excepthook
        sys.excepthook = self._hook

    def uninstall(self) -> None:
        """Restore the hook that was active before :meth:`install`."""
        if self._handlers is None:
            return
        if sys.excepthook == self._hook:
            sys.excepthook = self._previous
        else:
            logger.warning("sys.excepthook was replaced after install; leaving it in place")
        self._handlers = None
        self._previous = None

    def _hook(
        self,
        exc_type: Type[BaseException],
        exc: BaseException,
        tb: Optional[TracebackType],
    ) -> None:
        handlers = self._handlers
        if handlers is not None and not issubclass(exc_type, KeyboardInterrupt):
            filename, lineno = _innermost_location(tb)
            handlers.on_runtime_error(f"{exc_type.__name__}: {exc}", filename, lineno, None, exc)
        previous = self._previous if self._previous is not None else sys.__excepthook__
        previous(exc_type, exc, tb)


def install_excepthook(controller: PipelineController) -> ExceptHookSource:
    """Create an ExceptHookSource and install it with ``controller``'s handlers."""
    source = ExceptHookSource()
    source.install(controller.handlers())
    return source
