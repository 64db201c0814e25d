from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Mapping, Optional, Protocol, Sequence, TypeVar

import numpy as np

from jstracker.core.config import TrackerConfig
from jstracker.core.errors import SinkDeliveryError

from .classifier import (
    classify_console_error,
    classify_guarded_error,
    classify_load_error,
    classify_runtime_error,
)
from .dispatcher import AsyncioScheduler, DebouncedDispatcher, Scheduler
from .guards import CallGuard
from .queue import ErrorQueue
from .sampler import should_report
from .types import DeliveryStats, ErrorRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ControllerState(str, Enum):
    """Lifecycle of a PipelineController."""
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"


@dataclass(frozen=True)
class CaptureHandlers:
    """Entry points an event source calls when the host reports an error."""
    on_runtime_error: Callable[..., None]
    on_resource_load_error: Callable[..., None]
    on_console_error: Callable[[Any], None]


class EventSource(Protocol):
    def install(self, handlers: CaptureHandlers) -> None: ...


def _stderr_console_error(*args: Any) -> None:
    print(*args, file=sys.stderr)


class PipelineController:
    """
    Owns the capture pipeline: config, queue, dispatcher, guards and the
    suppression flag.

    Design notes
    ------------
    - Everything runs on one logical thread (an asyncio loop or a manual
      clock); there are no locks.
    - Capture entry points never raise into the host. The guard is the
      exception: it always re-raises the original error.
    - Sink failures during a debounced flush surface as SinkDeliveryError in
      the timer's context.

    Usage example
    -------------
        tracker = PipelineController()
        tracker.init({"debounce_delay_ms": 500}, report_sink=send_batch)
        tracker.on_console_error("boom")
        safe = tracker.guard(risky)
    """

    def __init__(
        self,
        *,
        scheduler: Optional[Scheduler] = None,
        console_error: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._state = ControllerState.UNINITIALIZED
        self._config = TrackerConfig()
        self._scheduler: Scheduler = scheduler if scheduler is not None else AsyncioScheduler()
        self._console_error: Callable[..., Any] = console_error or _stderr_console_error
        self._queue = ErrorQueue(self._config.max_queue_size)
        self._dispatcher = DebouncedDispatcher(
            delay_s=self._config.debounce_delay_s,
            scheduler=self._scheduler,
            on_fire=self._flush_queue,
        )
        self._rng = np.random.default_rng(self._config.seed)
        self._guards = CallGuard(on_error=self.capture_guarded_error)
        self._suppress_next_runtime_error = False
        self._installed: List[EventSource] = []

        self._captured = 0
        self._sampled_out = 0
        self._dropped_overflow = 0
        self._suppressed = 0
        self._delivered = 0
        self._batches = 0
        self._sink_failures = 0
        self._last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state == ControllerState.ACTIVE

    @property
    def config(self) -> TrackerConfig:
        return self._config

    @property
    def suppress_next_runtime_error(self) -> bool:
        return self._suppress_next_runtime_error

    def init(
        self,
        overrides: Optional[Mapping[str, Any]] = None,
        *,
        scheduler: Optional[Scheduler] = None,
        event_sources: Iterable[EventSource] = (),
        console_error: Optional[Callable[..., Any]] = None,
        **options: Any,
    ) -> "PipelineController":
        """
        Activate the pipeline with ``overrides`` merged over the current config.

        Calling it again replaces the config (last write wins), moves any
        pending flush onto the new dispatcher and installs only event sources
        that were not installed before.

        Raises
        ------
        ConfigError
            On unknown or invalid options; the controller is left unchanged.
        """
        merged: dict[str, Any] = dict(overrides or {})
        merged.update(options)
        config = self._config.merged(merged)

        if self.active:
            logger.warning("Tracker re-initialized; config replaced, installed sources kept.")

        self._config = config
        if scheduler is not None:
            self._scheduler = scheduler
        if console_error is not None:
            self._console_error = console_error
        if not self.active or "seed" in merged:
            self._rng = np.random.default_rng(config.seed)
        trimmed = self._queue.resize(config.max_queue_size)
        if trimmed:
            self._dropped_overflow += trimmed
            logger.debug("Queue cap lowered to %d; dropped %d queued record(s)", config.max_queue_size, trimmed)

        had_pending = self._dispatcher.cancel()
        self._dispatcher = DebouncedDispatcher(
            delay_s=config.debounce_delay_s,
            scheduler=self._scheduler,
            on_fire=self._flush_queue,
        )
        self._state = ControllerState.ACTIVE

        if had_pending or len(self._queue):
            if config.batch_mode:
                self._dispatcher.trigger()
            else:
                self._flush_queue()

        handlers = self.handlers()
        for source in event_sources:
            if any(source is seen for seen in self._installed):
                logger.debug("Event source %r already installed; skipping", source)
                continue
            source.install(handlers)
            self._installed.append(source)

        logger.debug(
            "Tracker active (batch_mode=%s, delay_ms=%d, max_queue=%d, sampling=%s)",
            config.batch_mode,
            config.debounce_delay_ms,
            config.max_queue_size,
            config.sampling_rate,
        )
        return self

    def handlers(self) -> CaptureHandlers:
        """Bundle the capture entry points for an event source."""
        return CaptureHandlers(
            on_runtime_error=self.on_runtime_error,
            on_resource_load_error=self.on_resource_load_error,
            on_console_error=self.on_console_error,
        )

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, record: ErrorRecord) -> bool:
        """
        Sample ``record`` and either report it now or queue it for the next batch.

        Returns
        -------
        admitted
            True if the record was reported or queued.

        Raises
        ------
        SinkDeliveryError
            In immediate mode, if the sink raises.
        """
        if not self.active:
            logger.debug("Tracker not initialized; dropping %s record", record.kind.name)
            return False

        self._captured += 1
        sampled = should_report(self._config.sampling_rate, self._rng)
        if not sampled:
            self._sampled_out += 1
            logger.debug("Sampled out %s record", record.kind.name, extra={"kind": record.kind.name})

        if not self._config.batch_mode:
            if sampled:
                self._deliver([record])
            return sampled

        admitted = False
        if sampled:
            admitted = self._queue.offer(record)
            if not admitted:
                self._dropped_overflow += 1
                logger.debug(
                    "Queue full (%d); dropping %s record",
                    self._queue.max_size,
                    record.kind.name,
                    extra={"kind": record.kind.name},
                )
        self._dispatcher.trigger()
        return admitted

    def _submit_quietly(self, record: Optional[ErrorRecord]) -> None:
        if record is None:
            return
        try:
            self.submit(record)
        except SinkDeliveryError as error:
            # Already logged with traceback in _deliver; the host must not see it.
            logger.warning("Dropped %s record after sink failure: %s", record.kind.name, error)

    def _deliver(self, batch: Sequence[ErrorRecord]) -> None:
        try:
            self._config.report_sink(list(batch))
        except Exception as exc:
            self._sink_failures += 1
            self._last_error = f"{type(exc).__name__}: {exc}"
            logger.error("Report sink failed for batch of %d record(s)", len(batch), exc_info=True)
            raise SinkDeliveryError(
                f"Report sink failed for batch of {len(batch)} record(s): {exc}",
                batch_size=len(batch),
            ) from exc
        self._delivered += len(batch)
        self._batches += 1
        logger.debug("Delivered batch of %d record(s)", len(batch))

    def _flush_queue(self) -> int:
        batch = self._queue.drain()
        if not batch:
            logger.debug("Nothing queued at flush time")
            return 0
        self._deliver(batch)
        return len(batch)

    def flush(self) -> int:
        """
        Deliver everything queued now and cancel the pending debounce timer.

        Returns the number of records handed to the sink.
        """
        self._dispatcher.cancel()
        return self._flush_queue()

    @property
    def queued(self) -> int:
        return len(self._queue)

    # ------------------------------------------------------------------
    # Capture entry points
    # ------------------------------------------------------------------

    def on_runtime_error(
        self,
        message: Any,
        source: Any = None,
        lineno: Any = None,
        colno: Any = None,
        error: Any = None,
    ) -> None:
        """Handle an uncaught error; skipped once after a guarded re-raise."""
        if self._suppress_next_runtime_error:
            self._suppress_next_runtime_error = False
            self._suppressed += 1
            logger.debug("Runtime error already captured by a guard; skipping")
            return
        self._submit_quietly(classify_runtime_error(message, source, lineno, colno, error))

    def on_resource_load_error(
        self,
        tag_name: Any,
        url: Any,
        base_url: Any,
        is_window_target: bool = False,
    ) -> None:
        """Handle a failed script/stylesheet/image/audio/video load."""
        record = classify_load_error(tag_name, url, base_url, is_window_target=is_window_target)
        if record is None:
            logger.debug("Ignoring load error for tag %r", tag_name)
            return
        self._submit_quietly(record)

    def on_console_error(self, arg: Any) -> None:
        """Capture a console error argument, then call the original console function."""
        self._submit_quietly(classify_console_error(arg))
        self._console_error(arg)

    def console_error(self, original: Callable[..., T]) -> Callable[..., T]:
        """
        Wrap a console-style error function so each call is captured first.

        The first positional argument becomes the record description; the
        original function always receives every argument unchanged.
        """

        def instrumented(*args: Any, **kwargs: Any) -> T:
            if args:
                self._submit_quietly(classify_console_error(args[0]))
            return original(*args, **kwargs)

        return instrumented

    def capture_guarded_error(self, exc: BaseException) -> None:
        """Record an exception caught by a guard and arm runtime-error suppression."""
        record = classify_guarded_error(exc)
        if record is None or not self.active:
            return
        self._submit_quietly(record)
        self._suppress_next_runtime_error = True

    def guard(self, fn: T) -> T:
        """See :meth:`CallGuard.guard`."""
        return self._guards.guard(fn)

    def guard_arguments(self, fn: Callable[..., T]) -> Callable[..., T]:
        """See :meth:`CallGuard.guard_arguments`."""
        return self._guards.guard_arguments(fn)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def stats(self) -> DeliveryStats:
        return DeliveryStats(
            captured=self._captured,
            sampled_out=self._sampled_out,
            dropped_overflow=self._dropped_overflow,
            suppressed=self._suppressed,
            delivered=self._delivered,
            batches=self._batches,
            sink_failures=self._sink_failures,
            last_error=self._last_error,
        )

    def render_summary(self) -> str:
        """Render a human-readable summary of what was captured and delivered."""
        s = self.stats()
        lines: list[str] = []
        lines.append(
            f"Tracker summary (state={self._state.value}, batch_mode={self._config.batch_mode}, "
            f"sampling={self._config.sampling_rate})"
        )
        lines.append(f"  CAPTURED:    {s.captured}")
        lines.append(f"  DELIVERED:   {s.delivered} in {s.batches} batch(es)")
        lines.append(f"  SAMPLED OUT: {s.sampled_out}")
        lines.append(f"  DROPPED:     {s.dropped_overflow}")
        lines.append(f"  SUPPRESSED:  {s.suppressed}")
        lines.append(f"  QUEUED:      {self.queued}")

        if s.sink_failures:
            lines.append("")
            lines.append(f"Sink failures: {s.sink_failures}")
            lines.append(f"  - last: {s.last_error}")

        return "\n".join(lines)

    def print_summary(self) -> None:
        """Print the summary to the console, using Rich if available."""
        text = self.render_summary()
        try:
            from rich.console import Console  # type: ignore

            Console().print(text)
        except Exception:
            print(text)
