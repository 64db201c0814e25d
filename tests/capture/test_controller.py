from __future__ import annotations

from typing import Any, List, Sequence

import pytest

from jstracker.capture.controller import CaptureHandlers, ControllerState, PipelineController
from jstracker.capture.dispatcher import ManualScheduler
from jstracker.capture.types import ErrorKind, ErrorRecord
from jstracker.core.errors import ConfigError, SinkDeliveryError


class _Recorder:
    def __init__(self) -> None:
        self.batches: List[List[ErrorRecord]] = []
        self.console_calls: List[tuple[Any, ...]] = []

    def sink(self, records: Sequence[ErrorRecord]) -> None:
        self.batches.append(list(records))

    def console(self, *args: Any) -> None:
        self.console_calls.append(args)

    @property
    def records(self) -> List[ErrorRecord]:
        return [r for batch in self.batches for r in batch]


def _make_tracker(**options: Any) -> tuple[PipelineController, ManualScheduler, _Recorder]:
    rec = _Recorder()
    sched = ManualScheduler()
    controller = PipelineController(scheduler=sched, console_error=rec.console)
    options.setdefault("debounce_delay_ms", 1000)
    controller.init(report_sink=rec.sink, **options)
    return controller, sched, rec


def test_starts_uninitialized_and_drops_signals() -> None:
    rec = _Recorder()
    controller = PipelineController(scheduler=ManualScheduler(), console_error=rec.console)

    assert controller.state == ControllerState.UNINITIALIZED
    controller.on_runtime_error("boom", "a.js", 1, 1)
    controller.on_console_error("still printed")

    assert controller.queued == 0
    assert controller.stats().captured == 0
    # The original console behavior must run even before init
    assert rec.console_calls == [("still printed",)]


def test_init_activates_with_defaults_for_unspecified_options() -> None:
    controller, _, _ = _make_tracker(max_queue_size=4)

    assert controller.state == ControllerState.ACTIVE
    assert controller.config.max_queue_size == 4
    assert controller.config.debounce_delay_ms == 1000
    assert controller.config.batch_mode is True
    assert controller.config.sampling_rate == 1.0


def test_unknown_option_raises_and_leaves_controller_uninitialized() -> None:
    controller = PipelineController(scheduler=ManualScheduler())

    with pytest.raises(ConfigError, match="Unknown tracker option"):
        controller.init({"concat": True})

    assert controller.state == ControllerState.UNINITIALIZED


def test_immediate_mode_reports_each_record_synchronously() -> None:
    controller, sched, rec = _make_tracker(batch_mode=False)

    controller.on_console_error("a")
    controller.on_console_error("b")

    assert [[r.description for r in b] for b in rec.batches] == [["a"], ["b"]]
    assert controller.queued == 0
    assert sched.pending() == 0


def test_queue_bound_keeps_first_records_in_arrival_order() -> None:
    controller, sched, rec = _make_tracker(max_queue_size=4)

    for i in range(7):
        controller.on_console_error(str(i))
    sched.advance(1.0)

    assert len(rec.batches) == 1
    assert [r.description for r in rec.batches[0]] == ["0", "1", "2", "3"]
    assert controller.stats().dropped_overflow == 3
    assert controller.queued == 0


def test_burst_within_delay_is_delivered_as_one_batch() -> None:
    controller, sched, rec = _make_tracker()

    controller.on_console_error("first")
    sched.advance(0.5)
    controller.on_runtime_error("second", "a.js", 3, 7)
    sched.advance(0.75)
    controller.on_resource_load_error("SCRIPT", "http://x/a.js", "http://x/")

    sched.advance(0.5)
    assert rec.batches == []

    sched.advance(0.5)
    assert len(rec.batches) == 1
    assert [r.kind for r in rec.batches[0]] == [ErrorKind.CONSOLE, ErrorKind.RUNTIME, ErrorKind.SCRIPT_LOAD]


def test_records_separated_by_more_than_delay_go_out_separately() -> None:
    controller, sched, rec = _make_tracker()

    controller.on_console_error("one")
    sched.advance(1.5)
    controller.on_console_error("two")
    sched.advance(1.5)

    assert [[r.description for r in b] for b in rec.batches] == [["one"], ["two"]]
    assert controller.stats().batches == 2


def test_image_load_error_record() -> None:
    controller, sched, rec = _make_tracker()

    controller.on_resource_load_error("IMG", "http://x/y.png", "http://x/")
    controller.on_resource_load_error("DIV", "http://x/z", "http://x/")
    controller.on_resource_load_error("IMG", "http://x/y.png", "http://x/", True)
    sched.advance(1.0)

    (record,) = rec.records
    assert record.kind == ErrorKind.IMAGE_LOAD
    assert record.description["href"] == "http://x/y.png"
    assert record.description["baseUrl"] == "http://x/"


def test_console_error_is_captured_and_passed_through() -> None:
    controller, sched, rec = _make_tracker()

    controller.on_console_error("boom")
    sched.advance(1.0)

    (record,) = rec.records
    assert record.kind == ErrorKind.CONSOLE
    assert record.description == "boom"
    assert rec.console_calls == [("boom",)]


def test_console_error_wrapper_forwards_all_arguments() -> None:
    controller, sched, rec = _make_tracker()
    seen: list[tuple[Any, ...]] = []

    def original(*args: Any, **kwargs: Any) -> str:
        seen.append(args + tuple(sorted(kwargs.items())))
        return "printed"

    instrumented = controller.console_error(original)

    assert instrumented("boom", 42, sep="|") == "printed"
    assert instrumented() == "printed"
    sched.advance(1.0)

    assert seen == [("boom", 42, ("sep", "|")), ()]
    assert [r.description for r in rec.records] == ["boom"]


def test_guarded_throw_seen_by_runtime_listener_yields_one_record() -> None:
    controller, sched, rec = _make_tracker()

    def boom() -> None:
        raise ValueError("bad input")

    safe = controller.guard(boom)
    with pytest.raises(ValueError) as excinfo:
        safe()
    assert controller.suppress_next_runtime_error is True

    # The same exception now reaches the top-level listener
    exc = excinfo.value
    controller.on_runtime_error(f"ValueError: {exc}", __file__, 1, 0, exc)
    assert controller.suppress_next_runtime_error is False
    sched.advance(1.0)

    (record,) = rec.records
    assert record.kind == ErrorKind.GUARDED_CALL
    assert record.description == "bad input"
    assert "ValueError" in record.stack
    assert controller.stats().suppressed == 1

    # Suppression is consumed: the next runtime error is recorded
    controller.on_runtime_error("later", "b.js", 2, 2)
    sched.advance(1.0)
    assert [r.kind for r in rec.records] == [ErrorKind.GUARDED_CALL, ErrorKind.RUNTIME]


def test_nested_guards_record_one_error_per_throw() -> None:
    controller, sched, rec = _make_tracker()

    def boom() -> None:
        raise RuntimeError("once")

    wrapped = controller.guard(controller.guard(controller.guard(boom)))
    assert wrapped is controller.guard(boom)

    with pytest.raises(RuntimeError):
        wrapped()
    sched.advance(1.0)

    assert len(rec.records) == 1


def test_guard_arguments_captures_errors_from_callbacks() -> None:
    controller, sched, rec = _make_tracker()
    callbacks: list[Any] = []

    def subscribe(event: str, callback: Any) -> None:
        callbacks.append(callback)

    def on_click() -> None:
        raise TypeError("handler broke")

    controller.guard_arguments(subscribe)("click", on_click)
    with pytest.raises(TypeError):
        callbacks[0]()
    sched.advance(1.0)

    (record,) = rec.records
    assert record.kind == ErrorKind.GUARDED_CALL
    assert record.description == "handler broke"


def test_guard_before_init_still_reraises_without_recording() -> None:
    rec = _Recorder()
    controller = PipelineController(scheduler=ManualScheduler())

    def boom() -> None:
        raise ValueError("early")

    with pytest.raises(ValueError, match="early"):
        controller.guard(boom)()

    assert controller.suppress_next_runtime_error is False
    assert rec.batches == []


def test_zero_sampling_delivers_nothing() -> None:
    controller, sched, rec = _make_tracker(sampling_rate=0.0)

    for i in range(5):
        controller.on_console_error(str(i))
    sched.advance(1.0)

    assert rec.batches == []
    assert controller.stats().sampled_out == 5


def test_seeded_sampling_is_reproducible() -> None:
    def delivered(seed: int) -> list[str]:
        controller, sched, rec = _make_tracker(sampling_rate=0.5, seed=seed, max_queue_size=100)
        for i in range(50):
            controller.on_console_error(str(i))
        sched.advance(1.0)
        return [r.description for r in rec.records]

    first = delivered(7)
    assert first == delivered(7)
    assert 0 < len(first) < 50


def test_sink_failure_in_batch_mode_surfaces_at_timer_and_clears_queue() -> None:
    def broken_sink(records: Sequence[ErrorRecord]) -> None:
        raise ConnectionError("endpoint down")

    sched = ManualScheduler()
    controller = PipelineController(scheduler=sched)
    controller.init(report_sink=broken_sink, debounce_delay_ms=1000)

    controller.on_console_error("x")
    with pytest.raises(SinkDeliveryError) as excinfo:
        sched.advance(1.0)

    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert excinfo.value.batch_size == 1
    assert controller.queued == 0
    assert controller.stats().sink_failures == 1


def test_sink_failure_in_immediate_mode_does_not_reach_host() -> None:
    def broken_sink(records: Sequence[ErrorRecord]) -> None:
        raise ConnectionError("endpoint down")

    controller = PipelineController(scheduler=ManualScheduler(), console_error=lambda *a: None)
    controller.init(report_sink=broken_sink, batch_mode=False)

    controller.on_console_error("x")
    controller.on_runtime_error("y", "a.js", 1, 1)

    def boom() -> None:
        raise KeyError("original")

    with pytest.raises(KeyError, match="original"):
        controller.guard(boom)()

    assert controller.stats().sink_failures == 3
    assert "ConnectionError" in (controller.stats().last_error or "")


def test_flush_delivers_now_and_cancels_timer() -> None:
    controller, sched, rec = _make_tracker()

    controller.on_console_error("a")
    controller.on_console_error("b")

    assert controller.flush() == 2
    assert [r.description for r in rec.records] == ["a", "b"]
    assert sched.pending() == 0

    sched.advance(5.0)
    assert len(rec.batches) == 1
    assert controller.flush() == 0


class _FakeSource:
    def __init__(self) -> None:
        self.installs: list[CaptureHandlers] = []

    def install(self, handlers: CaptureHandlers) -> None:
        self.installs.append(handlers)


def test_reinit_replaces_config_and_installs_sources_once() -> None:
    source = _FakeSource()
    controller, sched, rec = _make_tracker(event_sources=[source])

    controller.on_console_error("pending")
    controller.init({"debounce_delay_ms": 200}, event_sources=[source])

    assert len(source.installs) == 1
    assert controller.config.debounce_delay_ms == 200
    # Unspecified options keep their previous value
    assert controller.config.report_sink == rec.sink

    # The pending record now flushes on the new, shorter delay
    sched.advance(0.25)
    assert [r.description for r in rec.records] == ["pending"]
    assert sched.pending() == 0


def test_installed_handlers_feed_the_pipeline() -> None:
    source = _FakeSource()
    controller, sched, rec = _make_tracker(event_sources=[source])

    (handlers,) = source.installs
    handlers.on_runtime_error("boom", "a.js", 1, 2)
    handlers.on_resource_load_error("link", "http://x/a.css", "http://x/", False)
    handlers.on_console_error("c")
    sched.advance(1.0)

    assert [r.kind for r in rec.records] == [ErrorKind.RUNTIME, ErrorKind.STYLE_LOAD, ErrorKind.CONSOLE]


def test_render_summary_reports_counts() -> None:
    controller, sched, _ = _make_tracker(max_queue_size=1)

    controller.on_console_error("a")
    controller.on_console_error("b")
    sched.advance(1.0)

    text = controller.render_summary()
    assert "Tracker summary" in text
    assert "CAPTURED:    2" in text
    assert "DELIVERED:   1 in 1 batch(es)" in text
    assert "DROPPED:     1" in text


def test_reinit_with_smaller_queue_trims_pending_batch() -> None:
    controller, sched, rec = _make_tracker(max_queue_size=5)

    for i in range(5):
        controller.on_console_error(str(i))
    controller.init(max_queue_size=2)

    assert controller.queued == 2
    sched.advance(1.0)

    assert [[r.description for r in b] for b in rec.batches] == [["0", "1"]]
    assert controller.stats().dropped_overflow == 3


def test_guarding_a_guarded_method_records_one_error_per_throw() -> None:
    controller, sched, rec = _make_tracker()

    def explode(self: Any) -> None:
        raise RuntimeError("from method")

    class Widget:
        method = controller.guard(explode)

    widget = Widget()
    rewrapped = controller.guard(widget.method)
    assert rewrapped == widget.method

    with pytest.raises(RuntimeError):
        rewrapped()
    sched.advance(1.0)

    assert len(rec.records) == 1


def test_flush_before_init_is_a_no_op() -> None:
    sched = ManualScheduler()
    controller = PipelineController(scheduler=sched)

    assert controller.flush() == 0
    assert sched.pending() == 0
