"""
capture subpackage: classify, sample, buffer and deliver client-side errors.

Key primitives
--------------
- ErrorRecord / ErrorKind: the normalized telemetry record
- should_report(): stateless sampling gate
- ErrorQueue: bounded FIFO, drops new records at capacity
- DebouncedDispatcher: one flush per quiet period
- CallGuard / GuardedCallable: capture-and-rethrow wrappers, at most one per function
- PipelineController: owns the state and exposes the capture entry points
"""

from .types import NO_STACK, DeliveryStats, ErrorKind, ErrorRecord
from .classifier import (
    classify_console_error,
    classify_guarded_error,
    classify_load_error,
    classify_runtime_error,
)
from .sampler import should_report
from .queue import ErrorQueue
from .dispatcher import AsyncioScheduler, DebouncedDispatcher, ManualScheduler, Scheduler
from .guards import CallGuard, GuardedCallable
from .controller import CaptureHandlers, ControllerState, EventSource, PipelineController

__all__ = [
    "NO_STACK",
    "DeliveryStats",
    "ErrorKind",
    "ErrorRecord",
    "classify_console_error",
    "classify_guarded_error",
    "classify_load_error",
    "classify_runtime_error",
    "should_report",
    "ErrorQueue",
    "AsyncioScheduler",
    "DebouncedDispatcher",
    "ManualScheduler",
    "Scheduler",
    "CallGuard",
    "GuardedCallable",
    "CaptureHandlers",
    "ControllerState",
    "EventSource",
    "PipelineController",
]
