"""jstracker - capture, sample, batch and report client-side errors."""

from jstracker.capture import ErrorKind, ErrorRecord, ManualScheduler, PipelineController
from jstracker.core.config import TrackerConfig
from jstracker.core.errors import ConfigError, SinkDeliveryError, TrackerError
from jstracker.version import __version__

__all__ = [
    "ErrorKind",
    "ErrorRecord",
    "ManualScheduler",
    "PipelineController",
    "TrackerConfig",
    "ConfigError",
    "SinkDeliveryError",
    "TrackerError",
    "__version__",
]
