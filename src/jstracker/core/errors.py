from __future__ import annotations


class TrackerError(Exception):
    """Base class for errors raised by jstracker itself."""


class ConfigError(TrackerError, ValueError):
    """Raised when tracker configuration is missing, unknown or invalid."""


class SinkDeliveryError(TrackerError):
    """
    Raised when the report sink fails while a batch is being delivered.

    The sink's own exception is chained as ``__cause__``. The records of the
    failed batch are not re-queued.
    """

    def __init__(self, message: str, *, batch_size: int) -> None:
        super().__init__(message)
        self.batch_size = batch_size
