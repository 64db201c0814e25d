from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOGGER_NAME = "jstracker"


class _TrackerContextFilter(logging.Filter):
    def __init__(self, *, session_id: str) -> None:
        super().__init__()
        self._session_id = session_id

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        # Ensure `session_id` and `kind` exist for the file formatter
        if not hasattr(record, "session_id"):
            setattr(record, "session_id", self._session_id)
        if not hasattr(record, "kind"):
            setattr(record, "kind", "-")
        return True


def configure_logging(
    *,
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    file_level: int = logging.DEBUG,
    session_id: str = "-",
) -> logging.Logger:
    """
    Configure console (and optional file) logging for the "jstracker" logger.

    Library modules only ever call ``logging.getLogger(__name__)``; this is the
    one place handlers are attached, for the CLI and for hosts that want the
    tracker's own diagnostics on screen.

    Returns
    -------
    logger
        The configured "jstracker" logger.

    Usage example
    -------------
        logger = configure_logging(level=logging.DEBUG, log_file=Path("logs/tracker.log"))
        logger.info("Hello")
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(min(level, file_level) if log_file is not None else level)
    logger.handlers.clear()
    logger.filters.clear()
    logger.propagate = False

    # Handler-level filter so records from child loggers get the fields too
    context_filter = _TrackerContextFilter(session_id=session_id)

    # Console handler (try rich if available)
    console_handler: logging.Handler
    try:
        from rich.logging import RichHandler  # type: ignore

        console_handler = RichHandler(rich_tracebacks=(level <= logging.DEBUG), show_path=False)
        console_fmt = "%(message)s"
    except Exception:
        console_handler = logging.StreamHandler()
        console_fmt = "[%(levelname)s] %(message)s"

    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(console_fmt))
    console_handler.addFilter(context_filter)
    logger.addHandler(console_handler)

    if log_file is not None:
        # File handler (always plain)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)sZ | session=%(session_id)s | kind=%(kind)s | %(levelname)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S",
            )
        )
        file_handler.addFilter(context_filter)
        logger.addHandler(file_handler)

    logger.debug("Logging configured (session_id=%s, log_file=%s)", session_id, log_file)
    return logger
