"""Reference report sinks; network delivery is left to the host."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

from jstracker.capture.types import ErrorRecord


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class JsonlSink:
    """
    Appends every delivered record as one JSON line.

    Each line holds ``time_utc``, ``batch`` (1-based sequence number of the
    delivery) and the fields of :meth:`ErrorRecord.to_dict`.

    Usage example
    -------------
        sink = JsonlSink(path=Path("logs/errors.jsonl"))
        tracker.init(report_sink=sink)
    """
    path: Path
    batches_written: int = field(default=0, init=False)

    def __call__(self, records: Sequence[ErrorRecord]) -> None:
        self.batches_written += 1
        stamp = _utc_now_iso()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            for rec in records:
                payload: dict[str, Any] = {"time_utc": stamp, "batch": self.batches_written}
                payload.update(rec.to_dict())
                f.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")


@dataclass
class LoggingSink:
    """Logs each delivered record; useful while wiring a real transport."""
    logger: Optional[logging.Logger] = None
    level: int = logging.ERROR

    def __call__(self, records: Sequence[ErrorRecord]) -> None:
        log = self.logger if self.logger is not None else logging.getLogger(__name__)
        for rec in records:
            log.log(
                self.level,
                "%s: %s",
                rec.interpretation,
                rec.description,
                extra={"kind": rec.kind.name},
            )
