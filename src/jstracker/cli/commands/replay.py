"""`jstracker replay` command implementation."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence, Tuple

from jstracker.capture.controller import PipelineController
from jstracker.capture.dispatcher import ManualScheduler
from jstracker.capture.types import ErrorRecord
from jstracker.core.config import resolve_config
from jstracker.core.errors import ConfigError
from jstracker.core.logging import configure_logging
from jstracker.sinks import JsonlSink

logger = logging.getLogger(__name__)

_SIGNALS = ("runtime", "resource", "console")


def add_subparser(subparsers: argparse._SubParsersAction) -> None:
    """Register the `replay` command."""
    parser = subparsers.add_parser(
        "replay",
        help="Replay recorded capture signals through the pipeline on a virtual clock.",
    )
    parser.add_argument("signals", help="JSONL file of capture signals, one per line, each with t_ms.")
    parser.add_argument("--out", default=None, help="Append delivered records to this JSONL file.")
    parser.add_argument("--immediate", action="store_true", help="Report each record on its own (no batching).")
    parser.add_argument("--delay-ms", type=int, default=None, help="Debounce quiet period in milliseconds.")
    parser.add_argument("--max-queue", type=int, default=None, help="Maximum records held per batch.")
    parser.add_argument("--sampling", type=float, default=None, help="Per-record inclusion probability.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for the sampler.")
    parser.add_argument("--config-dir", default=None, help="Directory holding jstracker.yaml (default: cwd).")
    parser.add_argument("--verbose", action="store_true", help="Log every pipeline decision.")
    parser.set_defaults(command="replay")


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if getattr(args, "immediate", False):
        overrides["batch_mode"] = False
    for attr, option in (
        ("delay_ms", "debounce_delay_ms"),
        ("max_queue", "max_queue_size"),
        ("sampling", "sampling_rate"),
        ("seed", "seed"),
    ):
        value = getattr(args, attr, None)
        if value is not None:
            overrides[option] = value
    return overrides


def read_signals(path: Path) -> Iterator[Tuple[int, Mapping[str, Any]]]:
    """
    Yield ``(t_ms, signal)`` pairs from a JSONL capture file.

    Raises
    ------
    ConfigError
        On unreadable JSON, unknown signal types or timestamps going backwards.
    """
    last_t = 0
    with path.open("r", encoding="utf-8") as f:
        for lineno, raw in enumerate(f, start=1):
            line = raw.strip()
            if not line:
                continue
            try:
                item = json.loads(line)
            except json.JSONDecodeError as error:
                raise ConfigError(f"{path}:{lineno}: invalid JSON ({error.msg}).") from error
            if not isinstance(item, dict):
                raise ConfigError(f"{path}:{lineno}: expected a JSON object.")
            if item.get("signal") not in _SIGNALS:
                raise ConfigError(
                    f"{path}:{lineno}: signal must be one of {', '.join(_SIGNALS)}, got {item.get('signal')!r}."
                )
            t_ms = item.get("t_ms", last_t)
            if isinstance(t_ms, bool) or not isinstance(t_ms, int) or t_ms < last_t:
                raise ConfigError(f"{path}:{lineno}: t_ms must be a non-decreasing integer, got {t_ms!r}.")
            last_t = t_ms
            yield t_ms, item


def feed_signal(controller: PipelineController, item: Mapping[str, Any]) -> None:
    """Call the controller entry point matching ``item['signal']``."""
    kind = item["signal"]
    if kind == "runtime":
        error = {"stack": item["stack"]} if isinstance(item.get("stack"), str) else None
        controller.on_runtime_error(
            item.get("message"),
            item.get("source"),
            item.get("lineno"),
            item.get("colno"),
            error,
        )
    elif kind == "resource":
        controller.on_resource_load_error(
            item.get("tag"),
            item.get("url"),
            item.get("base_url"),
            bool(item.get("is_window_target", False)),
        )
    else:
        controller.on_console_error(item.get("arg"))


class _StdoutSink:
    def __init__(self) -> None:
        self.batches = 0

    def __call__(self, records: Sequence[ErrorRecord]) -> None:
        self.batches += 1
        print(json.dumps({"batch": self.batches, "records": [r.to_dict() for r in records]}, default=str))


def run(args: argparse.Namespace) -> None:
    """Execute the `replay` command."""
    configure_logging(level=logging.DEBUG if getattr(args, "verbose", False) else logging.WARNING)

    root = Path(args.config_dir) if getattr(args, "config_dir", None) else Path.cwd()
    overrides = _cli_overrides(args)
    overrides["report_sink"] = JsonlSink(path=Path(args.out)) if getattr(args, "out", None) else _StdoutSink()
    cfg = resolve_config(root, overrides)

    scheduler = ManualScheduler()
    controller = PipelineController(
        scheduler=scheduler,
        console_error=lambda *a: logger.debug("console.error passthrough: %s", a),
    )
    controller.init(cfg.as_options())

    now_ms = 0
    n_signals = 0
    for t_ms, item in read_signals(Path(args.signals)):
        scheduler.advance((t_ms - now_ms) / 1000.0)
        now_ms = t_ms
        feed_signal(controller, item)
        n_signals += 1

    # Let the final quiet period elapse so the last batch goes out.
    scheduler.advance(cfg.debounce_delay_s)

    logger.info("Replayed %d signal(s)", n_signals)
    controller.print_summary()
