"""`jstracker config` command implementation."""

from __future__ import annotations

import argparse
from pathlib import Path

from jstracker.core.config import resolve_config


def add_subparser(subparsers: argparse._SubParsersAction) -> None:
    """Register the `config` command."""
    parser = subparsers.add_parser("config", help="Print the resolved tracker configuration.")
    parser.add_argument("--config-dir", default=None, help="Directory holding jstracker.yaml (default: cwd).")
    parser.set_defaults(command="config")


def run(args: argparse.Namespace) -> None:
    """Execute the `config` command."""
    root = Path(args.config_dir) if getattr(args, "config_dir", None) else Path.cwd()
    cfg = resolve_config(root)
    for name, value in cfg.as_options().items():
        if name == "report_sink":
            continue
        print(f"{name}: {value}")
