"""
`jstracker` command line.

Subcommands live in `jstracker.cli.commands`; each module exposes
``add_subparser(subparsers)`` and ``run(args)``. Configuration problems
(bad YAML, bad options, malformed signal files) end the process with a
usage-style message and exit status 2 instead of a traceback.
"""

from __future__ import annotations

import argparse
from collections.abc import Callable, Sequence
from types import ModuleType

from jstracker.cli.commands import replay, show_config
from jstracker.core.errors import ConfigError
from jstracker.version import __version__

CommandRunner = Callable[[argparse.Namespace], None]

_COMMANDS: dict[str, ModuleType] = {
    "replay": replay,
    "config": show_config,
}

_EPILOG = """\
examples:
  jstracker config --config-dir .
  jstracker replay captured.jsonl --delay-ms 500 --out batches.jsonl
"""


def build_arg_parser() -> argparse.ArgumentParser:
    """Top-level parser with one subparser per registered command."""
    parser = argparse.ArgumentParser(
        prog="jstracker",
        description="Capture, sample, batch and report client-side errors.",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True, metavar="<command>")

    for name, module in _COMMANDS.items():
        add_subparser = getattr(module, "add_subparser", None)
        if add_subparser is None:
            raise RuntimeError(f"CLI command module '{name}' is missing add_subparser().")
        add_subparser(subparsers)

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    name = str(args.command)

    module = _COMMANDS.get(name)
    if module is None:
        raise RuntimeError(f"Unknown command: {name}")
    runner: CommandRunner | None = getattr(module, "run", None)
    if runner is None:
        raise RuntimeError(f"CLI command module '{name}' is missing run().")

    try:
        runner(args)
    except ConfigError as error:
        parser.exit(2, f"{parser.prog} {name}: error: {error}\n")


if __name__ == "__main__":
    main()
