from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Sequence
import os

import yaml

from .errors import ConfigError

if TYPE_CHECKING:
    from jstracker.capture.types import ErrorRecord

ReportSink = Callable[[Sequence["ErrorRecord"]], Any]


def _discard(records: Sequence["ErrorRecord"]) -> None:
    """Default sink: accept the batch and do nothing with it."""
    return None


def load_config(root: Path) -> dict[str, Any]:
    """
    Load tracker options from a YAML file in ``root`` if present.

    Search order:
    1) ``jstracker.yaml``
    2) ``config.yaml``

    Only the ``tracker:`` section is returned; a file without it yields ``{}``.
    """

    for filename in ("jstracker.yaml", "config.yaml"):
        config_path = root / filename
        if not config_path.exists():
            continue
        try:
            raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as error:
            raise ConfigError(f"Could not parse {config_path}: {error}") from error
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigError(f"{config_path} must hold a YAML mapping at top level.")
        section = raw.get("tracker")
        if section is None:
            return {}
        if not isinstance(section, dict):
            raise ConfigError(f"'tracker' in {config_path} must be a mapping.")
        return dict(section)
    return {}


@dataclass(frozen=True)
class TrackerConfig:
    """
    Process-wide configuration of the capture pipeline.

    Parameters
    ----------
    batch_mode
        True buffers records and delivers them in debounced batches; False
        reports every admitted record on its own, immediately.
    debounce_delay_ms
        Quiet period (milliseconds) that must pass without a new submission
        before a batch is flushed.
    max_queue_size
        Hard cap on buffered records. Records arriving at capacity are dropped.
    sampling_rate
        Per-record inclusion probability. Values outside [0, 1] report everything.
    report_sink
        Callable receiving an ordered list of ErrorRecord. The pipeline's only output.
    seed
        Optional seed for the sampler's random generator.
    env_prefix
        Prefix for environment-variable overrides, e.g. "JSTRACKER_".

    Usage example
    -------------
        cfg = TrackerConfig(debounce_delay_ms=500, report_sink=send_batch)
        cfg = cfg.merged({"sampling_rate": 0.25})
    """

    batch_mode: bool = True
    debounce_delay_ms: int = 2000
    max_queue_size: int = 16
    sampling_rate: float = 1.0
    report_sink: ReportSink = field(default=_discard, repr=False)
    seed: Optional[int] = None

    env_prefix: str = field(default="", repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.batch_mode, bool):
            raise ConfigError(f"batch_mode must be a bool, got {self.batch_mode!r}.")
        if isinstance(self.debounce_delay_ms, bool) or not isinstance(self.debounce_delay_ms, int):
            raise ConfigError(f"debounce_delay_ms must be an int, got {self.debounce_delay_ms!r}.")
        if self.debounce_delay_ms < 0:
            raise ConfigError(f"debounce_delay_ms must be >= 0, got {self.debounce_delay_ms}.")
        if isinstance(self.max_queue_size, bool) or not isinstance(self.max_queue_size, int):
            raise ConfigError(f"max_queue_size must be an int, got {self.max_queue_size!r}.")
        if self.max_queue_size <= 0:
            raise ConfigError(f"max_queue_size must be > 0, got {self.max_queue_size}.")
        if not callable(self.report_sink):
            raise ConfigError("report_sink must be callable.")
        if self.seed is not None and (isinstance(self.seed, bool) or not isinstance(self.seed, int)):
            raise ConfigError(f"seed must be an int or None, got {self.seed!r}.")

    @property
    def debounce_delay_s(self) -> float:
        """Debounce delay in seconds, as schedulers expect it."""
        return self.debounce_delay_ms / 1000.0

    @classmethod
    def option_names(cls) -> tuple[str, ...]:
        """Names accepted by :meth:`merged`."""
        return tuple(f.name for f in fields(cls) if f.name != "env_prefix")

    def merged(self, overrides: Optional[Mapping[str, Any]] = None) -> "TrackerConfig":
        """
        Return a copy with ``overrides`` applied; unspecified fields keep their value.

        Raises
        ------
        ConfigError
            If an override names an unknown option or the result is invalid.
        """
        if not overrides:
            return self
        allowed = set(self.option_names())
        unknown = sorted(set(overrides) - allowed)
        if unknown:
            raise ConfigError(
                f"Unknown tracker option(s): {', '.join(unknown)}. "
                f"Expected one of: {', '.join(sorted(allowed))}."
            )
        return replace(self, **dict(overrides))

    @classmethod
    def from_env(cls, *, default: Optional["TrackerConfig"] = None) -> "TrackerConfig":
        """
        Create config from environment variables.

        Supported variables (prefix controlled by env_prefix on `default`):
        - <PFX>BATCH_MODE: "1"/"0"
        - <PFX>DEBOUNCE_DELAY_MS: integer
        - <PFX>MAX_QUEUE_SIZE: integer
        - <PFX>SAMPLING_RATE: float
        - <PFX>SEED: integer

        Invalid values fall back to the value on `default`.

        Usage example
        -------------
            cfg = TrackerConfig.from_env(default=TrackerConfig(env_prefix="JSTRACKER_"))
        """
        base = default if default is not None else cls()
        pfx = base.env_prefix

        batch_raw = os.getenv(f"{pfx}BATCH_MODE", "1" if base.batch_mode else "0").strip()
        batch_mode = batch_raw not in ("0", "false", "False", "")

        debounce_delay_ms = _env_int(f"{pfx}DEBOUNCE_DELAY_MS", base.debounce_delay_ms, minimum=0)
        max_queue_size = _env_int(f"{pfx}MAX_QUEUE_SIZE", base.max_queue_size, minimum=1)

        sampling_rate = base.sampling_rate
        sampling_raw = os.getenv(f"{pfx}SAMPLING_RATE", "")
        if sampling_raw.strip():
            try:
                sampling_rate = float(sampling_raw)
            except ValueError:
                sampling_rate = base.sampling_rate

        seed = base.seed
        seed_raw = os.getenv(f"{pfx}SEED", "")
        if seed_raw.strip():
            try:
                seed = int(seed_raw)
            except ValueError:
                seed = base.seed

        return cls(
            batch_mode=batch_mode,
            debounce_delay_ms=debounce_delay_ms,
            max_queue_size=max_queue_size,
            sampling_rate=sampling_rate,
            report_sink=base.report_sink,
            seed=seed,
            env_prefix=pfx,
        )


    def as_options(self) -> dict[str, Any]:
        """Return the options as a mapping accepted by :meth:`merged` and controller init."""
        return {name: getattr(self, name) for name in self.option_names()}


def resolve_config(
    root: Path,
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    env_prefix: str = "JSTRACKER_",
) -> TrackerConfig:
    """
    Resolve tracker config with increasing priority: defaults, YAML file in
    ``root``, environment variables, then explicit ``overrides``.
    """

    file_cfg = TrackerConfig(env_prefix=env_prefix).merged(load_config(root))
    env_cfg = TrackerConfig.from_env(default=file_cfg)
    return env_cfg.merged(overrides)


def _env_int(name: str, fallback: int, *, minimum: int) -> int:
    raw = os.getenv(name, "")
    if not raw.strip():
        return fallback
    try:
        value = int(raw)
    except ValueError:
        return fallback
    return value if value >= minimum else fallback
