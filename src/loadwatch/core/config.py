# src/loadwatch/core/config.py
"""
Per-user config persistence for loadwatch (platformdirs + JSON).

Persisted items (schema v1):
- cleanup_delay_s: float   (seconds a terminal state stays in the store)
- trace: bool              (log every change/dispatch at INFO instead of DEBUG)
- log_level: str           (console log level for setup_logging)
- poll_interval_s: float   (job runner queue polling interval)

Behavior:
- If config file missing or unreadable -> defaults are used
- If schema_version mismatches:
  - default: reset to defaults
  - optional: keep loaded but update version
- Optional "create_if_missing" flag to write defaults on first run

Design:
- LoadwatchConfigData dataclass holds JSON-friendly data (dot access)
- LoadwatchConfig manager provides explicit API for load/save
"""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from platformdirs import user_config_dir

from loadwatch.core.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

# Increment when you make a breaking change to the on-disk JSON schema.
SCHEMA_VERSION: int = 1

# Defaults
DEFAULT_CLEANUP_DELAY_S: float = 5.0
DEFAULT_TRACE: bool = False
DEFAULT_LOG_LEVEL: str = "INFO"
DEFAULT_POLL_INTERVAL_S: float = 0.05
VALID_LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _non_negative_float(raw: Any, default: float, name: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {name} {raw!r}, using default {default}")
        return default
    if not math.isfinite(value) or value < 0:
        logger.warning(f"Invalid {name} {raw!r}, using default {default}")
        return default
    return value


@dataclass
class LoadwatchConfigData:
    """
    JSON-serializable config payload.

    Keep fields JSON-friendly (primitives only).
    """

    schema_version: int = SCHEMA_VERSION
    cleanup_delay_s: float = DEFAULT_CLEANUP_DELAY_S
    trace: bool = DEFAULT_TRACE
    log_level: str = DEFAULT_LOG_LEVEL
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S

    def to_json_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_json_dict(cls, d: Dict[str, Any]) -> "LoadwatchConfigData":
        """
        Tolerant loader:
        - ignores unknown keys
        - replaces missing or invalid values with defaults
        """
        try:
            schema_version = int(d.get("schema_version", -1))
        except (TypeError, ValueError):
            schema_version = -1

        cleanup_delay_s = _non_negative_float(
            d.get("cleanup_delay_s", DEFAULT_CLEANUP_DELAY_S), DEFAULT_CLEANUP_DELAY_S, "cleanup_delay_s"
        )

        trace_raw = d.get("trace", DEFAULT_TRACE)
        trace = DEFAULT_TRACE
        if isinstance(trace_raw, bool):
            trace = trace_raw
        elif isinstance(trace_raw, str):
            trace = trace_raw.strip().lower() in ("true", "1", "yes", "on")

        log_level_raw = d.get("log_level", DEFAULT_LOG_LEVEL)
        log_level = DEFAULT_LOG_LEVEL
        if isinstance(log_level_raw, str) and log_level_raw.upper() in VALID_LOG_LEVELS:
            log_level = log_level_raw.upper()
        else:
            logger.warning(f"Invalid log_level {log_level_raw!r}, using default '{DEFAULT_LOG_LEVEL}'")

        poll_interval_s = _non_negative_float(
            d.get("poll_interval_s", DEFAULT_POLL_INTERVAL_S), DEFAULT_POLL_INTERVAL_S, "poll_interval_s"
        )
        if poll_interval_s == 0:
            logger.warning(f"poll_interval_s must be > 0, using default {DEFAULT_POLL_INTERVAL_S}")
            poll_interval_s = DEFAULT_POLL_INTERVAL_S

        return cls(
            schema_version=schema_version,
            cleanup_delay_s=cleanup_delay_s,
            trace=trace,
            log_level=log_level,
            poll_interval_s=poll_interval_s,
        )


class LoadwatchConfig:
    """
    Manager for loading/saving LoadwatchConfigData to disk.
    """

    def __init__(self, *, path: Path, data: Optional[LoadwatchConfigData] = None):
        self.path = path
        self.data = data if data is not None else LoadwatchConfigData()

    @staticmethod
    def default_config_path(
        app_name: str = "loadwatch",
        filename: str = "loadwatch_config.json",
        app_author: str | None = None,
    ) -> Path:
        """
        Determine OS-appropriate per-user config path.

        macOS:   ~/Library/Application Support/loadwatch/loadwatch_config.json
        Linux:   ~/.config/loadwatch/loadwatch_config.json
        Windows: %APPDATA%\\loadwatch\\loadwatch_config.json
        """
        d = Path(user_config_dir(app_name, app_author))
        d.mkdir(parents=True, exist_ok=True)
        return d / filename

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        schema_version: int = SCHEMA_VERSION,
        reset_on_version_mismatch: bool = True,
        create_if_missing: bool = False,
    ) -> "LoadwatchConfig":
        """
        Load config from disk.

        If file doesn't exist or is unreadable -> defaults.
        If schema mismatch:
          - reset_on_version_mismatch=True -> defaults
          - else -> keep loaded but overwrite schema_version

        If create_if_missing=True and file is missing -> immediately write defaults.
        """
        path = config_path or cls.default_config_path()
        default_data = LoadwatchConfigData(schema_version=schema_version)

        try:
            raw = path.read_text(encoding="utf-8")
            parsed = json.loads(raw)
        except FileNotFoundError:
            cfg = cls(path=path, data=default_data)
            if create_if_missing:
                cfg.save()
            return cfg
        except (OSError, ValueError) as exc:
            logger.warning(f"Could not read config {path}: {exc}; using defaults")
            return cls(path=path, data=default_data)

        if not isinstance(parsed, dict):
            logger.warning(f"Config {path} is not a JSON object; using defaults")
            return cls(path=path, data=default_data)

        loaded = LoadwatchConfigData.from_json_dict(parsed)
        if int(loaded.schema_version) != int(schema_version):
            if reset_on_version_mismatch:
                logger.info(
                    f"Config schema {loaded.schema_version} != {schema_version}; resetting to defaults"
                )
                return cls(path=path, data=default_data)
            loaded.schema_version = int(schema_version)
        return cls(path=path, data=loaded)

    def save(self) -> None:
        """Write config to disk (creates the parent folder if needed)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self.data.to_json_dict(), indent=2), encoding="utf-8")
        tmp.replace(self.path)
        logger.debug(f"Saved config to {self.path}")

    def set_cleanup_delay(self, seconds: float) -> None:
        if not math.isfinite(seconds) or seconds < 0:
            raise ValueError(f"cleanup_delay_s must be a finite number >= 0, got {seconds}")
        self.data.cleanup_delay_s = float(seconds)

    def set_trace(self, trace: bool) -> None:
        self.data.trace = bool(trace)

    def apply_logging(self, log_dir: Optional[Path] = None) -> None:
        """Configure root logging at this config's `log_level`."""
        setup_logging(level=self.data.log_level, log_dir=log_dir)
