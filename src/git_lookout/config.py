import datetime
import logging
import math
import re
import subprocess
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_FETCH_INTERVAL,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REMOTE,
    LOCAL_CONFIG_NAME,
)

logger = logging.getLogger(APP_NAME)

_TIME_UNITS = {
    "ms": 0.001,
    "s": 1,
    "sec": 1,
    "second": 1,
    "m": 60,
    "min": 60,
    "minute": 60,
    "h": 3600,
    "hr": 3600,
    "hour": 3600,
    "d": 86400,
    "day": 86400,
}
_TIME_PART = re.compile(r"(\d+(?:\.\d+)?)\s*([a-z]+)")


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | float | str | datetime.timedelta) -> float:
    """Converts an interval to seconds.

    Accepts a number of seconds, a timedelta, or a human-readable string such as
    '90', '30s', '15m', '1hr', '2 days' or '1h30m'.

    Raises:
        ValueError: If the value cannot be parsed or is not positive.
    """
    if isinstance(value, datetime.timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    else:
        text = str(value).strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            seconds = _parse_time_string(text, value)

    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(
            f"Interval must be a positive number of seconds, got '{value}'"
        )
    return seconds


def _parse_time_string(text: str, original: object) -> float:
    parts = _TIME_PART.findall(text)
    # Every character must belong to a recognised "<number><unit>" part.
    if not parts or re.sub(r"\s+", "", _TIME_PART.sub("", text)):
        raise ValueError(f"Invalid time format '{original}'")
    total = 0.0
    for num, unit in parts:
        if unit not in _TIME_UNITS and unit.endswith("s"):
            unit = unit[:-1]
        if unit not in _TIME_UNITS:
            raise ValueError(f"Invalid time format '{original}'")
        total += float(num) * _TIME_UNITS[unit]
    return total


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        remote_name (str): The upstream remote to compare against.
        repo_path (str | None): Explicit repository root. Derived from the
            current directory when unset.
    """

    remote_name: str = DEFAULT_REMOTE
    repo_path: str | None = None


@dataclass
class WatchConfig:
    """Automatic checking settings.

    Attributes:
        fetch_interval (float): Seconds between automatic checks.
        poll_interval (float): Seconds between checks of a running fetch.
        max_polls (int): Kill a fetch after this many checks. 0 means never.
        notify (bool): Send a desktop notification when updates are found.
    """

    fetch_interval: float = DEFAULT_FETCH_INTERVAL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_polls: int = 0
    notify: bool = True

    @property
    def poll_limit(self) -> int | None:
        return self.max_polls if self.max_polls > 0 else None


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        watch (WatchConfig): Automatic checking settings.
        limits (LimitsConfig): Resource limits.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            repo_path (Path | None): The repository root to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Start with a copy of the cached global config
        base = cls._global_cache
        instance = replace(
            base,
            core=replace(base.core),
            watch=replace(base.watch),
            limits=replace(base.limits),
        )

        # 2. Load Local Config (if applicable)
        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            pyproject = repo_path / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section="tool.lookout")

        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.lookout').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "watch" in data:
                self.watch = self._update_dataclass("watch", self.watch, data["watch"])
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k in ["fetch_interval", "poll_interval"]:
                    filtered_updates[k] = parse_time(v)
                elif k == "max_polls":
                    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
                        raise ValueError(f"Expected a non-negative integer, got {v!r}")
                    filtered_updates[k] = v
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)


def resolve_repo_path(config: Config | None = None, cwd: Path | None = None) -> Path:
    """Resolves the working tree to watch.

    Order: explicit `[core] repo_path`, then the top level of the git work tree
    containing `cwd`, then `cwd` itself. The last case logs a warning; later git
    calls simply fail if the guess is wrong.

    Args:
        config (Config | None): Loaded configuration, if any.
        cwd (Path | None): Starting directory. Defaults to the current directory.

    Returns:
        Path: The repository root.
    """
    start = cwd or Path.cwd()

    if config and config.core.repo_path:
        return Path(config.core.repo_path).expanduser().resolve()

    try:
        res = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=start,
            capture_output=True,
            text=True,
            check=False,
        )
        if res.returncode == 0 and res.stdout.strip():
            return Path(res.stdout.strip())
    except OSError as e:
        logger.debug(f"Could not run git to locate the work tree: {e}")

    logger.warning(
        f"{start} is not inside a git work tree and no repo_path is configured. "
        "Using it anyway."
    )
    return start
