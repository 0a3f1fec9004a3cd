import os
from pathlib import Path

"""Global constants and configuration path definitions for Git Lookout.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the default watch settings used across the application.
"""

# --- Identity ---
APP_NAME = "git-lookout"
"""str: The human-readable application name."""

DEFAULT_REMOTE = "origin"
"""str: The single upstream remote compared against the local branch."""

NO_UPSTREAM = -1
"""int: Sentinel count meaning the current branch has no remote-tracking counterpart."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-lookout"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "watch.log"
"""Path: The file path for the watch mode logs."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-lookout"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

LOCAL_CONFIG_NAME = "lookout.toml"
"""str: Per-repository configuration file name."""

# --- Watch Defaults ---
DEFAULT_FETCH_INTERVAL = 900.0
"""float: Seconds between automatic checks (15 minutes)."""

DEFAULT_POLL_INTERVAL = 0.5
"""float: Seconds between checks of a running fetch process."""
