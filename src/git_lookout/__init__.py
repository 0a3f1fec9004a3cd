"""Git Lookout: background detection of new upstream commits.

This package provides the command-line interface, the watch loop, and the core
fetch/compare machinery that tells whether a local clone has fallen behind its
upstream remote.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    divergence,
    errors,
    fetch,
    git_wrapper,
    ops,
    scheduler,
    status,
    system,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "divergence",
    "errors",
    "fetch",
    "git_wrapper",
    "ops",
    "scheduler",
    "status",
    "system",
]
