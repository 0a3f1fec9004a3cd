"""Exception types raised while evaluating upstream divergence."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .git_wrapper import GitResult


class LookoutError(RuntimeError):
    """Base class for Git Lookout errors."""


class GitCommandError(LookoutError):
    """Raised when a git query needed for evaluation fails."""

    def __init__(self, result: GitResult) -> None:
        self.result = result
        detail = result.stderr.strip() or f"exit code {result.returncode}"
        super().__init__(f"git {' '.join(result.args)} failed: {detail}")


class CountParseError(LookoutError):
    """Raised when `git rev-list --count` output is not a non-negative integer."""

    def __init__(self, raw: str) -> None:
        self.raw = raw
        super().__init__(f"Could not parse commit count from {raw!r}")
