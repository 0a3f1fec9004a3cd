"""Human-readable rendering of divergence counts."""

from enum import Enum

UPDATES_AVAILABLE = "Updates available"
UP_TO_DATE = "Up to date"
NO_UPSTREAM_MESSAGE = "Local-only branch, no upstream"


class DivergenceStatus(Enum):
    """The tri-state outcome of comparing a branch with its upstream."""

    AHEAD_REMOTE = "ahead-remote"
    UP_TO_DATE = "up-to-date"
    NO_UPSTREAM = "no-upstream"


def classify(count: int) -> DivergenceStatus:
    """Maps a new-commit count to its divergence status."""
    if count > 0:
        return DivergenceStatus.AHEAD_REMOTE
    if count == 0:
        return DivergenceStatus.UP_TO_DATE
    return DivergenceStatus.NO_UPSTREAM


_MESSAGES = {
    DivergenceStatus.AHEAD_REMOTE: UPDATES_AVAILABLE,
    DivergenceStatus.UP_TO_DATE: UP_TO_DATE,
    DivergenceStatus.NO_UPSTREAM: NO_UPSTREAM_MESSAGE,
}


def render(count: int) -> str:
    """Renders a new-commit count as a status message.

    Args:
        count (int): Commits on the upstream branch not yet present locally,
            or a negative sentinel when there is no upstream.

    Returns:
        str: One of the three status messages.
    """
    return _MESSAGES[classify(count)]


def describe(count: int) -> str:
    """Like `render`, with the number of incoming commits when there are any."""
    if count > 0:
        noun = "commit" if count == 1 else "commits"
        return f"{UPDATES_AVAILABLE}: {count} new {noun}"
    return render(count)
