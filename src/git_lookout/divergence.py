import logging

from .constants import APP_NAME, DEFAULT_REMOTE, NO_UPSTREAM
from .errors import CountParseError, GitCommandError
from .git_wrapper import GitGateway, GitResult

logger = logging.getLogger(APP_NAME)


class DivergenceEvaluator:
    """Counts upstream commits that are not yet present on the local branch.

    The evaluator only reads refs that already exist locally; it never touches the
    network. Run it after a fetch to get a fresh answer.

    Attributes:
        gateway (GitGateway): The git pass-through for the tracked repository.
        remote (str): The upstream remote name.
    """

    def __init__(self, gateway: GitGateway, remote: str = DEFAULT_REMOTE):
        self.gateway = gateway
        self.remote = remote

    def _query(self, args: list[str]) -> GitResult:
        result = self.gateway.run(args)
        if not result.ok:
            raise GitCommandError(result)
        return result

    def remote_branches(self) -> set[str]:
        """Lists remote-tracking branch names (e.g. 'origin/main').

        Symbolic entries such as 'origin/HEAD -> origin/main' contribute their
        own name only.

        Raises:
            GitCommandError: If `git branch -r` fails.
        """
        names = set()
        for line in self._query(["branch", "-r"]).stdout.splitlines():
            name = line.strip().split(" -> ", 1)[0].strip()
            if name:
                names.add(name)
        return names

    def current_branch(self) -> str | None:
        """Returns the checked-out branch name, or None on a detached HEAD.

        Raises:
            GitCommandError: If the branch query fails.
        """
        lines = [
            line.strip()
            for line in self._query(["branch", "--show-current"]).stdout.splitlines()
            if line.strip()
        ]
        return lines[0] if lines else None

    def tracking_ref(self) -> tuple[str, str] | None:
        """Resolves the (local, remote-tracking) branch pair to compare.

        Returns:
            tuple[str, str] | None: The pair, or None if the current branch has
                no counterpart on the remote.
        """
        branch = self.current_branch()
        if not branch:
            logger.debug("Detached HEAD: no branch to compare.")
            return None

        upstream = f"{self.remote}/{branch}"
        if upstream not in self.remote_branches():
            logger.debug(f"{upstream} not found among remote-tracking branches.")
            return None
        return branch, upstream

    def count_new_commits(self) -> int:
        """Counts commits reachable from the upstream branch but not the local one.

        Returns:
            int: The number of incoming commits, or -1 if the branch has no
                remote-tracking counterpart.

        Raises:
            GitCommandError: If a git query fails.
            CountParseError: If the count output is not a non-negative integer.
        """
        pair = self.tracking_ref()
        if pair is None:
            return NO_UPSTREAM

        branch, upstream = pair
        raw = self._query(["rev-list", "--count", f"{branch}..{upstream}"]).output
        return parse_count(raw)


def parse_count(raw: str) -> int:
    """Parses `rev-list --count` output.

    Raises:
        CountParseError: If the text is empty, not a number, or negative.
    """
    text = raw.strip()
    if not (text.isascii() and text.isdigit()):
        raise CountParseError(raw)
    return int(text)
