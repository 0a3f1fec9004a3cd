import asyncio
import logging
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .constants import APP_NAME, DEFAULT_POLL_INTERVAL, DEFAULT_REMOTE
from .divergence import DivergenceEvaluator
from .errors import LookoutError
from .git_wrapper import GitGateway

logger = logging.getLogger(APP_NAME)


class FetchStatus(Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CoordinatorState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"


class PullResult(Enum):
    """Outcome of a `FetchCoordinator.pull` request."""

    SHOWN_LOG = "shown-log"
    PULLED = "pulled"
    FAILED = "failed"
    BUSY = "busy"


@dataclass
class FetchOperation:
    """One asynchronous `git fetch` and its lifecycle.

    Attributes:
        remote (str): The remote being fetched.
        process (subprocess.Popen | None): The running process, None if it
            could not be spawned.
        status (FetchStatus): Pending until the process exit is observed.
        returncode (int | None): The exit code once known.
        polls (int): How many times the process state was checked.
        count (int | None): The divergence count computed after a successful fetch.
        error (str | None): Why the operation failed, if it did.
    """

    remote: str
    process: subprocess.Popen | None = None
    status: FetchStatus = FetchStatus.PENDING
    returncode: int | None = None
    polls: int = 0
    count: int | None = None
    error: str | None = field(default=None)

    @property
    def done(self) -> bool:
        return self.status is not FetchStatus.PENDING


Reporter = Callable[[int], None]
LogViewer = Callable[[Path], bool]
DoneCallback = Callable[[FetchOperation], None]


class FetchCoordinator:
    """Runs background fetches and reports divergence once each completes.

    At most one fetch is in flight at a time. The fetch process is spawned without
    blocking and its exit status is re-checked on the event loop every
    `poll_interval` seconds, so the loop thread never waits on the network.

    State machine: IDLE -> FETCHING -> (SUCCEEDED | FAILED) -> IDLE. A failed
    fetch is not retried; the next scheduled cycle is the retry.
    """

    def __init__(
        self,
        gateway: GitGateway,
        loop: asyncio.AbstractEventLoop,
        reporter: Reporter,
        log_viewer: LogViewer,
        evaluator: DivergenceEvaluator | None = None,
        remote: str = DEFAULT_REMOTE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_polls: int | None = None,
    ):
        """Initializes the coordinator.

        Args:
            gateway (GitGateway): The git pass-through for the tracked repository.
            loop (asyncio.AbstractEventLoop): Any object offering `call_later`.
            reporter (Reporter): Receives the new-commit count after each
                successful fetch.
            log_viewer (LogViewer): Shows incoming commits for a repository path
                and returns False if they could not be shown.
            evaluator (DivergenceEvaluator | None): Defaults to one built on
                `gateway` and `remote`.
            remote (str): The upstream remote name.
            poll_interval (float): Seconds between process state checks.
            max_polls (int | None): Kill the fetch after this many checks.
                None waits indefinitely.
        """
        self.gateway = gateway
        self.loop = loop
        self.reporter = reporter
        self.log_viewer = log_viewer
        self.evaluator = evaluator or DivergenceEvaluator(gateway, remote)
        self.remote = remote
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self._current: FetchOperation | None = None
        self._on_done: DoneCallback | None = None

    @property
    def state(self) -> CoordinatorState:
        if self._current is None:
            return CoordinatorState.IDLE
        return CoordinatorState.FETCHING

    @property
    def current(self) -> FetchOperation | None:
        """The in-flight fetch, if any."""
        return self._current

    def check_for_updates(
        self, on_done: DoneCallback | None = None
    ) -> FetchOperation | None:
        """Starts a background fetch from the upstream remote.

        On success the divergence count is passed to the reporter. On failure
        nothing is reported; inspect the operation handed to `on_done`.

        Args:
            on_done (DoneCallback | None): Called once with the finished operation,
                after the coordinator has returned to IDLE.

        Returns:
            FetchOperation | None: The started operation, or None if a fetch is
                already in flight (nothing is spawned in that case).
        """
        if self._current is not None:
            logger.debug("Fetch already in flight; skipping.")
            return None

        op = FetchOperation(remote=self.remote)
        self._current = op
        self._on_done = on_done

        try:
            op.process = self.gateway.spawn(["fetch", self.remote])
        except OSError as e:
            op.error = f"Could not start git fetch: {e}"
            self._finish(op, FetchStatus.FAILED)
            return op

        logger.debug(f"Fetching {self.remote} in {self.gateway.path}")
        self.loop.call_later(self.poll_interval, self._poll, op)
        return op

    def _poll(self, op: FetchOperation) -> None:
        if op is not self._current or op.process is None:
            return

        op.polls += 1
        returncode = op.process.poll()
        if returncode is None:
            if self.max_polls is not None and op.polls >= self.max_polls:
                op.process.kill()
                op.returncode = op.process.wait()
                op.error = f"git fetch still running after {op.polls} checks; killed"
                logger.warning(op.error)
                self._finish(op, FetchStatus.FAILED)
                return
            self.loop.call_later(self.poll_interval, self._poll, op)
            return

        op.returncode = returncode
        if returncode != 0:
            op.error = f"git fetch {op.remote} exited {returncode}"
            logger.debug(op.error)
            self._finish(op, FetchStatus.FAILED)
            return

        try:
            op.count = self.evaluator.count_new_commits()
        except LookoutError as e:
            op.error = str(e)
            logger.warning(f"Divergence check failed: {e}")
            self._finish(op, FetchStatus.FAILED)
            return

        self._finish(op, FetchStatus.SUCCEEDED)

    def _finish(self, op: FetchOperation, status: FetchStatus) -> None:
        op.status = status
        on_done = self._on_done
        try:
            if status is FetchStatus.SUCCEEDED and op.count is not None:
                self.reporter(op.count)
        finally:
            self._current = None
            self._on_done = None
            if on_done is not None:
                on_done(op)

    def pull(self, confirm: bool) -> PullResult:
        """Shows incoming commits or brings the local branch up to date.

        Refused while a fetch is in flight, so a pull never races a fetch.

        Args:
            confirm (bool): False only displays the incoming log, and fails if it
                cannot be shown. True runs a fast-forward `git pull` that changes
                the working tree.

        Returns:
            PullResult: What happened.
        """
        if self._current is not None:
            logger.info("Fetch in progress; pull refused.")
            return PullResult.BUSY

        if not confirm:
            if not self.log_viewer(self.gateway.path):
                return PullResult.FAILED
            return PullResult.SHOWN_LOG

        try:
            branch = self.evaluator.current_branch()
        except LookoutError as e:
            logger.error(f"Pull aborted: {e}")
            return PullResult.FAILED
        if not branch:
            logger.error("Pull aborted: HEAD is detached.")
            return PullResult.FAILED

        result = self.gateway.run(["pull", "--ff-only", self.remote, branch])
        if not result.ok:
            logger.error(f"Pull failed: {result.stderr.strip() or result.returncode}")
            return PullResult.FAILED

        logger.info(f"Pulled {self.remote}/{branch} into {self.gateway.path}")
        return PullResult.PULLED
