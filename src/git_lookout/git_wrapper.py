import logging
import os
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class GitResult:
    """Holds the outcome of a single git invocation.

    A failed invocation is a value, not an exception. Spawn failures (git missing,
    working directory gone) are reported with a returncode of -1.

    Attributes:
        args (tuple[str, ...]): The arguments passed after `git`.
        returncode (int): The process exit code.
        stdout (str): Captured standard output.
        stderr (str): Captured standard error, or the OS error text.
    """

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """The stripped standard output."""
        return self.stdout.strip()


class GitGateway:
    """A pass-through to the git command line for one working tree.

    Every call spawns exactly one `git` process with the repository as its working
    directory. Nothing is retried and no state is kept between calls, so the rest of
    the package can be exercised against a fake gateway returning canned results.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the gateway.

        Args:
            path (Path): The path to the repository root directory. It is not
                validated here; a wrong path surfaces as failed results.
        """
        self.path = path

    def run(self, args: Sequence[str]) -> GitResult:
        """Executes a git command and captures its output.

        Args:
            args (Sequence[str]): Arguments to pass to the git command.

        Returns:
            GitResult: The captured result. `ok` is False on a nonzero exit code
                or if the process could not be started.
        """
        argv = tuple(args)
        try:
            res = subprocess.run(
                ["git", *argv],
                cwd=self.path,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except OSError as e:
            logger.debug(f"Could not spawn git {' '.join(argv)}: {e}")
            return GitResult(argv, -1, "", str(e))

        if res.returncode != 0:
            logger.debug(f"git {' '.join(argv)} exited {res.returncode}")
        return GitResult(argv, res.returncode, res.stdout or "", res.stderr or "")

    def spawn(self, args: Sequence[str]) -> subprocess.Popen:
        """Starts a git command without waiting for it.

        Output is discarded so a chatty process can never block on a full pipe.
        Callers observe completion through `Popen.poll()`.

        Args:
            args (Sequence[str]): Arguments to pass to the git command.

        Returns:
            subprocess.Popen: The running process.

        Raises:
            OSError: If the process could not be started.
        """
        # Background fetches must never stop to ask for credentials.
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
        return subprocess.Popen(
            ["git", *args],
            cwd=self.path,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
