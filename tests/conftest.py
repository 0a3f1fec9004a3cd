"""Shared fakes and repository builders for the test suite."""

import os
import shutil
import subprocess
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from git_lookout.config import Config
from git_lookout.git_wrapper import GitResult


class FakeTimer:
    """Stands in for an asyncio.TimerHandle."""

    def __init__(self, when: float, callback: Callable, args: tuple) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeLoop:
    """A manually advanced event loop offering only `call_later`."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable, *args: Any) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback, args)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        """Moves the clock forward, running due callbacks in order."""
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self.now = timer.when
            timer.callback(*timer.args)
        self.now = target


class FakeProcess:
    """A Popen stand-in that exits after a number of polls."""

    def __init__(self, returncode: int = 0, polls_until_exit: int = 1) -> None:
        self.returncode_on_exit = returncode
        self.polls_until_exit = polls_until_exit
        self.poll_calls = 0
        self.killed = False

    def poll(self) -> int | None:
        self.poll_calls += 1
        if self.killed:
            return -9
        if self.poll_calls >= self.polls_until_exit:
            return self.returncode_on_exit
        return None

    def kill(self) -> None:
        self.killed = True

    def wait(self) -> int:
        if not self.killed:
            raise AssertionError("wait() would block on a running process")
        return -9


class FakeGateway:
    """Returns canned git output and records every call."""

    def __init__(
        self, responses: dict | None = None, path: Path = Path("/repo")
    ) -> None:
        self.path = path
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, ...]] = []
        self.spawned: list[tuple[str, ...]] = []
        self.processes: list[Any] = []

    def run(self, args: list[str]) -> GitResult:
        key = tuple(args)
        self.calls.append(key)
        value = self.responses.get(key)
        if value is None:
            return GitResult(key, 1, "", f"no canned response for {key}")
        if isinstance(value, GitResult):
            return value
        return GitResult(key, 0, value, "")

    def spawn(self, args: list[str]) -> Any:
        self.spawned.append(tuple(args))
        if self.processes:
            process = self.processes.pop(0)
            if isinstance(process, Exception):
                raise process
            return process
        return FakeProcess()


def tracking_responses(
    branch: str = "main",
    remote_branches: str = "  origin/HEAD -> origin/main\n  origin/main\n",
    count: str = "3\n",
) -> dict:
    """Canned output for a branch with a remote-tracking counterpart."""
    return {
        ("branch", "-r"): remote_branches,
        ("branch", "--show-current"): f"{branch}\n",
        ("rev-list", "--count", f"{branch}..origin/{branch}"): count,
        ("pull", "--ff-only", "origin", branch): "Fast-forward\n",
    }


@pytest.fixture
def fake_loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway(tracking_responses())


@pytest.fixture(autouse=True)
def isolated_config(
    tmp_path_factory: pytest.TempPathFactory, mocker: MagicMock
) -> Iterator[None]:
    """Keeps the user's real global config out of every test."""
    missing = tmp_path_factory.mktemp("config") / "config.toml"
    mocker.patch("git_lookout.config.CONFIG_FILE", missing)
    Config._global_cache = None
    yield
    Config._global_cache = None


# --- Real repositories ---

GIT_ENV = {
    **os.environ,
    "GIT_AUTHOR_NAME": "Lookout Test",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "Lookout Test",
    "GIT_COMMITTER_EMAIL": "test@example.com",
    "GIT_CONFIG_NOSYSTEM": "1",
}


def git(cwd: Path, *args: str) -> str:
    """Runs a git command for test setup, failing loudly."""
    res = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
        env=GIT_ENV,
    )
    return res.stdout.strip()


def add_commits(repo: Path, count: int, prefix: str = "change") -> None:
    """Creates `count` commits, each touching its own file."""
    for i in range(count):
        name = f"{prefix}-{i}.txt"
        (repo / name).write_text(f"{prefix} {i}\n")
        git(repo, "add", name)
        git(repo, "commit", "-q", "-m", f"{prefix} {i}")


def commit_raw_message(repo: Path, message: bytes) -> None:
    """Creates one commit whose message is stored as the given raw bytes."""
    (repo / "raw.txt").write_text("raw\n")
    msg_file = repo.parent / f"{repo.name}-message.txt"
    msg_file.write_bytes(message)
    git(repo, "add", "raw.txt")
    git(repo, "commit", "-q", "-F", str(msg_file))


@pytest.fixture
def upstream_pair(tmp_path: Path) -> tuple[Path, Path]:
    """Builds a bare upstream with two clones: (author, local).

    Both clones start at the same seed commit on 'main'.
    """
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    remote = tmp_path / "remote.git"
    git(tmp_path, "init", "-q", "--bare", str(remote))
    git(remote, "symbolic-ref", "HEAD", "refs/heads/main")

    author = tmp_path / "author"
    author.mkdir()
    git(author, "init", "-q")
    git(author, "symbolic-ref", "HEAD", "refs/heads/main")
    git(author, "remote", "add", "origin", str(remote))
    add_commits(author, 1, prefix="seed")
    git(author, "push", "-q", "origin", "main")

    local = tmp_path / "local"
    git(tmp_path, "clone", "-q", str(remote), str(local))
    return author, local
