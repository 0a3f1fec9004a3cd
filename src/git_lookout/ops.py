import asyncio
import functools
import logging
from pathlib import Path

from rich.console import Console
from rich.prompt import Prompt

from .config import Config
from .constants import APP_NAME, DEFAULT_REMOTE
from .divergence import DivergenceEvaluator
from .errors import LookoutError
from .fetch import FetchCoordinator, FetchOperation, FetchStatus, PullResult, Reporter
from .git_wrapper import GitGateway
from .status import DivergenceStatus, classify, describe

console = Console()
logger = logging.getLogger(APP_NAME)

SHOW_LOG = "Show Log"
UPDATE = "Update"

_STATUS_STYLE = {
    DivergenceStatus.AHEAD_REMOTE: "bold yellow",
    DivergenceStatus.UP_TO_DATE: "bold green",
    DivergenceStatus.NO_UPSTREAM: "dim",
}


def print_status(count: int) -> None:
    """Prints a divergence count as a styled status line."""
    style = _STATUS_STYLE[classify(count)]
    console.print(f"[{style}]{describe(count)}[/{style}]")


def show_incoming_log(repo_path: Path, remote: str = DEFAULT_REMOTE) -> bool:
    """Displays the upstream commits not yet merged into the current branch.

    Only already-fetched refs are read; run a check first for fresh results.

    Args:
        repo_path (Path): The repository root.
        remote (str): The upstream remote name.

    Returns:
        bool: True if the log could be shown, False on a git failure.
    """
    gateway = GitGateway(repo_path)
    evaluator = DivergenceEvaluator(gateway, remote)

    try:
        pair = evaluator.tracking_ref()
    except LookoutError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        return False

    if pair is None:
        console.print("[yellow]Local-only branch, no upstream to compare.[/yellow]")
        return True

    branch, upstream = pair
    result = gateway.run(["log", "--oneline", "--no-decorate", f"{branch}..{upstream}"])
    if not result.ok:
        console.print(
            f"[bold red]ERROR:[/bold red] git log failed: "
            f"{result.stderr.strip() or result.returncode}"
        )
        return False

    console.print(f"[bold]Incoming commits on {upstream}:[/bold]\n")
    if not result.output:
        console.print("   [dim]None. Local branch has everything.[/dim]")
        return True

    for line in result.output.splitlines():
        sha, _, subject = line.partition(" ")
        console.print(f"   [yellow]{sha}[/yellow] {subject}", highlight=False)
    return True


def build_coordinator(
    repo_path: Path,
    config: Config,
    loop: asyncio.AbstractEventLoop,
    reporter: Reporter = print_status,
) -> FetchCoordinator:
    """Wires a FetchCoordinator for a repository from configuration."""
    remote = config.core.remote_name
    return FetchCoordinator(
        GitGateway(repo_path),
        loop,
        reporter=reporter,
        log_viewer=functools.partial(show_incoming_log, remote=remote),
        remote=remote,
        poll_interval=config.watch.poll_interval,
        max_polls=config.watch.poll_limit,
    )


def check_now(repo_path: Path, config: Config) -> FetchOperation:
    """Fetches from upstream immediately and prints the divergence status.

    Runs a private event loop until the fetch finishes. Failures are printed
    instead of being swallowed.

    Args:
        repo_path (Path): The repository root.
        config (Config): Loaded configuration.

    Returns:
        FetchOperation: The finished operation.
    """
    loop = asyncio.new_event_loop()
    try:
        coordinator = build_coordinator(repo_path, config, loop)
        op = coordinator.check_for_updates(on_done=lambda _op: loop.stop())
        if op is None:
            raise LookoutError("A fetch is already in progress.")
        if not op.done:
            with console.status(
                f"[bold blue]Fetching {config.core.remote_name}...[/bold blue]",
                spinner="dots",
            ):
                loop.run_forever()
    finally:
        loop.close()

    if op.status is FetchStatus.FAILED:
        console.print(f"[bold red]ERROR:[/bold red] Update check failed: {op.error}")
    return op


def show_status(repo_path: Path, config: Config) -> int | None:
    """Prints divergence from already-fetched refs without touching the network.

    Returns:
        int | None: The count, or None if it could not be computed.
    """
    evaluator = DivergenceEvaluator(GitGateway(repo_path), config.core.remote_name)
    try:
        count = evaluator.count_new_commits()
    except LookoutError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        return None
    print_status(count)
    return count


def ask_pull_choice() -> bool:
    """Asks whether to only show the log or really update. Defaults to the log."""
    choice = Prompt.ask(
        "Incoming changes", choices=[SHOW_LOG, UPDATE], default=SHOW_LOG
    )
    return choice == UPDATE


def pull_latest(
    repo_path: Path, config: Config, confirm: bool | None = None
) -> PullResult:
    """Shows the incoming log or pulls the latest upstream commits.

    Args:
        repo_path (Path): The repository root.
        config (Config): Loaded configuration.
        confirm (bool | None): True pulls, False only shows the log. None asks
            the user, defaulting to showing the log.

    Returns:
        PullResult: What happened.
    """
    if confirm is None:
        confirm = ask_pull_choice()

    loop = asyncio.new_event_loop()
    try:
        coordinator = build_coordinator(repo_path, config, loop)
        if not confirm:
            return coordinator.pull(confirm=False)

        with console.status(
            f"[bold blue]Pulling {config.core.remote_name}...[/bold blue]",
            spinner="dots",
        ):
            result = coordinator.pull(confirm=True)
    finally:
        loop.close()

    if result is PullResult.PULLED:
        console.print(f"[bold green]SUCCESS:[/bold green] {repo_path.name} updated.")
    else:
        console.print(
            f"[bold red]ERROR:[/bold red] Pull failed for {repo_path.name}. "
            "See the log above."
        )
    return result
