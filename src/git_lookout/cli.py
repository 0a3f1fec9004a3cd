import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import daemon, ops
from .config import CONFIG_FILE, Config, parse_time, resolve_repo_path
from .constants import APP_NAME, LOCAL_CONFIG_NAME
from .fetch import FetchStatus, PullResult

logger = logging.getLogger(APP_NAME)
console = Console()


class LookoutHelpFormatter(argparse.HelpFormatter):
    """Groups the subcommands into logical categories in the help output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Updates": ["check", "log", "pull"],
                "Monitoring": ["watch", "status"],
                "General": ["config", "help"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def show_config(config: Config, repo_path: Path) -> None:
    """Displays the effective configuration for a repository."""
    table = Table(title="Git Lookout Configuration", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Value", style="yellow")
    table.add_column("Description")

    table.add_row(
        "core",
        "remote_name",
        config.core.remote_name,
        "The upstream remote compared against the current branch.",
    )
    table.add_row(
        "",
        "repo_path",
        str(repo_path),
        "The watched work tree (derived from the current directory if unset).",
    )
    table.add_row(
        "watch",
        "fetch_interval",
        f"{config.watch.fetch_interval:g}s",
        "Time between automatic checks (e.g., '15m', '1hr', 900).",
    )
    table.add_row(
        "",
        "poll_interval",
        f"{config.watch.poll_interval:g}s",
        "Time between checks of a running fetch (e.g., '500ms').",
    )
    table.add_row(
        "",
        "max_polls",
        str(config.watch.max_polls),
        "Kill a fetch after this many checks (0 waits forever).",
    )
    table.add_row(
        "",
        "notify",
        str(config.watch.notify).lower(),
        "Desktop notification when new upstream commits appear.",
    )
    table.add_row(
        "limits",
        "max_log_size",
        str(config.limits.max_log_size),
        "Max size for the watch log before rotation (e.g., '5mb').",
    )

    console.print(table)
    console.print(
        f"[dim]Global: {CONFIG_FILE}  Local: {repo_path / LOCAL_CONFIG_NAME} "
        "or [tool.lookout] in pyproject.toml[/dim]"
    )


def _interval(value: str) -> float:
    try:
        return parse_time(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Watch a local clone for new upstream commits.",
        formatter_class=LookoutHelpFormatter,
    )
    parser.add_argument(
        "-C",
        "--repo",
        type=Path,
        default=None,
        help="Repository to watch (default: the work tree containing the cwd)",
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("check", help="Check for updates now")
    subparsers.add_parser("log", help="Show incoming commits from upstream")

    pull_parser = subparsers.add_parser("pull", help="Pull the latest upstream commits")
    choice = pull_parser.add_mutually_exclusive_group()
    choice.add_argument(
        "--yes",
        "-y",
        dest="confirm",
        action="store_const",
        const=True,
        default=None,
        help="Update without asking",
    )
    choice.add_argument(
        "--no",
        "-n",
        dest="confirm",
        action="store_const",
        const=False,
        help="Only show the incoming log",
    )

    watch_parser = subparsers.add_parser("watch", help="Check for updates periodically")
    watch_parser.add_argument(
        "--interval",
        type=_interval,
        default=None,
        help="Time between checks, e.g. '15m' (default: from config)",
    )
    watch_parser.add_argument(
        "--now", action="store_true", help="Run the first check immediately"
    )

    subparsers.add_parser("status", help="Show divergence without fetching")
    subparsers.add_parser("config", help="Show the effective configuration")
    subparsers.add_parser("help", help="Show this help message")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Git Lookout CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in (None, "help"):
        parser.print_help()
        return

    if args.repo is not None:
        repo_path = resolve_repo_path(cwd=args.repo.expanduser().resolve())
        config = Config.load(repo_path)
    else:
        repo_path = resolve_repo_path(Config.load())
        config = Config.load(repo_path)

    if args.command == "watch":
        daemon.run_watch(repo_path, config, args.interval, check_first=args.now)
        return

    daemon.setup_logging(True, config.limits.max_log_size)

    if args.command == "check":
        op = ops.check_now(repo_path, config)
        if op.status is FetchStatus.FAILED:
            sys.exit(1)
    elif args.command == "log":
        if not ops.show_incoming_log(repo_path, config.core.remote_name):
            sys.exit(1)
    elif args.command == "pull":
        result = ops.pull_latest(repo_path, config, args.confirm)
        if result in (PullResult.FAILED, PullResult.BUSY):
            sys.exit(1)
    elif args.command == "status":
        if ops.show_status(repo_path, config) is None:
            sys.exit(1)
    elif args.command == "config":
        show_config(config, repo_path)


if __name__ == "__main__":
    main()
