import asyncio
import datetime
import logging
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from . import ops
from .config import Config
from .constants import APP_NAME, LOG_FILE
from .scheduler import Scheduler
from .status import DivergenceStatus, classify, describe
from .system import SystemStrategy, get_system

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)


class WatchReporter:
    """Logs each divergence result and notifies when new commits appear.

    A notification is sent only when the incoming count changes, so an unchanged
    backlog does not re-notify on every cycle.
    """

    def __init__(
        self, repo_path: Path, notify: bool, system: SystemStrategy | None = None
    ):
        self.repo_path = repo_path
        self.notify = notify
        self.system = system or get_system()
        self.last_count: int | None = None

    def __call__(self, count: int) -> None:
        logger.info(f"{self.repo_path.name}: {describe(count)}")
        if (
            self.notify
            and classify(count) is DivergenceStatus.AHEAD_REMOTE
            and count != self.last_count
        ):
            self.system.notify(f"{self.repo_path.name}", describe(count))
        self.last_count = count


def setup_logging(interactive: bool, max_log_size: int) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to stderr and
            to a rotating file.
        max_log_size (int): Bytes per log file before rotation.
    """
    if logger.handlers:
        return

    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        try:
            LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                LOG_FILE,
                maxBytes=max_log_size,
                backupCount=5,
            )
        except OSError as e:
            logger.warning(f"Could not open log file {LOG_FILE}: {e}")
            return
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def build_scheduler(
    repo_path: Path,
    config: Config,
    loop: asyncio.AbstractEventLoop,
    interval: float | str | datetime.timedelta | None = None,
) -> Scheduler:
    """Wires the coordinator, reporter and scheduler for a watch session."""
    reporter = WatchReporter(repo_path, notify=config.watch.notify)
    coordinator = ops.build_coordinator(repo_path, config, loop, reporter=reporter)
    return Scheduler(
        coordinator,
        loop,
        interval if interval is not None else config.watch.fetch_interval,
    )


def run_watch(
    repo_path: Path,
    config: Config,
    interval: float | str | datetime.timedelta | None = None,
    check_first: bool = False,
) -> None:
    """Runs automatic update checks until interrupted.

    Exactly one scheduler exists for the session. It is enabled on start and
    always disabled on the way out, whatever stops the loop.

    Args:
        repo_path (Path): The repository root.
        config (Config): Loaded configuration.
        interval (float | str | timedelta | None): Overrides the configured
            fetch interval.
        check_first (bool): Run one check immediately instead of waiting a full
            interval first.
    """
    setup_logging(False, config.limits.max_log_size)

    loop = asyncio.new_event_loop()
    scheduler = build_scheduler(repo_path, config, loop, interval)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, loop.stop)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; KeyboardInterrupt still works.
            pass

    logger.info(f"Watching {repo_path} ({config.core.remote_name}).")
    scheduler.enable()
    if check_first:
        scheduler.coordinator.check_for_updates()

    try:
        loop.run_forever()
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.disable()
        loop.close()
        logger.info("Watch stopped.")
