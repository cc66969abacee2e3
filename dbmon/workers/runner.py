from __future__ import annotations

import asyncio
import functools
import logging
import os
import signal
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable

from dbmon.alerts.telegram import build_notifier
from dbmon.core.config import (
    SHUTDOWN_GRACE_SEC,
    ConfigError,
    Settings,
    create_from_example,
    example_path,
    load_targets,
    settings,
)
from dbmon.services.export import default_export_filename, to_rows, write_csv
from dbmon.services.prober import Prober
from dbmon.services.status_history import SessionLog
from dbmon.ui.terminal import TerminalDisplay
from dbmon.workers.scheduler import PollingScheduler

logger = logging.getLogger(__name__)

EXPORT_QUESTION = "Would you like to export the monitoring session to CSV? (y/N): "
GENERATE_QUESTION = "Would you like to generate {name} from the example? (Y/n): "

Prompt = Callable[[str], Awaitable[bool]]


class ShutdownController:
    """Two-phase shutdown.

    The first signal sets ``stop`` so no further cycle is scheduled. Signals
    arriving within the grace window are ignored so that finalization (the
    export prompt) can finish; a signal after the window forces an exit, and
    if finalization is under way the export is reported as cancelled first.
    """

    def __init__(
        self,
        stop: asyncio.Event,
        grace_sec: float = SHUTDOWN_GRACE_SEC,
        clock: Callable[[], float] | None = None,
        force_exit: Callable[[int], None] | None = None,
    ) -> None:
        self._stop = stop
        self._grace_sec = grace_sec
        self._clock = clock or time.monotonic
        self._force_exit = force_exit or os._exit
        self._started_at: float | None = None
        self.finalizing = False

    @property
    def shutting_down(self) -> bool:
        return self._started_at is not None

    def request(self) -> None:
        now = self._clock()
        if self._started_at is None:
            self._started_at = now
            logger.warning("Stopping DBMon...")
            self._stop.set()
            return
        if now - self._started_at <= self._grace_sec:
            logger.debug("shutdown already in progress, signal ignored")
            return
        if self.finalizing:
            logger.warning("CSV export cancelled.")
        logger.error("Force exiting...")
        self._force_exit(1)

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request)
            except NotImplementedError:
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(self.request))


async def ask_stdin(question: str, default: bool = False) -> bool:
    try:
        answer = await asyncio.to_thread(input, question)
    except EOFError:
        return False
    answer = answer.strip().lower()
    if not answer:
        return default
    return answer.startswith("y")


async def offer_example_config(path: Path, prompt: Prompt | None = None) -> bool | None:
    """Offer to create a missing targets file from its ``.example`` sibling.

    Returns True when the file was created, False when the user declined and
    None when there is nothing to offer (file present, no example, no terminal).
    """
    example = example_path(path)
    if path.exists() or not example.is_file():
        return None
    if prompt is None:
        if not sys.stdin.isatty():
            return None
        prompt = functools.partial(ask_stdin, default=True)

    logger.warning("Configuration file '%s' not found. Found '%s' with sample configuration.", path, example)
    if not await prompt(GENERATE_QUESTION.format(name=path.name)):
        logger.warning("Please create %s manually or run this command again to generate it.", path.name)
        return False

    create_from_example(path)
    logger.info("Generated %s from %s. Edit it to customize your database connections.", path, example)
    return True


async def finalize_session(
    log: SessionLog,
    settings: Settings,
    prompt: Prompt | None = None,
    now: datetime | None = None,
) -> Path | None:
    if not len(log) or settings.export_mode == "never":
        return None

    if settings.export_mode == "prompt":
        if prompt is None:
            if not sys.stdin.isatty():
                logger.info("stdin is not a terminal, skipping CSV export prompt")
                return None
            prompt = ask_stdin
        if not await prompt(EXPORT_QUESTION):
            return None

    path = settings.export_dir / default_export_filename(now or datetime.now())
    try:
        write_csv(to_rows(log), path)
    except OSError:
        logger.exception("Failed to export CSV", extra={"path": str(path)})
        return None

    logger.info("Session data exported to: %s", path)
    return path


async def run_session(settings: Settings, prompt: Prompt | None = None) -> int:
    try:
        if await offer_example_config(settings.targets_file, prompt) is False:
            return 0
        targets = load_targets(settings.targets_file)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 1

    if not targets:
        logger.warning("No database servers configured. Please add servers to %s", settings.targets_file)
        return 0

    stop = asyncio.Event()
    controller = ShutdownController(stop)
    controller.install(asyncio.get_running_loop())

    display = TerminalDisplay(clear_screen=settings.clear_screen)
    notifier = build_notifier(settings)
    scheduler = PollingScheduler(
        targets,
        prober=Prober(),
        on_cycle=display.render,
        alerts=notifier,
    )

    try:
        await scheduler.run(stop)
    finally:
        await scheduler.drain_alerts()
        if notifier is not None:
            await notifier.aclose()

    controller.finalizing = True
    await finalize_session(scheduler.log, settings, prompt=prompt)
    return 0


def main() -> None:
    logging.basicConfig(level=settings.log_level.upper())
    raise SystemExit(asyncio.run(run_session(settings)))


if __name__ == "__main__":
    main()
