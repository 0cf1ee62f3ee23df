# src/task_companion/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs connectors on one event loop:
- console REPL (optional),
- Matrix connector (optional).

The daily notifier runs with the Matrix connector when it is enabled,
otherwise it prints to the console.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import ConsoleMessenger, ConsoleTransport, run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..tasks.task_scheduler import run_daily_notifier

logger = logging.getLogger(__name__)


def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        state.store.commit()
    except Exception:
        logger.exception("Failed to save data on shutdown.")


async def _cancel_all(tasks: list[asyncio.Task]) -> None:
    for t in tasks:
        t.cancel()
    results = await asyncio.gather(*tasks, return_exceptions=True)
    for t, result in zip(tasks, results):
        if isinstance(result, Exception):
            logger.error("Task %s ended with an error", t.get_name(), exc_info=result)


async def _run(state: AppState) -> None:
    settings = state.settings
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform (e.g. Windows).
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop_event.set)

    primary: list[asyncio.Task] = []
    helpers: list[asyncio.Task] = []

    if settings.matrix_enabled:
        from ..connectors.matrix_connector import run_matrix_connector

        primary.append(
            asyncio.create_task(
                run_matrix_connector(state, stop_event, start_notifier=True),
                name="matrix-connector",
            )
        )

    if settings.console_enabled:
        transport = ConsoleTransport()
        messenger = ConsoleMessenger()
        primary.append(asyncio.create_task(run_console_loop(state, transport, messenger), name="console"))

        if not settings.matrix_enabled:
            helpers.append(
                asyncio.create_task(
                    run_daily_notifier(
                        state.store,
                        messenger,
                        now=state.now,
                        notify_hour=settings.notify_hour,
                        backup_enabled=settings.backup_enabled,
                    ),
                    name="daily-notifier",
                )
            )

    if not primary:
        logger.error("No connector enabled (set TASKS_CONSOLE_ENABLED or TASKS_MATRIX_ENABLED).")
        return

    if not settings.console_enabled:
        logger.info("Console disabled. Running background connectors only. Press Ctrl+C to stop.")

    stopper = asyncio.create_task(stop_event.wait(), name="stop-event")
    try:
        await asyncio.wait([stopper, *primary], return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop_event.set()
        pending = [t for t in (*primary, *helpers, stopper) if not t.done()]
        if state.panel_listener is not None:
            pending.append(state.panel_listener)
        pending.extend(state.background)
        await _cancel_all(pending)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    log_file = setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s... (log file: %s)", settings.app_name, log_file)

    state = create_initial_state(settings=settings)

    try:
        asyncio.run(_run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
