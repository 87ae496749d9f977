# src/kidscalendar/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState and FamilyService, then runs:
- sign-in (profile, one-time migration, first re-fetch, realtime) when a session is configured,
- the task poller (alarms) as a background asyncio task,
- the console REPL (optional).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import create_initial_state, create_service, session_user
from ..config import get_settings
from ..connectors.console_connector import ConsoleNotifier, ConsoleReporter, run_console_loop
from ..errors import RemoteError
from ..logging_setup import setup_logging
from ..tasks.task_scheduler import run_task_poller

logger = logging.getLogger(__name__)


async def _run(settings) -> None:
    state = create_initial_state(settings=settings)
    service, bundle = create_service(state, reporter=ConsoleReporter())

    user = session_user(settings)
    if user is not None and service.reconciler is not None:
        try:
            await service.sign_in(user)
        except RemoteError:
            logger.exception("Sign-in failed; continuing with cached data.")

    poller = asyncio.create_task(
        run_task_poller(state, ConsoleNotifier(), interval_seconds=settings.scheduler_tick_s),
        name="task-poller",
    )

    try:
        if settings.console_enabled:
            await run_console_loop(service)
        else:
            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                # Some platforms do not support signal handlers in the loop.
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.add_signal_handler(sig, stop.set)
            logger.info("Console disabled. Running poller and sync only. Press Ctrl+C to stop.")
            await stop.wait()
    finally:
        poller.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await poller
        if service.realtime is not None:
            await service.realtime.stop()
        await service.drain()
        state.persist()
        await bundle.aclose()


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/kidscalendar")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "kidscalendar"))
    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
