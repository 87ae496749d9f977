# src/kidscalendar/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.service import FamilyService

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleNotifier:
    """Notifier port for the console: alarms are printed with a bell."""

    async def notify(self, *, title: str, body: str) -> None:
        bell = "\a" if sys.stdout.isatty() else ""
        _print_ts(f"{bell}[ALARM] {title} - {body}")


class ConsoleReporter:
    """StatusReporter port for the console: one line per status change."""

    def report(self, kind: str, message: str) -> None:
        _print_ts(f"[{kind.upper()}] {message}")


async def run_console_loop(service: FamilyService) -> None:
    logger.info("Console connector started (online=%s).", service.online)
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    while True:
        try:
            user_input = (await asyncio.to_thread(input, ">>> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            reply = await command_registry.handle(service, user_input, emit=_print_ts)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is None:
            _print_ts("Commands start with '/'. Use /help.")
            continue
        _print_ts(reply)

    logger.info("Console connector finished.")
