# src/kidscalendar/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Background loggers that only reach the console at WARNING+.
_QUIET_PREFIXES: tuple[str, ...] = (
    "kidscalendar.tasks.task_scheduler",
    "kidscalendar.sync.realtime",
)

# Third-party loggers capped in every handler.
_CHATTY_LIBS: tuple[str, ...] = ("httpx", "httpcore", "asyncio")

_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the REPL readable while the poller and sync run underneath it.

    App records pass, except the quiet background loggers below WARNING.
    Everything else (captured py.warnings, HTTP client chatter) needs ERROR+.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not record.name.startswith("kidscalendar."):
            return record.levelno >= logging.ERROR
        if record.name.startswith(_QUIET_PREFIXES):
            return record.levelno >= logging.WARNING
        return True


class _SyncOnlyFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.startswith("kidscalendar.sync.")


def _file_handler(path: Path, level: int, fmt: logging.Formatter) -> logging.Handler:
    handler = logging.FileHandler(str(path), encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(fmt)
    return handler


def setup_logging(
    *,
    log_dir: str | Path = ".local/kidscalendar",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Install three handlers on the root logger:

    - stderr, filtered for interactive use,
    - kidscalendar.log with every record at file_level,
    - sync.log with only the reconciler/realtime/migration records, for
      reading a sync session without the rest of the app in between.

    Call once, before the first log line. Calling again replaces the handlers.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    root.addHandler(_file_handler(log_dir / "kidscalendar.log", file_level, fmt))

    sync_handler = _file_handler(log_dir / "sync.log", logging.DEBUG, fmt)
    sync_handler.addFilter(_SyncOnlyFilter())
    root.addHandler(sync_handler)

    logging.captureWarnings(True)

    for lib in _CHATTY_LIBS:
        logging.getLogger(lib).setLevel(logging.WARNING)
