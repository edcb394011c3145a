"""Logging setup.

structlog renders every event to a single line and hands it to the standard
library logger, whose only handler is a ``QueueHandler``. A ``QueueListener``
thread does the actual writing (stderr, or a rotating file when
``logging.log_directory`` is set), so request handlers never block on disk.

``LogPipeline.flush`` stops the listener, which drains every queued record,
and is the last thing that happens before the process exits.
"""

from __future__ import annotations

import asyncio
import logging
import logging.handlers
import os
import queue
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from cognicity.config import Settings


class LogPipeline:
    """Owns the background log writer."""

    def __init__(self, listener: logging.handlers.QueueListener) -> None:
        self._listener = listener
        self._stopped = False

    def _stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._listener.stop()
        for handler in self._listener.handlers:
            handler.flush()

    async def flush(self, timeout: float) -> bool:
        """Write out every pending record. Returns False if ``timeout`` ran out first."""
        try:
            await asyncio.wait_for(asyncio.to_thread(self._stop), timeout=timeout)
        except TimeoutError:
            return False
        return True


def _build_handler(settings: Settings) -> logging.Handler:
    log_settings = settings.logging
    if log_settings.log_directory is None:
        return logging.StreamHandler(sys.stderr)

    log_dir = Path(log_settings.log_directory).expanduser()
    if not os.access(log_dir, os.W_OK):
        raise PermissionError(f"Log directory '{log_dir}' cannot be written to")
    return logging.handlers.RotatingFileHandler(
        log_dir / f"{log_settings.instance}.log",
        maxBytes=log_settings.max_file_size,
        backupCount=log_settings.max_files,
        encoding="utf-8",
    )


def setup_logging(settings: Settings) -> LogPipeline:
    """Configure structlog and start the log writer. Called once at startup."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    handler = _build_handler(settings)
    handler.setFormatter(logging.Formatter("%(message)s"))

    records: queue.SimpleQueue[logging.LogRecord] = queue.SimpleQueue()
    listener = logging.handlers.QueueListener(records, handler)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(logging.handlers.QueueHandler(records))
    root.setLevel(log_level)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer(colors=False)]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    listener.start()
    return LogPipeline(listener)
