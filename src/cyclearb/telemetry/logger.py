"""
Queue-based logging setup.

Evaluation passes run on a worker thread and must never wait on console
or file I/O. Records go through a bounded queue to a listener thread;
when the queue is full a record is dropped and counted instead of
blocking the pass.
"""

import logging
import sys
from datetime import datetime
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from queue import Full, Queue

from cyclearb.config.constants import LOG_DATE_FORMAT, LOG_FORMAT, MAX_LOG_QUEUE_SIZE


# Third-party loggers held at WARNING
QUIET_LOGGERS = ("aiohttp", "asyncio")


class MicrosecondFormatter(logging.Formatter):
    """Formatter with microsecond precision timestamps."""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        ct = datetime.fromtimestamp(record.created)
        return f"{ct.strftime(datefmt or LOG_DATE_FORMAT)}.{ct.microsecond:06d}"


class DroppingQueueHandler(QueueHandler):
    """QueueHandler that drops records on a full queue instead of blocking."""

    def __init__(self, queue: Queue) -> None:
        super().__init__(queue)
        self.dropped = 0

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except Full:
            self.dropped += 1


class AsyncLogger:
    """
    Owns the log queue, its handler and the listener thread.

    Attach with start(), detach and flush with stop(). Usable as a
    context manager.
    """

    def __init__(
        self,
        name: str,
        level: int = logging.INFO,
        log_file: Path | None = None,
        max_queue_size: int = MAX_LOG_QUEUE_SIZE,
    ) -> None:
        """
        Initialize async logger.

        Args:
            name: Logger tree to attach to.
            level: Console level; the file (if any) always gets DEBUG.
            log_file: Optional file path for logging.
            max_queue_size: Records buffered before new ones are dropped.
        """
        self._level = level
        self._log_file = log_file
        self._queue: Queue[logging.LogRecord] = Queue(maxsize=max_queue_size)
        self._handler = DroppingQueueHandler(self._queue)
        self._listener: QueueListener | None = None
        self._logger = logging.getLogger(name)

    def _build_handlers(self) -> list[logging.Handler]:
        formatter = MicrosecondFormatter(LOG_FORMAT, LOG_DATE_FORMAT)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.setLevel(self._level)
        handlers: list[logging.Handler] = [console_handler]

        if self._log_file:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self._log_file, encoding="utf-8")
            file_handler.setFormatter(formatter)
            file_handler.setLevel(logging.DEBUG)
            handlers.append(file_handler)

        return handlers

    def start(self) -> None:
        """Start the listener thread and attach the queue handler."""
        if self._listener is not None:
            return

        self._listener = QueueListener(
            self._queue,
            *self._build_handlers(),
            respect_handler_level=True,
        )
        self._listener.start()

        self._logger.addHandler(self._handler)
        self._logger.setLevel(logging.DEBUG if self._log_file else self._level)

    def stop(self) -> None:
        """Detach the queue handler and flush pending records."""
        self._logger.removeHandler(self._handler)
        if self._listener:
            self._listener.stop()
            self._listener = None

        if self._handler.dropped:
            print(f"Logging dropped {self._handler.dropped} records", file=sys.stderr)

    @property
    def logger(self) -> logging.Logger:
        """Get the underlying logger."""
        return self._logger

    @property
    def is_running(self) -> bool:
        """Check if the listener thread is active."""
        return self._listener is not None

    @property
    def dropped(self) -> int:
        """Records dropped because the queue was full."""
        return self._handler.dropped

    def __enter__(self) -> "AsyncLogger":
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
) -> AsyncLogger:
    """
    Route the ``cyclearb`` logger tree through a background listener.

    Existing root handlers are removed so records are not written twice.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional log file path.

    Returns:
        Started AsyncLogger; call stop() on exit to flush.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    async_logger = AsyncLogger(name="cyclearb", level=numeric_level, log_file=log_file)
    async_logger.start()
    return async_logger
