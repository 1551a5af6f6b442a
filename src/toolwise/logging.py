"""structlog setup shared by the engine and the CLI."""

import logging
import sys
import time
from pathlib import Path
from typing import Any

import structlog

# Stamped onto each event before rendering
_PRE_CHAIN: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
]


def _formatter(renderer: Any, stamper: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_PRE_CHAIN,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            stamper,
            renderer,
        ],
    )


def setup_logging(
    level: str | None = "INFO",
    log_file: Path | None = None,
    colors: bool = True,
) -> None:
    """Route structlog through stdlib logging.

    The console on stderr gets short, human-readable lines. With ``log_file``
    the same events are also appended there as JSON lines, so learning runs
    can be analysed afterwards.

    Args:
        level: Log level name, or None for INFO
        log_file: Optional JSON-lines log file
        colors: Colorize console output
    """
    log_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(
        _formatter(
            structlog.dev.ConsoleRenderer(colors=colors),
            structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
        )
    )
    handlers: list[logging.Handler] = [console]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        json_file = logging.FileHandler(log_file)
        json_file.setFormatter(
            _formatter(
                structlog.processors.JSONRenderer(),
                structlog.processors.TimeStamper(fmt="iso"),
            )
        )
        handlers.append(json_file)

    for handler in handlers:
        handler.setLevel(log_level)
    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    structlog.configure(
        processors=[
            *_PRE_CHAIN,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Logger named after its module, e.g. ``toolwise.learning.recorder``."""
    return structlog.get_logger(name)


class AsyncTimer:
    """Measure an awaited block and log its duration at debug.

    Usage:
        async with AsyncTimer("tool.run(echo)", logger) as timer:
            await tool.run(arguments)
        latency_ms = timer.elapsed_ms
    """

    def __init__(self, name: str, logger: Any | None = None):
        self.name = name
        self.logger = logger or get_logger("toolwise.timer")
        self.start_time: float = 0
        self.elapsed: float = 0

    @property
    def elapsed_ms(self) -> int:
        """Elapsed time in whole milliseconds."""
        return int(self.elapsed * 1000)

    async def __aenter__(self) -> "AsyncTimer":
        self.start_time = time.perf_counter()
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.elapsed = time.perf_counter() - self.start_time
        self.logger.debug("Timed operation", operation=self.name, elapsed_ms=self.elapsed_ms)
