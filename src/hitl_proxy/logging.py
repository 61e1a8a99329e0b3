"""Logging configuration for the HITL proxy with structlog.

stdout carries the MCP stdio transport, so every log line goes to stderr
(or to a JSON log file).
"""

import logging
import sys
import time
from pathlib import Path
from typing import Any

import structlog


def setup_logging(
    level: str | None = "INFO",
    log_file: Path | None = None,
    show_timestamps: bool = True,
) -> None:
    """Configure structlog for stderr and optional file output.

    With a log file, structlog and the stdlib loggers (including the mcp
    SDK's) share a single handle and both render JSON lines.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR), or None to use INFO
        log_file: Optional file path to write JSON logs
        show_timestamps: Include timestamps in console output
    """
    level = level or "INFO"
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
    ]
    if show_timestamps:
        shared_processors.append(structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False))

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    handlers.append(console_handler)

    file_handler: logging.FileHandler | None = None
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=[structlog.stdlib.add_logger_name, *shared_processors],
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.dict_tracebacks,
                    structlog.processors.JSONRenderer(),
                ],
            )
        )
        handlers.append(file_handler)

    # Configure root logger (also catches the mcp SDK's stdlib loggers);
    # force=True closes handlers left over from an earlier call
    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        format="%(message)s",
        force=True,
    )

    processors = list(shared_processors)

    if file_handler is not None:
        # File output: use JSON for parsing, written through the handler's stream
        processors.extend(
            [
                structlog.processors.dict_tracebacks,
                structlog.processors.JSONRenderer(),
            ]
        )
        logger_factory = structlog.WriteLoggerFactory(file=file_handler.stream)
    else:
        processors.extend(
            [
                structlog.dev.set_exc_info,
                structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
            ]
        )
        logger_factory = structlog.PrintLoggerFactory(file=sys.stderr)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger for a module.

    Args:
        name: Module name (e.g., "hitl_proxy.gateway")

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class AsyncTimer:
    """Async context manager for timing operations.

    Usage:
        async with AsyncTimer("downstream_call", logger) as timer:
            await connector.call_tool(name, args)
        print(f"Took {timer.elapsed:.3f}s")
    """

    def __init__(self, name: str, logger: Any | None = None):
        """Initialize async timer.

        Args:
            name: Operation name for logging
            logger: Logger instance (uses default if None)
        """
        self.name = name
        self.logger = logger or get_logger("timer")
        self.start_time: float = 0
        self.elapsed: float = 0

    async def __aenter__(self) -> "AsyncTimer":
        """Start timing."""
        self.start_time = time.perf_counter()
        self.logger.debug(f"Starting: {self.name}")
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Stop timing and log result."""
        self.elapsed = time.perf_counter() - self.start_time
        self.logger.debug(f"Completed: {self.name}", elapsed_s=f"{self.elapsed:.3f}")
