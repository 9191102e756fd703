# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
"""Structured logging configuration for the histogramming consumer."""

import logging
import sys
from logging.handlers import RotatingFileHandler

import structlog


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level '{level}'")
    return resolved


def configure_logging(
    *,
    level: int | str = logging.INFO,
    json_file: str | None = None,
    disable_stdout: bool = False,
) -> None:
    """
    Configure structlog on top of the standard library logging.

    Parameters
    ----------
    level:
        The minimum log level to output, as number or name such as ``'DEBUG'``.
    json_file:
        Path to write JSON-formatted logs to. If provided, creates a rotating
        file handler (10MB max, 5 backups).
    disable_stdout:
        If True, disable logging to stdout.
    """
    shared_processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = []
    if not disable_stdout:
        handlers.append(
            _make_handler(
                logging.StreamHandler(sys.stdout),
                structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
                shared_processors,
            )
        )
    if json_file is not None:
        handlers.append(
            _make_handler(
                RotatingFileHandler(
                    json_file, maxBytes=10 * 1024 * 1024, backupCount=5
                ),
                structlog.processors.JSONRenderer(),
                shared_processors,
                structlog.processors.format_exc_info,
            )
        )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(_resolve_level(level))


def _make_handler(
    handler: logging.Handler,
    renderer: structlog.typing.Processor,
    shared_processors: list[structlog.typing.Processor],
    *extra: structlog.typing.Processor,
) -> logging.Handler:
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *extra,
                renderer,
            ],
        )
    )
    return handler
