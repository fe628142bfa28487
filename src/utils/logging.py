"""structlog configuration for Release Radar.

Every log line goes through one processor chain and ends in either a
console renderer (interactive runs) or a JSON renderer
(``APP_ENV=production``, selected by the CLI).  Records from the standard
``logging`` module, which is what httpx writes to, are routed through the
same chain so request logs and ours share a format and a stream.

Logs never go to stdout: stdout belongs to the report, so the default
target is stderr.

Per-run fields are bound with :func:`run_context`::

    with run_context("nightly-42", window_days=10):
        await pipeline.run(...)

Every line logged inside the block, from any module or task started
inside it, carries ``run_id="nightly-42"``.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog

# Chatty below WARNING: one INFO line per HTTP request.
_QUIET_LIBRARIES = ("httpx", "httpcore")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _select_renderer(json_output: bool, target: TextIO) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    isatty = getattr(target, "isatty", None)
    return structlog.dev.ConsoleRenderer(colors=bool(isatty and isatty()))


def _route_stdlib_logging(
    target: TextIO,
    processors: list[structlog.types.Processor],
    level: str,
) -> None:
    """Send standard-library records through *processors* to *target*."""
    handler = logging.StreamHandler(target)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *processors],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    library_level = logging.NOTSET if level == "DEBUG" else logging.WARNING
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(library_level)


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog and the standard ``logging`` bridge.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.  HTTP client
            request logs only show at DEBUG.
        json_output: Render one JSON object per line instead of console text.
        stream: Destination for every log line.  Defaults to stderr.
    """
    level = log_level.upper()
    target = stream if stream is not None else sys.stderr
    renderer = _select_renderer(json_output, target)
    processors = [*_shared_processors(), renderer]

    structlog.configure(
        processors=processors,
        # Drops messages below the level before any processor runs.
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=target),
        cache_logger_on_first_use=True,
    )
    _route_stdlib_logging(target, processors, level)


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a logger bound with ``logger_name=name``.

    Configures logging with defaults if nothing has configured it yet.
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


@contextmanager
def run_context(run_id: str, **fields: Any) -> Iterator[None]:
    """Bind ``run_id`` and *fields* to every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(run_id=run_id, **fields):
        yield
