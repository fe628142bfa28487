"""Utility modules for Release Radar.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain exception hierarchy rooted at ReleaseRadarError;
  catalog failures are typed (rate limit, unauthorized, not found, ...) so
  callers pick a recovery without parsing message strings.
- **release_dates** -- Partial-precision release date parsing, recency
  window checks and newest-first ordering.
- **concurrency** -- asyncio semaphore throttling used to bound in-flight
  catalog requests within a batch.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import throttled_gather

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    BadRequestError,
    CatalogError,
    ConfigurationError,
    NetworkError,
    NotFoundError,
    ParseError,
    RateLimitError,
    ReleaseRadarError,
    RetrievalError,
    ServerError,
    UnauthorizedError,
)

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger, run_context

# -- Release date handling -------------------------------------------------
from src.utils.release_dates import (
    compare_newest_first,
    days_since_release,
    is_within,
    newest_first_key,
    parse_release_date,
    to_comparable_instant,
    try_parse_release_date,
)

__all__ = [
    "BadRequestError",
    "CatalogError",
    "ConfigurationError",
    "NetworkError",
    "NotFoundError",
    "ParseError",
    "RateLimitError",
    "ReleaseRadarError",
    "RetrievalError",
    "ServerError",
    "UnauthorizedError",
    "compare_newest_first",
    "configure_logging",
    "days_since_release",
    "get_logger",
    "is_within",
    "newest_first_key",
    "parse_release_date",
    "run_context",
    "throttled_gather",
    "to_comparable_instant",
    "try_parse_release_date",
]
