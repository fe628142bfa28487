"""Standalone CLI for checking new releases from your artists.

Usage::

    python -m src.cli.new_releases
    python -m src.cli.new_releases --days 30 --limit 20
    python -m src.cli.new_releases --search-optimized --json

Reads ``SPOTIFY_ACCESS_TOKEN`` (and every other setting) from the
environment or ``.env``.  Results go to stdout; logs and progress go to
stderr.  Ctrl-C stops starting new artists and prints what was found so
far.

Exit codes: 0 on success (including a cancelled run), 1 on a fatal error
(missing token, rejected token, every artist failing).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys

from src.config.settings import Settings
from src.models.run import RunPhase, RunProgress
from src.utils.errors import (
    CatalogError,
    ConfigurationError,
    RetrievalError,
    UnauthorizedError,
)
from src.utils.logging import configure_logging

_REAUTH_HINT = "Please re-authenticate with Spotify and export a fresh SPOTIFY_ACCESS_TOKEN."


def _print_progress(run_id: str, progress: RunProgress) -> None:
    """Single overwritten status line on stderr."""
    if progress.phase == RunPhase.RETRIEVE_RELEASES and progress.total_artists:
        line = (
            f"Checking artists: {progress.artists_processed}/{progress.total_artists}"
            f"  ({progress.releases_found} candidate releases)"
        )
    else:
        line = progress.message
    end = "\n" if progress.phase == RunPhase.COMPLETE else ""
    print(f"\r\033[K{line}", end=end, file=sys.stderr, flush=True)


def _install_interrupt_handler(cancel_event: asyncio.Event) -> bool:
    """Make SIGINT set *cancel_event* instead of raising KeyboardInterrupt."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        # Not supported on this platform's event loop; Ctrl-C aborts instead.
        return False
    return True


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    """Run the release check and print its output.  Returns the exit code."""
    # Deferred so logging is configured before any module binds a logger.
    from src.main import run_release_check
    from src.services.output_formatter import OutputFormatter

    window_days = args.days if args.days is not None else settings.recency_window_days
    cancel_event = asyncio.Event()
    handler_installed = _install_interrupt_handler(cancel_event)
    show_progress = not (args.quiet or args.json_output)

    try:
        report = await run_release_check(
            settings,
            window_days=window_days,
            use_optimized_search=True if args.search_optimized else None,
            cancel_event=cancel_event,
            progress_listener=_print_progress if show_progress else None,
        )
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except UnauthorizedError as exc:
        print(f"Error: {exc}\n{_REAUTH_HINT}", file=sys.stderr)
        return 1
    except RetrievalError as exc:
        print(
            f"Error: {exc} ({len(exc.failed_artist_ids)} artists failed)",
            file=sys.stderr,
        )
        return 1
    except CatalogError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        if handler_installed:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)

    formatter = OutputFormatter()
    if args.json_output:
        print(json.dumps(formatter.format_report(report, window_days, args.limit), indent=2))
    else:
        print(formatter.format_text(report, window_days, args.limit))
    return 0


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the new-releases CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.new_releases",
        description=(
            "List new albums and EPs from the artists you follow, like, "
            "or have saved albums from."
        ),
    )
    parser.add_argument(
        "--days",
        type=_non_negative_int,
        default=None,
        help="Recency window in days (default: RECENCY_WINDOW_DAYS, 10).",
    )
    parser.add_argument(
        "--search-optimized",
        action="store_true",
        help="Use the search-based strategy (fewer requests, less reliable).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output results as JSON instead of formatted text.",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only log warnings and errors, and hide the progress line.",
    )
    parser.add_argument(
        "--limit",
        type=_positive_int,
        default=None,
        help="Show at most this many releases.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.  Returns the process exit code."""
    args = build_parser().parse_args(argv)
    settings = Settings()

    quiet = args.quiet or args.json_output
    configure_logging(
        log_level="WARNING" if quiet else settings.log_level,
        json_output=settings.app_env == "production",
        stream=sys.stderr,
    )

    return asyncio.run(_run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
