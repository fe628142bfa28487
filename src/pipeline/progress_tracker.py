"""Run progress tracking with callback-based listener notification.

Tracks the latest :class:`RunProgress` snapshot for each run and broadcasts
updates to registered listener callbacks.  Listeners are keyed by run ID so
several runs can share one tracker without cross-talk.

    Scheduler ──update()──→ ProgressTracker ──callback()──→ CLI progress line
                                            ──→ (any other listener)

Progress is an observability hook only: a listener that raises is logged
and skipped, and nothing in the engine reads the tracker back.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from src.models.run import RunProgress
from src.utils.logging import get_logger


class ProgressTracker:
    """Stores and broadcasts per-run progress snapshots.

    Listeners are called as ``callback(run_id, progress)`` and may be plain
    functions or coroutine functions.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, RunProgress] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(self, run_id: str, progress: RunProgress) -> None:
        """Record *progress* for *run_id* and notify its listeners."""
        self._statuses[run_id] = progress

        self._logger.debug(
            "progress_update",
            run_id=run_id,
            phase=progress.phase.value,
            artists_processed=progress.artists_processed,
            total_artists=progress.total_artists,
            releases_found=progress.releases_found,
            message=progress.message,
        )

        await self._notify_listeners(run_id, progress)

    def register_listener(self, run_id: str, callback: Callable) -> None:
        """Register *callback* to receive updates for *run_id*."""
        if run_id not in self._listeners:
            self._listeners[run_id] = []

        if callback not in self._listeners[run_id]:
            self._listeners[run_id].append(callback)
            self._logger.debug(
                "listener_registered",
                run_id=run_id,
                total_listeners=len(self._listeners[run_id]),
            )

    def unregister_listener(self, run_id: str, callback: Callable) -> None:
        """Remove a previously registered callback for *run_id*."""
        listeners = self._listeners.get(run_id, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered",
                run_id=run_id,
                remaining_listeners=len(listeners),
            )

    def get_status(self, run_id: str) -> RunProgress:
        """Return the latest snapshot for *run_id* (zeroed if never updated)."""
        return self._statuses.get(run_id, RunProgress())

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(self, run_id: str, progress: RunProgress) -> None:
        listeners = self._listeners.get(run_id, [])
        if not listeners:
            return

        for callback in list(listeners):
            try:
                result = callback(run_id, progress)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    run_id=run_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
