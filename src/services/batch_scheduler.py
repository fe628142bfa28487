"""Batched, rate-limit-aware release retrieval across many artists.

Artists are split into fixed-size batches that run strictly one after
another; inside a batch up to ``concurrency_within_batch`` retrievals are
in flight, each staggered by a small per-artist delay.  A longer delay
separates batches.

Failure policy per artist:

* ``RateLimitError``: the whole batch pauses for the reported
  ``retry_after_seconds`` (no artist in the batch starts a request while
  the gate is closed), then that artist is retried exactly once.
* ``ServerError`` / ``NetworkError``: one retry after the per-artist delay.
* ``BadRequestError`` and anything else from the catalog: failed, no retry.
* ``UnauthorizedError``: fatal.  No further artist starts and the error is
  re-raised once in-flight retrievals finish.

A failed artist is recorded in the run summary and never aborts the run,
unless every attempted artist failed, in which case
:class:`~src.utils.errors.RetrievalError` is raised.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from src.models.catalog import Artist, RawRelease
from src.models.run import (
    BatchRunResult,
    RetrievalOutcome,
    RunPhase,
    RunProgress,
    RunSummary,
)
from src.services.release_retriever import ReleaseRetriever
from src.utils.concurrency import throttled_gather
from src.utils.errors import (
    CatalogError,
    NetworkError,
    RateLimitError,
    RetrievalError,
    ServerError,
    UnauthorizedError,
)
from src.utils.logging import get_logger

if TYPE_CHECKING:
    # The pipeline package imports this module; only the type is needed here.
    from src.pipeline.progress_tracker import ProgressTracker

SleepFn = Callable[[float], Awaitable[None]]

DEFAULT_BATCH_SIZE = 10
DEFAULT_ARTIST_DELAY_MS = 100
DEFAULT_INTER_BATCH_DELAY_MS = 200
DEFAULT_WINDOW_DAYS = 10


class _BatchGate:
    """Pauses every artist of a batch while any of them waits out a 429."""

    def __init__(self, sleep: SleepFn) -> None:
        self._sleep = sleep
        self._open = asyncio.Event()
        self._open.set()
        self._pauses = 0

    async def wait(self) -> None:
        await self._open.wait()

    async def pause(self, seconds: float) -> None:
        self._pauses += 1
        self._open.clear()
        try:
            await self._sleep(seconds)
        finally:
            self._pauses -= 1
            if self._pauses == 0:
                self._open.set()


class BatchScheduler:
    """Runs :class:`ReleaseRetriever` over a list of artists.

    Parameters
    ----------
    retriever:
        Per-artist retriever.
    batch_size:
        Artists per batch.
    concurrency_within_batch:
        Retrievals in flight inside one batch (``1`` = sequential).
    artist_delay_ms:
        Stagger before each artist except the first of a batch; also the
        wait before a server/network retry.
    inter_batch_delay_ms:
        Pause between batches.
    window_days:
        Recency window handed to the retriever.
    use_optimized_search:
        Use the search strategy instead of the paginated scan.
    progress_tracker:
        Optional observer notified after every artist.
    sleep:
        Awaitable sleep, injectable so tests do not wait.
    """

    def __init__(
        self,
        retriever: ReleaseRetriever,
        batch_size: int = DEFAULT_BATCH_SIZE,
        concurrency_within_batch: int = 1,
        artist_delay_ms: int = DEFAULT_ARTIST_DELAY_MS,
        inter_batch_delay_ms: int = DEFAULT_INTER_BATCH_DELAY_MS,
        window_days: int = DEFAULT_WINDOW_DAYS,
        use_optimized_search: bool = False,
        progress_tracker: ProgressTracker | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if concurrency_within_batch < 1:
            raise ValueError("concurrency_within_batch must be at least 1")
        self._retriever = retriever
        self._batch_size = batch_size
        self._concurrency = concurrency_within_batch
        self._artist_delay = artist_delay_ms / 1000.0
        self._inter_batch_delay = inter_batch_delay_ms / 1000.0
        self._window_days = window_days
        self._use_optimized_search = use_optimized_search
        self._progress_tracker = progress_tracker
        self._sleep = sleep
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def window_days(self) -> int:
        return self._window_days

    @property
    def use_optimized_search(self) -> bool:
        return self._use_optimized_search

    def with_options(
        self,
        window_days: int | None = None,
        use_optimized_search: bool | None = None,
    ) -> BatchScheduler:
        """Return a scheduler with the given per-run overrides applied.

        ``None`` keeps the current value; with no overrides ``self`` is
        returned.
        """
        if window_days is None and use_optimized_search is None:
            return self
        return BatchScheduler(
            retriever=self._retriever,
            batch_size=self._batch_size,
            concurrency_within_batch=self._concurrency,
            artist_delay_ms=round(self._artist_delay * 1000),
            inter_batch_delay_ms=round(self._inter_batch_delay * 1000),
            window_days=self._window_days if window_days is None else window_days,
            use_optimized_search=(
                self._use_optimized_search
                if use_optimized_search is None
                else use_optimized_search
            ),
            progress_tracker=self._progress_tracker,
            sleep=self._sleep,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        artists: Sequence[Artist],
        concurrency_within_batch: int | None = None,
        inter_batch_delay_ms: int | None = None,
        cancel_event: asyncio.Event | None = None,
        now: datetime | None = None,
        run_id: str = "",
    ) -> BatchRunResult:
        """Retrieve releases for every artist, batch by batch.

        Parameters
        ----------
        artists:
            Artists to process, in the order batches are formed.
        concurrency_within_batch, inter_batch_delay_ms:
            Per-run overrides of the constructor values.
        cancel_event:
            Once set, no new batch or artist starts; in-flight retrievals
            finish and the result is marked ``cancelled``.
        now:
            Reference instant for the recency window, fixed for the run.
        run_id:
            Key for progress updates.

        Returns
        -------
        BatchRunResult
            Union of releases from successful artists plus per-artist
            outcomes and the run summary.

        Raises
        ------
        UnauthorizedError
            The token was rejected; the run stops.
        RetrievalError
            At least one artist was attempted and none succeeded.
        """
        if not artists:
            return BatchRunResult()

        concurrency = concurrency_within_batch or self._concurrency
        if concurrency < 1:
            raise ValueError("concurrency_within_batch must be at least 1")
        inter_batch_delay = (
            inter_batch_delay_ms / 1000.0
            if inter_batch_delay_ms is not None
            else self._inter_batch_delay
        )
        if now is None:
            now = datetime.now(tz=timezone.utc)  # noqa: UP017

        state = _RunState(total=len(artists))
        batches = [
            list(artists[i : i + self._batch_size])
            for i in range(0, len(artists), self._batch_size)
        ]

        self._logger.info(
            "batch_run_started",
            run_id=run_id,
            total_artists=len(artists),
            batches=len(batches),
            batch_size=self._batch_size,
            concurrency=concurrency,
            strategy="search" if self._use_optimized_search else "scan",
        )

        outcomes: list[RetrievalOutcome] = []
        cancelled = False

        for batch_index, batch in enumerate(batches):
            if _is_set(cancel_event):
                cancelled = True
                break
            if batch_index > 0 and inter_batch_delay > 0:
                await self._sleep(inter_batch_delay)
                if _is_set(cancel_event):
                    cancelled = True
                    break

            gate = _BatchGate(self._sleep)
            results = await throttled_gather(
                [
                    self._process_artist(artist, position, gate, state, cancel_event, now, run_id)
                    for position, artist in enumerate(batch)
                ],
                limit=concurrency,
            )

            for result in results:
                if isinstance(result, BaseException):
                    raise result
                if result is not None:
                    outcomes.append(result)

            self._logger.debug(
                "batch_complete",
                run_id=run_id,
                batch=batch_index + 1,
                batches=len(batches),
                artists_processed=state.processed,
            )

            if state.unauthorized is not None:
                raise state.unauthorized

        if _is_set(cancel_event):
            cancelled = True

        return self._build_result(outcomes, len(artists), cancelled, run_id)

    # ------------------------------------------------------------------
    # Per-artist processing
    # ------------------------------------------------------------------

    async def _process_artist(
        self,
        artist: Artist,
        position: int,
        gate: _BatchGate,
        state: _RunState,
        cancel_event: asyncio.Event | None,
        now: datetime,
        run_id: str,
    ) -> RetrievalOutcome | None:
        """Retrieve one artist; ``None`` means it was skipped."""
        if state.unauthorized is not None or _is_set(cancel_event):
            return None
        if position > 0 and self._artist_delay > 0:
            await self._sleep(self._artist_delay)
        await gate.wait()
        if state.unauthorized is not None or _is_set(cancel_event):
            return None

        try:
            outcome = await self._retrieve_with_retry(artist, gate, now)
        except UnauthorizedError as exc:
            if state.unauthorized is None:
                state.unauthorized = exc
            self._logger.error("batch_unauthorized", run_id=run_id, artist_id=artist.id)
            return None

        state.processed += 1
        state.releases_found += len(outcome.releases)
        await self._report_progress(state, run_id, artist)
        return outcome

    async def _retrieve_with_retry(
        self, artist: Artist, gate: _BatchGate, now: datetime
    ) -> RetrievalOutcome:
        try:
            releases = await self._fetch(artist, now)
            return self._success(artist, releases, attempts=1)
        except UnauthorizedError:
            raise
        except RateLimitError as exc:
            self._logger.warning(
                "batch_rate_limited",
                artist_id=artist.id,
                retry_after_seconds=exc.retry_after_seconds,
            )
            await gate.pause(exc.retry_after_seconds)
            # Another artist's pause may still hold the gate closed.
            await gate.wait()
        except (ServerError, NetworkError) as exc:
            self._logger.warning(
                "artist_retrieval_retrying",
                artist_id=artist.id,
                error_kind=exc.kind.value,
                error=str(exc),
            )
            if self._artist_delay > 0:
                await self._sleep(self._artist_delay)
            await gate.wait()
        except CatalogError as exc:
            return self._failure(artist, exc, attempts=1)

        try:
            releases = await self._fetch(artist, now)
        except UnauthorizedError:
            raise
        except CatalogError as exc:
            return self._failure(artist, exc, attempts=2)
        return self._success(artist, releases, attempts=2)

    async def _fetch(self, artist: Artist, now: datetime) -> list[RawRelease]:
        return await self._retriever.fetch_for_artist(
            artist,
            self._window_days,
            use_optimized_search=self._use_optimized_search,
            now=now,
        )

    def _success(
        self, artist: Artist, releases: list[RawRelease], attempts: int
    ) -> RetrievalOutcome:
        return RetrievalOutcome(
            artist_id=artist.id,
            artist_name=artist.name,
            releases=releases,
            attempts=attempts,
        )

    def _failure(self, artist: Artist, exc: CatalogError, attempts: int) -> RetrievalOutcome:
        self._logger.warning(
            "artist_retrieval_failed",
            artist_id=artist.id,
            artist_name=artist.name,
            error_kind=exc.kind.value,
            attempts=attempts,
            error=str(exc),
        )
        return RetrievalOutcome(
            artist_id=artist.id,
            artist_name=artist.name,
            error=exc.kind,
            attempts=attempts,
        )

    async def _report_progress(self, state: _RunState, run_id: str, artist: Artist) -> None:
        if self._progress_tracker is None:
            return
        await self._progress_tracker.update(
            run_id,
            RunProgress(
                phase=RunPhase.RETRIEVE_RELEASES,
                artists_processed=state.processed,
                total_artists=state.total,
                releases_found=state.releases_found,
                message=f"Checked {artist.name}",
            ),
        )

    # ------------------------------------------------------------------
    # Result
    # ------------------------------------------------------------------

    def _build_result(
        self,
        outcomes: list[RetrievalOutcome],
        total_artists: int,
        cancelled: bool,
        run_id: str,
    ) -> BatchRunResult:
        releases = [r for o in outcomes if o.succeeded for r in o.releases]
        failed_ids = [o.artist_id for o in outcomes if not o.succeeded]
        succeeded = len(outcomes) - len(failed_ids)

        summary = RunSummary(
            total_artists=total_artists,
            succeeded_artists=succeeded,
            failed_artist_ids=failed_ids,
            total_releases_found=len(releases),
            cancelled=cancelled,
        )
        self._logger.info(
            "batch_run_complete",
            run_id=run_id,
            total_artists=total_artists,
            attempted=len(outcomes),
            succeeded=succeeded,
            failed=len(failed_ids),
            releases_found=len(releases),
            cancelled=cancelled,
        )

        if outcomes and succeeded == 0:
            raise RetrievalError(
                message=f"All {len(outcomes)} attempted artists failed",
                failed_artist_ids=failed_ids,
            )
        return BatchRunResult(releases=releases, outcomes=outcomes, summary=summary)


class _RunState:
    """Counters shared by the artist tasks of one run (single event loop)."""

    def __init__(self, total: int) -> None:
        self.total = total
        self.processed = 0
        self.releases_found = 0
        self.unauthorized: UnauthorizedError | None = None


def _is_set(event: asyncio.Event | None) -> bool:
    return event is not None and event.is_set()
