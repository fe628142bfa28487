"""Central orchestrator for a release check.

Coordinates source collection, artist merging, batched release retrieval
and classification.  Each phase broadcasts progress through the injected
:class:`ProgressTracker`; the result of a run is one frozen
:class:`ReleaseReport`.

    collect sources ─→ merge artists ─→ retrieve (batched) ─→ classify ─→ report

Failure handling follows the retrieval layer: artist-scoped errors end up
in ``report.summary.failed_artist_ids``, while ``UnauthorizedError`` and a
total retrieval failure propagate to the caller.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime, timezone
from uuid import uuid4

import structlog

from src.models.catalog import Artist
from src.models.run import MergeReport, ReleaseReport, RunPhase, RunProgress
from src.pipeline.progress_tracker import ProgressTracker
from src.services.artist_merger import ArtistMerger
from src.services.artist_sources import ArtistSourceCollector
from src.services.batch_scheduler import BatchScheduler
from src.services.release_classifier import ReleaseClassifier
from src.utils.errors import ReleaseRadarError
from src.utils.logging import get_logger

# Artists shown next to the listing.
_SAMPLE_SIZE = 8


class ReleaseAggregationPipeline:
    """Runs one release check end to end.

    All collaborators are injected; the pipeline never builds them.
    The scheduler carries the recency window and strategy it was built
    with; ``run`` can override both per call.
    """

    def __init__(
        self,
        collector: ArtistSourceCollector,
        merger: ArtistMerger,
        scheduler: BatchScheduler,
        classifier: ReleaseClassifier,
        progress_tracker: ProgressTracker,
    ) -> None:
        self._collector = collector
        self._merger = merger
        self._scheduler = scheduler
        self._classifier = classifier
        self._progress_tracker = progress_tracker
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def progress_tracker(self) -> ProgressTracker:
        return self._progress_tracker

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run(
        self,
        window_days: int | None = None,
        use_optimized_search: bool | None = None,
        cancel_event: asyncio.Event | None = None,
        now: datetime | None = None,
        run_id: str | None = None,
    ) -> ReleaseReport:
        """Collect the user's artists and return their recent albums and EPs.

        Parameters
        ----------
        window_days:
            Recency window override.
        use_optimized_search:
            Strategy override.
        cancel_event:
            Set it to stop starting new artists; the report then covers the
            artists processed so far.
        now:
            Reference instant, fixed for the whole run.
        run_id:
            Progress key; a random one is generated when omitted.

        Raises
        ------
        ConfigurationError
            The catalog gateway has no credentials.
        UnauthorizedError
            The catalog rejected the token.
        RetrievalError
            No artist could be retrieved.
        CatalogError
            Every artist source failed.
        """
        run_id = run_id or str(uuid4())
        now = now or datetime.now(tz=timezone.utc)  # noqa: UP017

        await self._progress(run_id, RunPhase.COLLECT_SOURCES, "Collecting artist sources...")
        self._logger.info("run_collect_sources_start", run_id=run_id)
        try:
            sources = await self._collector.collect_all()
        except ReleaseRadarError as exc:
            self._logger.error("run_collect_sources_failed", run_id=run_id, error=str(exc))
            raise

        await self._progress(run_id, RunPhase.MERGE_ARTISTS, "Merging artists...")
        merged = self._merger.merge_with_report(sources)

        return await self._retrieve_and_classify(
            merged.artists,
            run_id=run_id,
            window_days=window_days,
            use_optimized_search=use_optimized_search,
            cancel_event=cancel_event,
            now=now,
            merge_report=merged.report,
        )

    async def run_for_artists(
        self,
        artists: Sequence[Artist],
        window_days: int | None = None,
        use_optimized_search: bool | None = None,
        cancel_event: asyncio.Event | None = None,
        now: datetime | None = None,
        run_id: str | None = None,
    ) -> ReleaseReport:
        """Like :meth:`run` but for an already merged artist list."""
        return await self._retrieve_and_classify(
            list(artists),
            run_id=run_id or str(uuid4()),
            window_days=window_days,
            use_optimized_search=use_optimized_search,
            cancel_event=cancel_event,
            now=now or datetime.now(tz=timezone.utc),  # noqa: UP017
            merge_report=None,
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _retrieve_and_classify(
        self,
        artists: list[Artist],
        run_id: str,
        window_days: int | None,
        use_optimized_search: bool | None,
        cancel_event: asyncio.Event | None,
        now: datetime,
        merge_report: MergeReport | None,
    ) -> ReleaseReport:
        scheduler = self._scheduler.with_options(
            window_days=window_days,
            use_optimized_search=use_optimized_search,
        )

        await self._progress(
            run_id,
            RunPhase.RETRIEVE_RELEASES,
            f"Checking {len(artists)} artists for new releases...",
            total_artists=len(artists),
        )
        self._logger.info(
            "run_retrieval_start",
            run_id=run_id,
            artists=len(artists),
            window_days=scheduler.window_days,
        )
        batch = await scheduler.run(artists, cancel_event=cancel_event, now=now, run_id=run_id)

        await self._progress(
            run_id,
            RunPhase.CLASSIFY,
            "Classifying releases...",
            artists_processed=len(batch.outcomes),
            total_artists=len(artists),
            releases_found=len(batch.releases),
        )
        releases = self._classifier.filter_and_sort(batch.releases, scheduler.window_days, now)

        artist_statistics = self._merger.get_statistics(artists)
        data_quality = self._merger.validate_artist_data(artists)
        if data_quality.valid < data_quality.total:
            self._logger.warning(
                "artist_data_quality_issues",
                run_id=run_id,
                missing_profile_url=data_quality.missing_profile_url,
                missing_name=data_quality.missing_name,
                duplicate_names=data_quality.duplicate_names,
            )

        report = ReleaseReport(
            releases=releases,
            # Report the classified count, not the raw candidates.
            summary=batch.summary.model_copy(update={"total_releases_found": len(releases)}),
            artists=artists,
            merge_report=merge_report,
            release_statistics=self._classifier.get_statistics(releases),
            artist_statistics=artist_statistics,
            data_quality=data_quality,
            sample_artists=self._merger.get_sample_artists(artists, count=_SAMPLE_SIZE),
        )

        await self._progress(
            run_id,
            RunPhase.COMPLETE,
            f"Found {len(releases)} new releases",
            artists_processed=len(batch.outcomes),
            total_artists=len(artists),
            releases_found=len(releases),
        )
        self._logger.info(
            "run_complete",
            run_id=run_id,
            releases=len(releases),
            succeeded_artists=batch.summary.succeeded_artists,
            failed_artists=len(batch.summary.failed_artist_ids),
            cancelled=batch.summary.cancelled,
        )
        return report

    async def _progress(
        self,
        run_id: str,
        phase: RunPhase,
        message: str,
        artists_processed: int = 0,
        total_artists: int = 0,
        releases_found: int = 0,
    ) -> None:
        await self._progress_tracker.update(
            run_id,
            RunProgress(
                phase=phase,
                artists_processed=artists_processed,
                total_artists=total_artists,
                releases_found=releases_found,
                message=message,
            ),
        )
