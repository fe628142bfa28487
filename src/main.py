"""Release Radar entry point.

Wires the Spotify gateway, services and pipeline together via dependency
injection.  ``build_pipeline`` assembles everything around a caller-owned
``httpx.AsyncClient``; ``run_release_check`` owns the client for a single
run and is what the CLI calls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

import httpx
import structlog

from src.config.settings import Settings
from src.models.run import ReleaseReport
from src.pipeline.orchestrator import ReleaseAggregationPipeline
from src.pipeline.progress_tracker import ProgressTracker
from src.providers.catalog.spotify_gateway import SpotifyCatalogGateway
from src.services.artist_merger import ArtistMerger
from src.services.artist_sources import ArtistSourceCollector
from src.services.batch_scheduler import BatchScheduler, SleepFn
from src.services.release_classifier import ReleaseClassifier
from src.services.release_retriever import ReleaseRetriever
from src.utils.errors import ConfigurationError
from src.utils.logging import get_logger, run_context

_logger: structlog.BoundLogger = get_logger(__name__)


def build_pipeline(
    app_settings: Settings,
    http_client: httpx.AsyncClient,
    sleep: SleepFn = asyncio.sleep,
) -> ReleaseAggregationPipeline:
    """Construct the pipeline and every collaborator from *app_settings*.

    Parameters
    ----------
    app_settings:
        Application settings.
    http_client:
        Client the gateway sends requests through; the caller closes it.
    sleep:
        Awaitable sleep used for every pacing delay.

    Returns
    -------
    ReleaseAggregationPipeline
        Ready to ``run``.
    """
    gateway = SpotifyCatalogGateway(http_client=http_client, settings=app_settings)
    progress_tracker = ProgressTracker()

    retriever = ReleaseRetriever(
        gateway,
        page_size=app_settings.release_page_size,
        search_limit=app_settings.search_limit,
        verify_ordering=app_settings.verify_release_ordering,
    )
    scheduler = BatchScheduler(
        retriever,
        batch_size=app_settings.batch_size,
        concurrency_within_batch=app_settings.concurrency_within_batch,
        artist_delay_ms=app_settings.artist_delay_ms,
        inter_batch_delay_ms=app_settings.inter_batch_delay_ms,
        window_days=app_settings.recency_window_days,
        use_optimized_search=app_settings.use_search_optimization,
        progress_tracker=progress_tracker,
        sleep=sleep,
    )
    collector = ArtistSourceCollector(
        gateway,
        page_size=app_settings.source_page_size,
        page_delay_ms=app_settings.source_page_delay_ms,
        sleep=sleep,
    )

    return ReleaseAggregationPipeline(
        collector=collector,
        merger=ArtistMerger(),
        scheduler=scheduler,
        classifier=ReleaseClassifier(),
        progress_tracker=progress_tracker,
    )


async def run_release_check(
    custom_settings: Settings | None = None,
    window_days: int | None = None,
    use_optimized_search: bool | None = None,
    cancel_event: asyncio.Event | None = None,
    now: datetime | None = None,
    run_id: str = "release-check",
    progress_listener: Callable | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ReleaseReport:
    """Run one release check against the live catalog.

    Raises
    ------
    ConfigurationError
        No access token is configured.
    UnauthorizedError, RetrievalError, CatalogError
        Propagated from the pipeline.
    """
    s = custom_settings or Settings()
    if not s.has_credentials():
        raise ConfigurationError(
            message="SPOTIFY_ACCESS_TOKEN is not set; authenticate and export a token first"
        )

    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=s.request_timeout_seconds)
    try:
        pipeline = build_pipeline(s, client)
        if progress_listener is not None:
            pipeline.progress_tracker.register_listener(run_id, progress_listener)

        with run_context(run_id):
            _logger.info(
                "release_check_start",
                window_days=window_days if window_days is not None else s.recency_window_days,
                search_optimized=(
                    use_optimized_search
                    if use_optimized_search is not None
                    else s.use_search_optimization
                ),
            )
            return await pipeline.run(
                window_days=window_days,
                use_optimized_search=use_optimized_search,
                cancel_event=cancel_event,
                now=now,
                run_id=run_id,
            )
    finally:
        if owns_client:
            await client.aclose()
