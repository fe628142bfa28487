"""Per-artist release retrieval with two strategies.

::

    TRY_OPTIMIZED ──ok──────────────────────────────→ OPTIMIZED_SUCCESS ─→ DONE
         │ error
         ▼
    OPTIMIZED_EMPTY_FALLBACK (exact-artist search, no tag) ──ok──→ DONE
         │ error
         ▼
    PAGINATED_SCAN ─────────────────────────────────────────────────→ DONE

**Paginated scan** (default) walks the artist's discography page by page.
The catalog returns it newest-first, so the first out-of-window release
means every later one is out of window too and no more pages are requested.
If the catalog ever stopped honouring that order the scan would silently
under-count; ``verify_ordering=True`` detects an out-of-order item and
switches that artist to a full scan.

**Optimized search** (opt-in) asks the search endpoint for
``artist:"<name>" tag:new``.  The upstream ``tag:new`` filter is flaky, so
an error falls back to a plain exact-artist search filtered client-side,
and a second error falls back to the paginated scan.  Search results are
noisy: only items crediting the artist's id are kept.

Rate-limit and authorization errors are never absorbed here.  They go to
the batch scheduler, which throttles across all artists at once.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

import structlog

from src.interfaces.catalog_gateway import ICatalogGateway
from src.models.catalog import Artist, RawRelease
from src.utils.errors import CatalogError, NotFoundError, RateLimitError, UnauthorizedError
from src.utils.logging import get_logger
from src.utils.release_dates import is_within, to_comparable_instant

DEFAULT_PAGE_SIZE = 20
DEFAULT_SEARCH_LIMIT = 20
_NEW_RELEASE_TAG = "tag:new"


class RetrievalState(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """States of a single artist's retrieval."""

    TRY_OPTIMIZED = "TRY_OPTIMIZED"
    OPTIMIZED_SUCCESS = "OPTIMIZED_SUCCESS"
    OPTIMIZED_EMPTY_FALLBACK = "OPTIMIZED_EMPTY_FALLBACK"
    PAGINATED_SCAN = "PAGINATED_SCAN"
    DONE = "DONE"


def _quote_artist_name(name: str) -> str:
    # Double quotes would end the phrase filter early.
    return name.replace('"', " ").strip()


class ReleaseRetriever:
    """Fetches one artist's candidate releases from the catalog.

    Parameters
    ----------
    gateway:
        The catalog gateway.
    page_size:
        Items requested per discography page.
    search_limit:
        Items requested per search query.
    verify_ordering:
        Detect out-of-order discography pages and fall back to a full scan.
    """

    def __init__(
        self,
        gateway: ICatalogGateway,
        page_size: int = DEFAULT_PAGE_SIZE,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
        verify_ordering: bool = False,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self._gateway = gateway
        self._page_size = page_size
        self._search_limit = search_limit
        self._verify_ordering = verify_ordering
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_for_artist(
        self,
        artist: Artist,
        window_days: int,
        use_optimized_search: bool = False,
        now: datetime | None = None,
    ) -> list[RawRelease]:
        """Return candidate releases for *artist*.

        The result may still contain singles; classification happens later.
        Paginated-scan results are all inside the window unless
        ``verify_ordering`` forced a full scan, in which case only
        in-window items are returned as well.

        Raises
        ------
        RateLimitError, UnauthorizedError, ServerError, NetworkError, BadRequestError
            Surfaced for the scheduler to handle.  ``NotFoundError`` is
            swallowed and yields ``[]``.
        """
        if now is None:
            now = datetime.now(tz=timezone.utc)  # noqa: UP017

        if use_optimized_search:
            releases = await self._fetch_via_search(artist, window_days, now)
            if releases is not None:
                return releases

        return await self._fetch_via_scan(artist, window_days, now)

    # ------------------------------------------------------------------
    # Optimized strategy
    # ------------------------------------------------------------------

    async def _fetch_via_search(
        self, artist: Artist, window_days: int, now: datetime
    ) -> list[RawRelease] | None:
        """Run the two search sub-attempts; ``None`` means "use the scan"."""
        name = _quote_artist_name(artist.name)
        state = RetrievalState.TRY_OPTIMIZED

        try:
            page = await self._gateway.search_releases(
                f'artist:"{name}" {_NEW_RELEASE_TAG}', self._search_limit
            )
            releases = self._exact_artist_matches(artist, page.items)
            state = RetrievalState.OPTIMIZED_SUCCESS
            self._log_done(artist, state, len(releases), requests=1)
            return releases
        except (RateLimitError, UnauthorizedError):
            raise
        except NotFoundError:
            return []
        except CatalogError as exc:
            self._logger.info(
                "release_search_tag_query_failed",
                artist_id=artist.id,
                error=str(exc),
            )

        state = RetrievalState.OPTIMIZED_EMPTY_FALLBACK
        try:
            page = await self._gateway.search_releases(f'artist:"{name}"', self._search_limit)
        except (RateLimitError, UnauthorizedError):
            raise
        except NotFoundError:
            return []
        except CatalogError as exc:
            self._logger.info(
                "release_search_fallback_failed",
                artist_id=artist.id,
                error=str(exc),
            )
            return None

        releases = [
            r
            for r in self._exact_artist_matches(artist, page.items)
            if is_within(r.release_date, window_days, now)
        ]
        self._log_done(artist, state, len(releases), requests=2)
        return releases

    @staticmethod
    def _exact_artist_matches(artist: Artist, items: list[RawRelease]) -> list[RawRelease]:
        """Keep items crediting *artist* and attribute them to it."""
        return [
            item.model_copy(update={"artist_id": artist.id, "artist_name": artist.name})
            for item in items
            if artist.id in item.artist_ids
        ]

    # ------------------------------------------------------------------
    # Paginated scan
    # ------------------------------------------------------------------

    async def _fetch_via_scan(
        self, artist: Artist, window_days: int, now: datetime
    ) -> list[RawRelease]:
        releases: list[RawRelease] = []
        offset = 0
        requests = 0
        early_terminate = True
        previous_instant: datetime | None = None

        while True:
            try:
                page = await self._gateway.get_artist_releases_page(
                    artist.id, self._page_size, offset
                )
            except NotFoundError:
                self._logger.info("artist_not_found", artist_id=artist.id, artist_name=artist.name)
                return []
            requests += 1

            stop = False
            for item in page.items:
                if self._verify_ordering and early_terminate and item.release_date is not None:
                    instant = to_comparable_instant(item.release_date)
                    if previous_instant is not None and instant > previous_instant:
                        self._logger.warning(
                            "release_order_violation",
                            artist_id=artist.id,
                            release_id=item.id,
                        )
                        early_terminate = False
                    previous_instant = instant

                if is_within(item.release_date, window_days, now):
                    releases.append(item)
                elif early_terminate:
                    stop = True
                    break

            if stop:
                self._logger.debug(
                    "release_scan_early_termination",
                    artist_id=artist.id,
                    requests=requests,
                    offset=offset,
                )
                break

            # Count what the server sent, including items the gateway dropped,
            # so offsets stay aligned and a filtered page is not read as the last.
            fetched = page.raw_count if page.raw_count is not None else len(page.items)
            offset += fetched
            if fetched < self._page_size:
                break
            if page.total is not None and offset >= page.total:
                break

        self._log_done(artist, RetrievalState.PAGINATED_SCAN, len(releases), requests=requests)
        return releases

    def _log_done(
        self, artist: Artist, state: RetrievalState, count: int, requests: int
    ) -> None:
        self._logger.debug(
            "artist_releases_retrieved",
            artist_id=artist.id,
            artist_name=artist.name,
            strategy=state.value,
            release_count=count,
            requests=requests,
        )
