"""Collects artist records from the user's library sources.

Three sources feed the merger:

* followed artists (cursor-paginated),
* artists credited on liked tracks (offset-paginated),
* artists credited on saved albums (offset-paginated).

Each source is paginated to the end with a short delay between pages and
deduplicated by id within itself; cross-source deduplication is the
merger's job.  A page failing after some records were collected ends
that source early with what it has.  ``UnauthorizedError`` always
propagates.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from src.interfaces.catalog_gateway import ICatalogGateway
from src.models.catalog import ArtistSourceRecord, CatalogPage, SourceTag
from src.utils.errors import CatalogError, ConfigurationError, UnauthorizedError
from src.utils.logging import get_logger

SleepFn = Callable[[float], Awaitable[None]]
_PageFetcher = Callable[[str | None, int], Awaitable[CatalogPage[ArtistSourceRecord]]]

DEFAULT_SOURCE_PAGE_SIZE = 50
DEFAULT_SOURCE_PAGE_DELAY_MS = 100


class _SourceAccumulator:
    """Records of one source, deduplicated by id in first-seen order."""

    def __init__(self) -> None:
        self.records: dict[str, ArtistSourceRecord] = {}
        self.missing_id: list[ArtistSourceRecord] = []
        self.pages = 0

    def add_page(self, page: CatalogPage[ArtistSourceRecord]) -> None:
        self.pages += 1
        for record in page.items:
            key = (record.id or "").strip()
            if not key:
                # The merger counts these as data-quality defects.
                self.missing_id.append(record)
            elif key not in self.records:
                self.records[key] = record

    def result(self) -> list[ArtistSourceRecord]:
        return [*self.records.values(), *self.missing_id]

    @property
    def empty(self) -> bool:
        return not self.records and not self.missing_id


class ArtistSourceCollector:
    """Paginates the library sources through a catalog gateway.

    Parameters
    ----------
    gateway:
        The catalog gateway.
    page_size:
        Items requested per page (the catalog caps this at 50).
    page_delay_ms:
        Pause between consecutive pages of one source.
    sleep:
        Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        gateway: ICatalogGateway,
        page_size: int = DEFAULT_SOURCE_PAGE_SIZE,
        page_delay_ms: int = DEFAULT_SOURCE_PAGE_DELAY_MS,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._gateway = gateway
        self._page_size = page_size
        self._page_delay = page_delay_ms / 1000.0
        self._sleep = sleep
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def fetch_followed(self) -> list[ArtistSourceRecord]:
        """All followed artists."""

        async def fetch(cursor: str | None, limit: int) -> CatalogPage[ArtistSourceRecord]:
            return await self._gateway.get_followed_artists_page(cursor, limit)

        return await self._paginate(SourceTag.FOLLOWED, fetch, cursor_based=True)

    async def fetch_liked_track_artists(self) -> list[ArtistSourceRecord]:
        """Artists credited on the user's liked tracks."""

        async def fetch(cursor: str | None, limit: int) -> CatalogPage[ArtistSourceRecord]:
            return await self._gateway.get_saved_track_artists_page(int(cursor or 0), limit)

        return await self._paginate(SourceTag.LIKED_TRACKS, fetch, cursor_based=False)

    async def fetch_saved_album_artists(self) -> list[ArtistSourceRecord]:
        """Artists credited on the user's saved albums."""

        async def fetch(cursor: str | None, limit: int) -> CatalogPage[ArtistSourceRecord]:
            return await self._gateway.get_saved_album_artists_page(int(cursor or 0), limit)

        return await self._paginate(SourceTag.SAVED_ALBUMS, fetch, cursor_based=False)

    async def collect_all(self) -> dict[SourceTag, list[ArtistSourceRecord]]:
        """Fetch every source, one after another.

        A source that fails outright is logged and contributes nothing.

        Raises
        ------
        ConfigurationError
            The gateway has no credentials; nothing is requested.
        UnauthorizedError
            From any source.
        CatalogError
            If every source failed; the last error is re-raised.
        """
        provider = self._gateway.get_provider_name()
        if not self._gateway.is_available():
            raise ConfigurationError(
                message="catalog gateway has no credentials configured",
                provider_name=provider,
            )

        fetchers = {
            SourceTag.FOLLOWED: self.fetch_followed,
            SourceTag.LIKED_TRACKS: self.fetch_liked_track_artists,
            SourceTag.SAVED_ALBUMS: self.fetch_saved_album_artists,
        }
        collected: dict[SourceTag, list[ArtistSourceRecord]] = {}
        last_error: CatalogError | None = None

        for tag, fetcher in fetchers.items():
            try:
                collected[tag] = await fetcher()
            except UnauthorizedError:
                raise
            except CatalogError as exc:
                last_error = exc
                collected[tag] = []
                self._logger.warning(
                    "artist_source_failed",
                    source=tag.value,
                    error_kind=exc.kind.value,
                    error=str(exc),
                )

        # Empty sources alone are not an error; a failure with nothing else
        # to show for it is.
        if last_error is not None and not any(collected.values()):
            raise last_error

        self._logger.info(
            "artist_sources_collected",
            provider=provider,
            **{tag.value: len(records) for tag, records in collected.items()},
        )
        return collected

    async def _paginate(
        self,
        tag: SourceTag,
        fetch: _PageFetcher,
        cursor_based: bool,
    ) -> list[ArtistSourceRecord]:
        acc = _SourceAccumulator()
        cursor: str | None = None
        offset = 0

        while True:
            if acc.pages > 0 and self._page_delay > 0:
                await self._sleep(self._page_delay)

            try:
                page = await fetch(cursor if cursor_based else str(offset), self._page_size)
            except UnauthorizedError:
                raise
            except CatalogError as exc:
                if acc.empty:
                    raise
                self._logger.warning(
                    "artist_source_partial",
                    source=tag.value,
                    pages=acc.pages,
                    collected=len(acc.records),
                    error=str(exc),
                )
                break

            acc.add_page(page)

            if page.next_cursor is None:
                break
            if cursor_based:
                fetched = page.raw_count if page.raw_count is not None else len(page.items)
                if not fetched or page.next_cursor == cursor:
                    break
                cursor = page.next_cursor
            else:
                offset += self._page_size
                if page.total is not None and offset >= page.total:
                    break

        records = acc.result()
        self._logger.info(
            "artist_source_fetched",
            source=tag.value,
            pages=acc.pages,
            artists=len(records),
        )
        return records
