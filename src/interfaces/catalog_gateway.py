"""Abstract base class for the remote music catalog service.

Defines the contract the retrieval engine uses to talk to the catalog
(artist discographies, release search, and the user's library sources).
Concrete gateways adapt a specific service's wire format into the shared
models, so the retriever and scheduler never see raw JSON.

Every method is a single logical request.  Gateways do NOT retry: retry and
backoff policy belongs to the callers, which can scope it per artist or per
batch instead of burying it in the transport.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.catalog import ArtistSourceRecord, CatalogPage, RawRelease


class ICatalogGateway(ABC):
    """Contract for catalog services used by the release engine.

    All request methods raise a :class:`src.utils.errors.CatalogError`
    subclass on failure:

    * ``RateLimitError`` - carries ``retry_after_seconds`` (at least 1.0)
    * ``UnauthorizedError`` - token expired / insufficient scope
    * ``NotFoundError`` - callers treat this as "zero results"
    * ``ServerError``, ``NetworkError``, ``BadRequestError``
    """

    @abstractmethod
    async def get_artist_releases_page(
        self, artist_id: str, limit: int, offset: int = 0
    ) -> CatalogPage[RawRelease]:
        """Fetch one page of an artist's albums and singles.

        Parameters
        ----------
        artist_id:
            Catalog artist id.
        limit:
            Page size.
        offset:
            Index of the first item to return.

        Returns
        -------
        CatalogPage[RawRelease]
            Items ordered newest-first (a guarantee of the catalog service,
            which early-terminating scans rely on); ``total`` is the size of
            the whole discography.
        """

    @abstractmethod
    async def search_releases(self, query: str, limit: int) -> CatalogPage[RawRelease]:
        """Run a release search.

        Parameters
        ----------
        query:
            Query string with filter predicates, e.g.
            ``artist:"Name" tag:new``.
        limit:
            Maximum number of items.

        Returns
        -------
        CatalogPage[RawRelease]
            Unordered matches.  Results can be noisy; callers must check
            ``artist_ids`` themselves.
        """

    @abstractmethod
    async def get_followed_artists_page(
        self, after: str | None, limit: int
    ) -> CatalogPage[ArtistSourceRecord]:
        """Fetch one page of the user's followed artists (cursor-paginated).

        ``next_cursor`` on the returned page is ``None`` on the last page.
        """

    @abstractmethod
    async def get_saved_track_artists_page(
        self, offset: int, limit: int
    ) -> CatalogPage[ArtistSourceRecord]:
        """Fetch one page of liked tracks, flattened to their credited artists.

        ``total``/``limit`` count tracks, not artists.
        """

    @abstractmethod
    async def get_saved_album_artists_page(
        self, offset: int, limit: int
    ) -> CatalogPage[ArtistSourceRecord]:
        """Fetch one page of saved albums, flattened to their credited artists.

        ``total``/``limit`` count albums, not artists.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"spotify"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the gateway is configured (credentials present)."""
