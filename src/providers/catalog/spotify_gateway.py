"""Spotify Web API gateway implementing ICatalogGateway.

Issues authenticated GET requests through an injected ``httpx.AsyncClient``
and maps Spotify's JSON into the shared catalog models.  Each public method
is exactly one HTTP request; non-2xx responses become typed
:class:`~src.utils.errors.CatalogError` subclasses and are never retried
here.

Status mapping::

    429        -> RateLimitError (Retry-After header, default/minimum 1 s)
    401, 403   -> UnauthorizedError
    404        -> NotFoundError
    5xx        -> ServerError
    other 4xx  -> BadRequestError
    transport  -> NetworkError (timeouts, connection resets, DNS)
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx

from src.config.settings import Settings
from src.interfaces.catalog_gateway import ICatalogGateway
from src.models.catalog import ArtistSourceRecord, CatalogPage, RawRelease, ReleaseType
from src.utils.errors import (
    BadRequestError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    UnauthorizedError,
)
from src.utils.logging import get_logger
from src.utils.release_dates import try_parse_release_date

_PROVIDER_NAME = "spotify"
# Release groups requested from the discography endpoint; EPs are filed
# under "single" and are told apart later by the classifier.
_INCLUDE_GROUPS = "album,single"


class SpotifyCatalogGateway(ICatalogGateway):
    """Catalog gateway backed by the Spotify Web API.

    Parameters
    ----------
    http_client:
        Injected ``httpx.AsyncClient`` (connection pooling, transport
        timeout, and test doubles all live there).
    settings:
        Supplies the bearer token, base URL, market and the optional
        minimum interval between requests.
    """

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings) -> None:
        self._http = http_client
        self._settings = settings
        self._base_url = settings.spotify_api_base_url.rstrip("/")
        self._min_interval = settings.min_request_interval
        self._last_request_time: float = 0.0
        self._throttle_lock = asyncio.Lock()
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _throttle(self) -> None:
        """Enforce the configured minimum interval between requests."""
        if self._min_interval <= 0:
            return
        async with self._throttle_lock:
            elapsed = time.monotonic() - self._last_request_time
            if self._last_request_time > 0 and elapsed < self._min_interval:
                await asyncio.sleep(self._min_interval - elapsed)
            self._last_request_time = time.monotonic()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.spotify_access_token}",
            "Accept": "application/json",
        }

    @staticmethod
    def _parse_retry_after(response: httpx.Response) -> float | None:
        raw = response.headers.get("Retry-After")
        if raw is None:
            return None
        try:
            return float(raw)
        except (TypeError, ValueError):
            # HTTP-date form; fall back to the default wait.
            return None

    async def fetch_page(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET ``path`` once and return the decoded JSON body.

        Raises
        ------
        CatalogError
            A typed subclass describing the failure (see module docstring).
        """
        await self._throttle()
        url = f"{self._base_url}/{path.lstrip('/')}"

        try:
            response = await self._http.get(url, params=params, headers=self._headers())
        except httpx.TimeoutException as exc:
            self._logger.warning("spotify_request_timeout", path=path, error=str(exc))
            raise NetworkError(
                message=f"Timed out requesting {path}: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        except httpx.TransportError as exc:
            self._logger.warning("spotify_request_failed", path=path, error=str(exc))
            raise NetworkError(
                message=f"Request to {path} failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

        status = response.status_code
        if status == 429:
            retry_after = self._parse_retry_after(response)
            self._logger.warning("spotify_rate_limited", path=path, retry_after=retry_after)
            raise RateLimitError(
                message=f"Rate limited on {path}",
                provider_name=_PROVIDER_NAME,
                retry_after_seconds=retry_after,
            )
        if status in (401, 403):
            raise UnauthorizedError(provider_name=_PROVIDER_NAME)
        if status == 404:
            raise NotFoundError(
                message=f"{path} not found",
                provider_name=_PROVIDER_NAME,
            )
        if status >= 500:
            self._logger.warning("spotify_server_error", path=path, status=status)
            raise ServerError(
                message=f"Spotify returned {status} for {path}",
                provider_name=_PROVIDER_NAME,
                status_code=status,
            )
        if status >= 400:
            raise BadRequestError(
                message=f"Spotify rejected {path} with {status}",
                provider_name=_PROVIDER_NAME,
                status_code=status,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ServerError(
                message=f"Undecodable response body for {path}",
                provider_name=_PROVIDER_NAME,
                status_code=status,
            ) from exc
        if not isinstance(body, dict):
            raise ServerError(
                message=f"Unexpected response shape for {path}",
                provider_name=_PROVIDER_NAME,
                status_code=status,
            )
        return body

    # ------------------------------------------------------------------
    # Mapping helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _external_url(obj: dict[str, Any]) -> str | None:
        urls = obj.get("external_urls") or {}
        return urls.get("spotify") or None

    def _release_from_item(
        self,
        item: dict[str, Any],
        artist_id: str | None = None,
        artist_name: str | None = None,
    ) -> RawRelease | None:
        """Map a Spotify simplified album object to a :class:`RawRelease`.

        Returns ``None`` for items that cannot be used at all (no id or an
        unknown release type).  A bad date does not drop the item; it is
        kept with ``release_date=None``.
        """
        release_id = item.get("id")
        if not release_id:
            return None

        type_value = item.get("album_group") or item.get("album_type") or ""
        try:
            release_type = ReleaseType(type_value.lower())
        except ValueError:
            self._logger.warning(
                "spotify_unknown_release_type",
                release_id=release_id,
                release_type=type_value,
            )
            return None

        credited = [a for a in item.get("artists") or [] if a and a.get("id")]
        if artist_id is None:
            artist_id = credited[0]["id"] if credited else ""
            artist_name = credited[0].get("name", "") if credited else ""
        elif artist_name is None:
            match = next((a for a in credited if a["id"] == artist_id), None)
            artist_name = match.get("name", "") if match else ""

        raw_date = item.get("release_date") or ""
        release_date = try_parse_release_date(raw_date)
        if release_date is None:
            self._logger.warning(
                "release_date_unparsable",
                release_id=release_id,
                raw_release_date=raw_date,
            )

        return RawRelease(
            id=release_id,
            name=item.get("name") or "",
            release_type=release_type,
            track_count=max(int(item.get("total_tracks") or 0), 0),
            release_date=release_date,
            raw_release_date=raw_date,
            artist_id=artist_id,
            artist_name=artist_name or "",
            artist_ids=[a["id"] for a in credited],
            url=self._external_url(item),
        )

    def _releases_from_items(
        self, items: list[Any], artist_id: str | None = None
    ) -> list[RawRelease]:
        releases: list[RawRelease] = []
        for item in items:
            if not item:
                continue
            release = self._release_from_item(item, artist_id=artist_id)
            if release is not None:
                releases.append(release)
        return releases

    def _artist_record(self, obj: dict[str, Any]) -> ArtistSourceRecord:
        followers = obj.get("followers") or {}
        return ArtistSourceRecord(
            id=obj.get("id") or "",
            name=obj.get("name") or "",
            profile_url=self._external_url(obj),
            genres=list(obj.get("genres") or []),
            popularity=obj.get("popularity"),
            follower_count=followers.get("total"),
        )

    # ------------------------------------------------------------------
    # ICatalogGateway implementation
    # ------------------------------------------------------------------

    async def get_artist_releases_page(
        self, artist_id: str, limit: int, offset: int = 0
    ) -> CatalogPage[RawRelease]:
        """Fetch one page of ``/artists/{id}/albums`` (albums and singles)."""
        body = await self.fetch_page(
            f"artists/{artist_id}/albums",
            {
                "include_groups": _INCLUDE_GROUPS,
                "market": self._settings.spotify_market,
                "limit": limit,
                "offset": offset,
            },
        )
        raw_items = body.get("items") or []
        releases = self._releases_from_items(raw_items, artist_id=artist_id)
        return CatalogPage[RawRelease](
            items=releases,
            total=body.get("total"),
            limit=limit,
            offset=offset,
            next_cursor=body.get("next"),
            raw_count=len(raw_items),
        )

    async def search_releases(self, query: str, limit: int) -> CatalogPage[RawRelease]:
        """Run ``/search?type=album`` for *query*."""
        body = await self.fetch_page(
            "search",
            {
                "q": query,
                "type": "album",
                "market": self._settings.spotify_market,
                "limit": limit,
            },
        )
        albums = body.get("albums") or {}
        raw_items = albums.get("items") or []
        releases = self._releases_from_items(raw_items)
        return CatalogPage[RawRelease](
            items=releases,
            total=albums.get("total"),
            limit=limit,
            offset=albums.get("offset") or 0,
            next_cursor=albums.get("next"),
            raw_count=len(raw_items),
        )

    async def get_followed_artists_page(
        self, after: str | None, limit: int
    ) -> CatalogPage[ArtistSourceRecord]:
        """Fetch one page of ``/me/following?type=artist``."""
        params: dict[str, Any] = {"type": "artist", "limit": limit}
        if after:
            params["after"] = after
        body = await self.fetch_page("me/following", params)
        block = body.get("artists") or {}
        raw_items = block.get("items") or []
        records = [self._artist_record(a) for a in raw_items if a]
        cursors = block.get("cursors") or {}
        # Spotify keeps a cursor on the last page but sets next to null.
        next_cursor = cursors.get("after") if block.get("next") else None
        return CatalogPage[ArtistSourceRecord](
            items=records,
            total=block.get("total"),
            limit=limit,
            next_cursor=next_cursor,
            raw_count=len(raw_items),
        )

    async def get_saved_track_artists_page(
        self, offset: int, limit: int
    ) -> CatalogPage[ArtistSourceRecord]:
        """Fetch one page of ``/me/tracks`` and flatten it to artists."""
        body = await self.fetch_page(
            "me/tracks",
            {"limit": limit, "offset": offset, "market": self._settings.spotify_market},
        )
        return self._flatten_saved_page(body, "track", offset, limit)

    async def get_saved_album_artists_page(
        self, offset: int, limit: int
    ) -> CatalogPage[ArtistSourceRecord]:
        """Fetch one page of ``/me/albums`` and flatten it to artists."""
        body = await self.fetch_page(
            "me/albums",
            {"limit": limit, "offset": offset, "market": self._settings.spotify_market},
        )
        return self._flatten_saved_page(body, "album", offset, limit)

    def _flatten_saved_page(
        self, body: dict[str, Any], key: str, offset: int, limit: int
    ) -> CatalogPage[ArtistSourceRecord]:
        items = body.get("items") or []
        records: list[ArtistSourceRecord] = []
        for item in items:
            saved = (item or {}).get(key) or {}
            for artist in saved.get("artists") or []:
                if artist:
                    records.append(self._artist_record(artist))
        return CatalogPage[ArtistSourceRecord](
            items=records,
            total=body.get("total"),
            limit=limit,
            offset=offset,
            # Spotify's "next" URL; null once the last saved item was served.
            next_cursor=body.get("next"),
            raw_count=len(items),
        )

    def get_provider_name(self) -> str:
        """Return ``'spotify'``."""
        return _PROVIDER_NAME

    def is_available(self) -> bool:
        """Return ``True`` if an access token is configured."""
        return self._settings.has_credentials()
