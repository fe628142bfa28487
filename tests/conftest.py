"""Shared pytest fixtures for the Release Radar test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.config.settings import Settings
from src.interfaces.catalog_gateway import ICatalogGateway
from src.models.catalog import (
    Artist,
    ArtistSourceRecord,
    CatalogPage,
    RawRelease,
    ReleaseType,
    SourceTag,
)
from src.utils.release_dates import parse_release_date

# Every time-dependent test pins "now" here.
FIXED_NOW = datetime(2025, 8, 20, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_release(
    release_id: str = "rel-1",
    name: str = "Some Album",
    release_type: ReleaseType = ReleaseType.ALBUM,
    track_count: int = 10,
    release_date: str | None = "2025-08-18",
    artist_id: str = "artist-1",
    artist_name: str = "Artist One",
    artist_ids: list[str] | None = None,
) -> RawRelease:
    """Build a RawRelease; ``release_date`` is a catalog date string."""
    return RawRelease(
        id=release_id,
        name=name,
        release_type=release_type,
        track_count=track_count,
        release_date=parse_release_date(release_date) if release_date else None,
        raw_release_date=release_date or "",
        artist_id=artist_id,
        artist_name=artist_name,
        artist_ids=artist_ids if artist_ids is not None else [artist_id],
    )


def days_ago(days: int, now: datetime = FIXED_NOW) -> str:
    """Catalog date string for *days* days before *now*."""
    return (now - timedelta(days=days)).strftime("%Y-%m-%d")


def make_artist(
    artist_id: str = "artist-1",
    name: str = "Artist One",
    sources: list[SourceTag] | None = None,
) -> Artist:
    return Artist(id=artist_id, name=name, sources=sources or [SourceTag.FOLLOWED])


def make_record(artist_id: str, name: str = "", **kwargs) -> ArtistSourceRecord:
    return ArtistSourceRecord(id=artist_id, name=name or f"Name {artist_id}", **kwargs)


def release_page(
    items: list[RawRelease],
    total: int | None = None,
    limit: int = 20,
    offset: int = 0,
) -> CatalogPage[RawRelease]:
    return CatalogPage[RawRelease](
        items=items,
        total=total if total is not None else len(items),
        limit=limit,
        offset=offset,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def settings() -> Settings:
    """Settings with a dummy token and no pacing delays."""
    return Settings(
        _env_file=None,
        spotify_access_token="test-token",
        spotify_api_base_url="https://api.example.test/v1",
        spotify_market="US",
        artist_delay_ms=0,
        inter_batch_delay_ms=0,
        source_page_delay_ms=0,
    )


@pytest.fixture
def mock_gateway() -> ICatalogGateway:
    """Mock ICatalogGateway; every request method returns an empty page."""
    mock = MagicMock(spec=ICatalogGateway)
    mock.get_provider_name.return_value = "mock-catalog"
    mock.is_available.return_value = True
    mock.get_artist_releases_page = AsyncMock(return_value=release_page([]))
    mock.search_releases = AsyncMock(return_value=release_page([]))
    mock.get_followed_artists_page = AsyncMock(
        return_value=CatalogPage[ArtistSourceRecord](items=[])
    )
    mock.get_saved_track_artists_page = AsyncMock(
        return_value=CatalogPage[ArtistSourceRecord](items=[], total=0)
    )
    mock.get_saved_album_artists_page = AsyncMock(
        return_value=CatalogPage[ArtistSourceRecord](items=[], total=0)
    )
    return mock


class RecordingSleep:
    """Awaitable stand-in for asyncio.sleep that only records durations."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
