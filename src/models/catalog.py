"""Catalog domain models for the Release Radar engine.

Defines enums and Pydantic v2 models for artists, the boundary records that
artist sources produce, releases at each stage of the pipeline (raw from the
catalog, then classified), partial-precision release dates, and paginated
catalog responses.  All models use frozen config; "mutation" happens via
``model_copy(update={...})``.

Key relationships:
    - ArtistSourceRecord is what a source adapter yields; ArtistMerger turns
      records into Artist objects tagged with one or more SourceTag values.
    - RawRelease comes out of a CatalogPage; ReleaseClassifier turns the
      ones it keeps into ClassifiedRelease (same fields + category).
    - PartialDate is the parsed form of the catalog's ``release_date``.
"""

from __future__ import annotations

import datetime
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_ItemT = TypeVar("_ItemT")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SourceTag(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Where an artist of interest was found.

    Declaration order is the canonical merge order: the followed-artists
    source carries the richest metadata (genres, popularity, followers),
    so it is merged first and its records win.
    """

    FOLLOWED = "followed"
    LIKED_TRACKS = "liked_tracks"
    SAVED_ALBUMS = "saved_albums"


class ReleaseType(str, Enum):  # noqa: UP042
    """Release type as reported by the catalog (``album_type`` / ``album_group``)."""

    ALBUM = "album"
    SINGLE = "single"
    COMPILATION = "compilation"
    APPEARS_ON = "appears_on"


class ReleaseCategory(str, Enum):  # noqa: UP042
    """What the classifier decided a kept release is.  Singles never get one."""

    ALBUM = "album"
    EP = "ep"


class DatePrecision(str, Enum):  # noqa: UP042
    """Granularity of a catalog release date."""

    YEAR = "year"
    MONTH = "month"
    DAY = "day"


class ErrorKind(str, Enum):  # noqa: UP042
    """Error taxonomy recorded on per-artist outcomes."""

    PARSE_ERROR = "parse_error"
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    BAD_REQUEST = "bad_request"


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

class PartialDate(BaseModel):
    """A release date known to year, month or day precision.

    Components below the declared precision are always the earliest value
    of their unit (month 1, day 1), so a partial date never compares as
    more recent than the real release could be.
    """

    model_config = ConfigDict(frozen=True)

    year: int = Field(ge=1, le=9999)
    month: int = Field(default=1, ge=1, le=12)
    day: int = Field(default=1, ge=1, le=31)
    precision: DatePrecision = DatePrecision.DAY

    @model_validator(mode="after")
    def _check_calendar_date(self) -> PartialDate:
        # Rejects e.g. 2025-02-30; raises ValueError -> ValidationError.
        datetime.date(self.year, self.month, self.day)
        if self.precision == DatePrecision.YEAR and (self.month, self.day) != (1, 1):
            raise ValueError("year-precision dates must fall on January 1st")
        if self.precision == DatePrecision.MONTH and self.day != 1:
            raise ValueError("month-precision dates must fall on the 1st")
        return self

    def as_date(self) -> datetime.date:
        """Return the (rounded-down) calendar date."""
        return datetime.date(self.year, self.month, self.day)

    def __str__(self) -> str:
        if self.precision == DatePrecision.YEAR:
            return f"{self.year:04d}"
        if self.precision == DatePrecision.MONTH:
            return f"{self.year:04d}-{self.month:02d}"
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"


# ---------------------------------------------------------------------------
# Artists
# ---------------------------------------------------------------------------

class ArtistSourceRecord(BaseModel):
    """An artist as yielded by one source, before merging.

    Every source adapts its native payload (a followed-artist object, the
    artists credited on a liked track, the artists on a saved album) into
    this shape at the gateway boundary.  Only the followed-artists source
    fills in ``genres``, ``popularity`` and ``follower_count``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str = ""
    profile_url: str | None = None
    genres: list[str] = Field(default_factory=list)
    popularity: int | None = Field(default=None, ge=0, le=100)
    follower_count: int | None = Field(default=None, ge=0)


class Artist(BaseModel):
    """A deduplicated artist of interest, tagged with every source it came from."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    profile_url: str | None = None
    sources: list[SourceTag]
    genres: list[str] = Field(default_factory=list)
    popularity: int | None = Field(default=None, ge=0, le=100)
    follower_count: int | None = Field(default=None, ge=0)

    @field_validator("sources")
    @classmethod
    def _sources_non_empty_and_unique(cls, value: list[SourceTag]) -> list[SourceTag]:
        if not value:
            raise ValueError("an artist needs at least one source")
        if len(set(value)) != len(value):
            raise ValueError("duplicate source tags")
        return value


# ---------------------------------------------------------------------------
# Releases
# ---------------------------------------------------------------------------

class RawRelease(BaseModel):
    """A release exactly as one catalog page described it.

    ``release_date`` is ``None`` when the catalog sent a missing or
    malformed date; ``raw_release_date`` keeps the original string for
    display and debugging.  ``artist_ids`` lists every credited artist and
    is what the exact-artist search filter checks.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    release_type: ReleaseType
    track_count: int = Field(default=0, ge=0)
    release_date: PartialDate | None = None
    raw_release_date: str = ""
    artist_id: str
    artist_name: str
    artist_ids: list[str] = Field(default_factory=list)
    url: str | None = None


class ClassifiedRelease(RawRelease):
    """A release the classifier kept, with the category it assigned."""

    category: ReleaseCategory


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

class CatalogPage(BaseModel, Generic[_ItemT]):
    """One page from a paginated catalog endpoint.

    Offset endpoints fill ``total``/``offset``; cursor endpoints fill
    ``next_cursor`` (``None`` on the last page).
    """

    model_config = ConfigDict(frozen=True)

    items: list[_ItemT] = Field(default_factory=list)
    total: int | None = None
    limit: int = 0
    offset: int = 0
    next_cursor: str | None = None
    # Items the response carried before unusable ones were dropped; None
    # when the producer filtered nothing out.
    raw_count: int | None = None
