"""Run-level models: per-artist outcomes, summaries, progress and statistics.

Nothing here outlives a run.  The scheduler builds one RetrievalOutcome per
artist, folds them into a RunSummary, and the pipeline wraps everything in a
ReleaseReport for whatever renders or consumes the result.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.models.catalog import (
    Artist,
    ClassifiedRelease,
    ErrorKind,
    RawRelease,
    SourceTag,
)


class RunPhase(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Phases of a release check, in execution order."""

    COLLECT_SOURCES = "COLLECT_SOURCES"
    MERGE_ARTISTS = "MERGE_ARTISTS"
    RETRIEVE_RELEASES = "RETRIEVE_RELEASES"
    CLASSIFY = "CLASSIFY"
    COMPLETE = "COMPLETE"


class RunProgress(BaseModel):
    """Snapshot broadcast to progress listeners."""

    model_config = ConfigDict(frozen=True)

    phase: RunPhase = RunPhase.COLLECT_SOURCES
    artists_processed: int = 0
    total_artists: int = 0
    releases_found: int = 0
    message: str = ""

    @property
    def percent(self) -> float:
        if self.total_artists <= 0:
            return 100.0 if self.phase == RunPhase.COMPLETE else 0.0
        return min(100.0, 100.0 * self.artists_processed / self.total_artists)


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

class RetrievalOutcome(BaseModel):
    """What happened when the scheduler retrieved one artist."""

    model_config = ConfigDict(frozen=True)

    artist_id: str
    artist_name: str = ""
    releases: list[RawRelease] = Field(default_factory=list)
    error: ErrorKind | None = None
    attempts: int = 1

    @property
    def succeeded(self) -> bool:
        return self.error is None


class RunSummary(BaseModel):
    """Run metadata exposed next to the release list."""

    model_config = ConfigDict(frozen=True)

    total_artists: int = 0
    succeeded_artists: int = 0
    failed_artist_ids: list[str] = Field(default_factory=list)
    total_releases_found: int = 0
    cancelled: bool = False


class BatchRunResult(BaseModel):
    """Output of :meth:`BatchScheduler.run`: the union of successful retrievals."""

    model_config = ConfigDict(frozen=True)

    releases: list[RawRelease] = Field(default_factory=list)
    outcomes: list[RetrievalOutcome] = Field(default_factory=list)
    summary: RunSummary = Field(default_factory=RunSummary)


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

class SourceMergeCount(BaseModel):
    """How one source contributed to a merge."""

    model_config = ConfigDict(frozen=True)

    source: SourceTag
    total: int = 0
    new: int = 0
    duplicates: int = 0
    missing_id: int = 0


class MergeReport(BaseModel):
    """Summary counts emitted by :class:`ArtistMerger`."""

    model_config = ConfigDict(frozen=True)

    sources: list[SourceMergeCount] = Field(default_factory=list)
    unique_artists: int = 0
    dropped_records: int = 0


class ArtistStatistics(BaseModel):
    """Aggregate view of a merged artist list."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    by_source: dict[SourceTag, int] = Field(default_factory=dict)
    multiple_source_count: int = 0
    with_genres: int = 0
    with_popularity: int = 0
    average_popularity: int = 0


class DataQualityReport(BaseModel):
    """Data-quality counts over a merged artist list."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    missing_profile_url: int = 0
    missing_name: int = 0
    duplicate_names: int = 0
    valid: int = 0


class ReleaseStatistics(BaseModel):
    """Aggregate view of retrieved releases."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_year: dict[str, int] = Field(default_factory=dict)
    average_tracks: int = 0
    unique_artists: int = 0


class ReleaseReport(BaseModel):
    """Everything a run exposes to rendering / playlist consumers."""

    model_config = ConfigDict(frozen=True)

    releases: list[ClassifiedRelease] = Field(default_factory=list)
    summary: RunSummary = Field(default_factory=RunSummary)
    artists: list[Artist] = Field(default_factory=list)
    merge_report: MergeReport | None = None
    release_statistics: ReleaseStatistics = Field(default_factory=ReleaseStatistics)
    artist_statistics: ArtistStatistics = Field(default_factory=ArtistStatistics)
    data_quality: DataQualityReport = Field(default_factory=DataQualityReport)
    # Shown next to the listing; multi-source and popular artists first.
    sample_artists: list[Artist] = Field(default_factory=list)
