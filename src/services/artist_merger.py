"""Artist merging across catalog sources.

Combines the artist lists produced by every source (followed artists,
artists on liked tracks, artists on saved albums) into one list
deduplicated by catalog id, where each artist remembers every source it
was seen in.

Merge rules
-----------
* Sources are merged in :class:`SourceTag` declaration order no matter how
  the input mapping is ordered, so followed artists (the richest records)
  always establish the canonical metadata.
* The first record seen for an id wins; later records only add their tag.
* Records without an id are dropped and counted as data-quality defects.

The working state of a merge lives in a :class:`_MergeAccumulator` created
per call, threaded through each source, and returned; the merger keeps no
state between calls.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import structlog

from src.models.catalog import Artist, ArtistSourceRecord, SourceTag
from src.models.run import (
    ArtistStatistics,
    DataQualityReport,
    MergeReport,
    SourceMergeCount,
)
from src.utils.logging import get_logger


@dataclass
class _MergeAccumulator:
    """Mutable working state for a single merge call."""

    # Insertion-ordered; dict keeps first-seen order for free.
    artists: dict[str, Artist] = field(default_factory=dict)
    counts: list[SourceMergeCount] = field(default_factory=list)
    dropped: int = 0


@dataclass(frozen=True)
class MergeResult:
    """Merged artists plus the counts that describe how they were merged."""

    artists: list[Artist]
    report: MergeReport


class ArtistMerger:
    """Deduplicates artists from several sources into one source-tagged list."""

    def __init__(self) -> None:
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Merging
    # ------------------------------------------------------------------

    def merge(
        self, sources: Mapping[SourceTag, Sequence[ArtistSourceRecord]]
    ) -> list[Artist]:
        """Return the deduplicated artists from *sources*.

        Output order is first-seen order but callers must not rely on it;
        sort explicitly when order matters.
        """
        return self.merge_with_report(sources).artists

    def merge_with_report(
        self, sources: Mapping[SourceTag, Sequence[ArtistSourceRecord]]
    ) -> MergeResult:
        """Merge *sources* and also return per-source counts."""
        accumulator = _MergeAccumulator()
        for tag in SourceTag:
            if tag in sources:
                accumulator = self._merge_source(accumulator, tag, sources[tag] or [])

        report = MergeReport(
            sources=accumulator.counts,
            unique_artists=len(accumulator.artists),
            dropped_records=accumulator.dropped,
        )
        self._logger.info(
            "artist_merge_complete",
            unique_artists=report.unique_artists,
            dropped_records=report.dropped_records,
        )
        return MergeResult(artists=list(accumulator.artists.values()), report=report)

    def _merge_source(
        self,
        accumulator: _MergeAccumulator,
        tag: SourceTag,
        records: Sequence[ArtistSourceRecord],
    ) -> _MergeAccumulator:
        new = 0
        duplicates = 0
        missing_id = 0

        for record in records:
            artist_id = (record.id or "").strip()
            if not artist_id:
                missing_id += 1
                self._logger.warning(
                    "artist_missing_id",
                    source=tag.value,
                    artist_name=record.name,
                )
                continue

            existing = accumulator.artists.get(artist_id)
            if existing is None:
                accumulator.artists[artist_id] = Artist(
                    id=artist_id,
                    name=record.name,
                    profile_url=record.profile_url,
                    sources=[tag],
                    genres=list(record.genres),
                    popularity=record.popularity,
                    follower_count=record.follower_count,
                )
                new += 1
                continue

            duplicates += 1
            if tag not in existing.sources:
                accumulator.artists[artist_id] = existing.model_copy(
                    update={"sources": [*existing.sources, tag]}
                )

        accumulator.counts.append(
            SourceMergeCount(
                source=tag,
                total=len(records),
                new=new,
                duplicates=duplicates,
                missing_id=missing_id,
            )
        )
        accumulator.dropped += missing_id

        self._logger.info(
            "artist_merge_source",
            source=tag.value,
            total=len(records),
            new=new,
            duplicates=duplicates,
            missing_id=missing_id,
        )
        return accumulator

    # ------------------------------------------------------------------
    # Reporting helpers
    # ------------------------------------------------------------------

    @classmethod
    def get_statistics(cls, artists: Sequence[Artist]) -> ArtistStatistics:
        """Count artists per source, multi-source artists and metadata coverage."""
        if not artists:
            return ArtistStatistics()

        by_source = {tag: len(cls.get_artists_by_source(artists, tag)) for tag in SourceTag}
        multiple = len(cls.get_multi_source_artists(artists))
        with_genres = sum(1 for a in artists if a.genres)
        popularity_values = [a.popularity for a in artists if a.popularity is not None]

        average = round(sum(popularity_values) / len(popularity_values)) if popularity_values else 0
        return ArtistStatistics(
            total=len(artists),
            by_source=by_source,
            multiple_source_count=multiple,
            with_genres=with_genres,
            with_popularity=len(popularity_values),
            average_popularity=average,
        )

    @staticmethod
    def get_multi_source_artists(artists: Sequence[Artist]) -> list[Artist]:
        """Artists seen in more than one source."""
        return [a for a in artists if len(a.sources) > 1]

    @staticmethod
    def get_artists_by_source(artists: Sequence[Artist], source: SourceTag) -> list[Artist]:
        """Artists tagged with *source*."""
        return [a for a in artists if source in a.sources]

    @staticmethod
    def get_sample_artists(artists: Sequence[Artist], count: int = 5) -> list[Artist]:
        """Pick *count* representative artists for display.

        Multi-source artists first, then by popularity (unknown last), then
        alphabetically.
        """
        ranked = sorted(
            artists,
            key=lambda a: (
                -len(a.sources),
                -(a.popularity if a.popularity is not None else -1),
                a.name.lower(),
            ),
        )
        return ranked[:count]

    @staticmethod
    def validate_artist_data(artists: Sequence[Artist]) -> DataQualityReport:
        """Count artists missing a name or profile URL, and name collisions."""
        missing_url = 0
        missing_name = 0
        duplicate_names = 0
        valid = 0
        seen_names: set[str] = set()

        for artist in artists:
            is_valid = True
            name = artist.name.strip()
            if not name:
                missing_name += 1
                is_valid = False
            else:
                # Same name under different ids.
                key = name.lower()
                if key in seen_names:
                    duplicate_names += 1
                else:
                    seen_names.add(key)

            if not artist.profile_url:
                missing_url += 1
                is_valid = False

            if is_valid:
                valid += 1

        return DataQualityReport(
            total=len(artists),
            missing_profile_url=missing_url,
            missing_name=missing_name,
            duplicate_names=duplicate_names,
            valid=valid,
        )
