"""Release classification and recency filtering.

Decides whether a catalog release is an album, an EP, or a single (which is
dropped), then keeps only releases inside the recency window, removes
duplicates, and orders the result newest-first.

EP heuristic
------------
The catalog files EPs under the ``single`` type.  A single is promoted to
EP when it has four or more tracks, or when its name contains ``"ep"``
anywhere (case-insensitive).  The substring test is deliberately loose:
"Deep Cuts" counts as an EP.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

import structlog

from src.models.catalog import ClassifiedRelease, RawRelease, ReleaseCategory, ReleaseType
from src.models.run import ReleaseStatistics
from src.utils.logging import get_logger
from src.utils.release_dates import is_within, newest_first_key

EP_MIN_TRACKS = 4
_EP_NAME_MARKER = "ep"


class ReleaseClassifier:
    """Classifies, filters and sorts raw catalog releases.

    Stateless: every method is pure apart from logging, so one instance can
    be shared across runs.
    """

    def __init__(self) -> None:
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def classify(self, release: RawRelease) -> ReleaseCategory | None:
        """Return the release's category, or ``None`` if it should be excluded."""
        if release.release_type == ReleaseType.ALBUM:
            return ReleaseCategory.ALBUM

        if release.release_type == ReleaseType.SINGLE:
            if release.track_count >= EP_MIN_TRACKS:
                return ReleaseCategory.EP
            if _EP_NAME_MARKER in release.name.lower():
                return ReleaseCategory.EP
            return None

        # Compilations and appears-on releases.
        return None

    def filter_and_sort(
        self,
        releases: Iterable[RawRelease],
        window_days: int,
        now: datetime | None = None,
    ) -> list[ClassifiedRelease]:
        """Classify, window-filter, deduplicate and sort *releases*.

        Parameters
        ----------
        releases:
            Raw releases from any number of artists, in any order.
        window_days:
            Recency window; releases older than this are dropped.
        now:
            Reference instant for the window (defaults to the current time).

        Returns
        -------
        list[ClassifiedRelease]
            Albums and EPs inside the window, one per release id (first
            occurrence kept), newest first with undated releases last.
        """
        kept: list[ClassifiedRelease] = []
        seen_ids: set[str] = set()
        excluded = 0
        stale = 0
        duplicates = 0

        for release in releases:
            category = self.classify(release)
            if category is None:
                excluded += 1
                continue
            if not is_within(release.release_date, window_days, now):
                stale += 1
                continue
            if release.id in seen_ids:
                duplicates += 1
                continue
            seen_ids.add(release.id)
            kept.append(
                ClassifiedRelease(**release.model_dump(), category=category)
            )

        # sorted() is stable, so equal dates keep retrieval order.
        kept = sorted(kept, key=lambda r: newest_first_key(r.release_date))

        self._logger.info(
            "releases_classified",
            kept=len(kept),
            excluded_singles=excluded,
            outside_window=stale,
            duplicates=duplicates,
            window_days=window_days,
        )
        return kept

    @staticmethod
    def get_statistics(releases: Sequence[RawRelease]) -> ReleaseStatistics:
        """Summarize releases by type and year, with average track count."""
        if not releases:
            return ReleaseStatistics()

        by_type: dict[str, int] = {}
        by_year: dict[str, int] = {}
        total_tracks = 0
        artist_ids: set[str] = set()

        for release in releases:
            type_key = release.release_type.value
            by_type[type_key] = by_type.get(type_key, 0) + 1
            total_tracks += release.track_count
            if release.release_date is not None:
                year_key = f"{release.release_date.year:04d}"
                by_year[year_key] = by_year.get(year_key, 0) + 1
            artist_ids.add(release.artist_id)

        return ReleaseStatistics(
            total=len(releases),
            by_type=by_type,
            by_year=by_year,
            average_tracks=round(total_tracks / len(releases)),
            unique_artists=len(artist_ids),
        )
