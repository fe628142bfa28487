"""Output formatting for release reports.

Two output modes are supported:

- **JSON** - :meth:`OutputFormatter.format_report` returns a plain,
  JSON-serialisable dictionary (releases, run summary, statistics).
- **Text** - :meth:`OutputFormatter.format_text` renders the terminal
  listing: a header, one block per release, and the run summary.
"""

from __future__ import annotations

from typing import Any

from src.models.catalog import ClassifiedRelease, PartialDate, ReleaseCategory
from src.models.run import ReleaseReport, RunSummary
from src.utils.logging import get_logger

_TITLE = "New Releases from Your Artists"
_SEPARATOR = "=" * 47
_ALBUM_URL = "https://open.spotify.com/album/{release_id}"


def format_release_date(release_date: PartialDate | None) -> str:
    """Show a partial date rounded down to a full ``YYYY-MM-DD`` date."""
    if release_date is None:
        return "Unknown date"
    return release_date.as_date().isoformat()


def format_track_count(track_count: int) -> str:
    if track_count < 1:
        return "0 tracks"
    return "1 track" if track_count == 1 else f"{track_count} tracks"


class OutputFormatter:
    """Turns a :class:`ReleaseReport` into JSON-ready data or terminal text."""

    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    def format_report(
        self, report: ReleaseReport, window_days: int, limit: int | None = None
    ) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary for *report*.

        Parameters
        ----------
        report:
            Result of a release check.
        window_days:
            Window the check used, echoed in the output.
        limit:
            Show at most this many releases; the summary still counts all.
        """
        releases = report.releases if limit is None else report.releases[:limit]
        result: dict[str, Any] = {
            "window_days": window_days,
            "releases": [self._release_dict(r) for r in releases],
            "summary": report.summary.model_dump(mode="json"),
            "statistics": report.release_statistics.model_dump(mode="json"),
            "artist_statistics": report.artist_statistics.model_dump(mode="json"),
            "data_quality": report.data_quality.model_dump(mode="json"),
            "sample_artists": [
                {"id": a.id, "name": a.name, "sources": [s.value for s in a.sources]}
                for a in report.sample_artists
            ],
        }
        if report.merge_report is not None:
            result["artist_sources"] = report.merge_report.model_dump(mode="json")

        self._logger.debug("report_formatted", releases=len(releases), mode="json")
        return result

    @staticmethod
    def _release_dict(release: ClassifiedRelease) -> dict[str, Any]:
        return {
            "id": release.id,
            "name": release.name,
            "category": release.category.value,
            "artist_id": release.artist_id,
            "artist_name": release.artist_name,
            "release_date": format_release_date(release.release_date),
            "release_date_precision": (
                release.release_date.precision.value if release.release_date else None
            ),
            "track_count": release.track_count,
            "url": release.url or _ALBUM_URL.format(release_id=release.id),
        }

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    def format_text(
        self, report: ReleaseReport, window_days: int, limit: int | None = None
    ) -> str:
        """Render the terminal listing for *report*."""
        releases = report.releases if limit is None else report.releases[:limit]
        lines: list[str] = [_TITLE]

        if not report.releases:
            lines.append(f"No new albums or EPs found in the last {window_days} days.")
        else:
            noun = "album/EP" if len(report.releases) == 1 else "albums/EPs"
            lines.append(f"Found {len(report.releases)} new {noun} in the last {window_days} days")
            lines.append(_SEPARATOR)
            for release in releases:
                lines.extend(self._release_lines(release))
                lines.append("")
            hidden = len(report.releases) - len(releases)
            if hidden > 0:
                lines.append(f"... and {hidden} more")

        lines.append("")
        lines.extend(self._summary_lines(report.summary))
        lines.extend(self._artist_lines(report))
        return "\n".join(lines)

    @staticmethod
    def _release_lines(release: ClassifiedRelease) -> list[str]:
        label = "EP" if release.category == ReleaseCategory.EP else "Album"
        url = release.url or _ALBUM_URL.format(release_id=release.id)
        return [
            f"Artist: {release.artist_name or 'Unknown Artist'}",
            f"{label + ':':<7} {release.name or 'Unknown Album'} "
            f"({format_track_count(release.track_count)})",
            f"Link:   {url}",
            f"Date:   {format_release_date(release.release_date)}",
        ]

    @staticmethod
    def _summary_lines(summary: RunSummary) -> list[str]:
        lines = [
            f"Artists checked: {summary.succeeded_artists}/{summary.total_artists}",
        ]
        if summary.failed_artist_ids:
            lines.append(
                f"Failed artists ({len(summary.failed_artist_ids)}): "
                + ", ".join(summary.failed_artist_ids)
            )
        if summary.cancelled:
            lines.append("Run was cancelled; results are partial.")
        return lines

    @staticmethod
    def _artist_lines(report: ReleaseReport) -> list[str]:
        stats = report.artist_statistics
        if stats.total == 0:
            return []
        per_source = ", ".join(
            f"{tag.value.replace('_', ' ')} {count}" for tag, count in stats.by_source.items()
        )
        lines = [
            f"Artists: {stats.total} ({per_source}; "
            f"{stats.multiple_source_count} in several sources)",
        ]
        if report.sample_artists:
            lines.append("Sample: " + ", ".join(a.name or a.id for a in report.sample_artists))

        quality = report.data_quality
        if quality.valid < quality.total:
            lines.append(
                f"Data quality: {quality.valid}/{quality.total} complete "
                f"({quality.missing_profile_url} without link, "
                f"{quality.missing_name} without name, "
                f"{quality.duplicate_names} duplicate names)"
            )
        return lines
