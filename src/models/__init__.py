"""Release Radar domain models - re-exports all public model classes.

The models are organized across two submodules by concern:
    - catalog.py - artists, releases, partial dates, catalog pages, enums
    - run.py     - per-artist outcomes, run summary, progress, statistics

If you add a new model class, remember to add it to ``__all__`` too.
"""

from __future__ import annotations

from src.models.catalog import (
    Artist,
    ArtistSourceRecord,
    CatalogPage,
    ClassifiedRelease,
    DatePrecision,
    ErrorKind,
    PartialDate,
    RawRelease,
    ReleaseCategory,
    ReleaseType,
    SourceTag,
)
from src.models.run import (
    ArtistStatistics,
    BatchRunResult,
    DataQualityReport,
    MergeReport,
    ReleaseReport,
    ReleaseStatistics,
    RetrievalOutcome,
    RunPhase,
    RunProgress,
    RunSummary,
    SourceMergeCount,
)

__all__ = [
    "Artist",
    "ArtistSourceRecord",
    "ArtistStatistics",
    "BatchRunResult",
    "CatalogPage",
    "ClassifiedRelease",
    "DataQualityReport",
    "DatePrecision",
    "ErrorKind",
    "MergeReport",
    "PartialDate",
    "RawRelease",
    "ReleaseCategory",
    "ReleaseReport",
    "ReleaseStatistics",
    "ReleaseType",
    "RetrievalOutcome",
    "RunPhase",
    "RunProgress",
    "RunSummary",
    "SourceMergeCount",
    "SourceTag",
]
