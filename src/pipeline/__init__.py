"""Pipeline orchestration components for the release check."""

from src.pipeline.orchestrator import ReleaseAggregationPipeline
from src.pipeline.progress_tracker import ProgressTracker

__all__ = [
    "ProgressTracker",
    "ReleaseAggregationPipeline",
]
