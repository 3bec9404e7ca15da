"""Podcast workflow orchestration components."""

from docpod.pipeline.podcast_workflow import PodcastWorkflow
from docpod.pipeline.progress_tracker import ProgressTracker

__all__ = [
    "PodcastWorkflow",
    "ProgressTracker",
]
