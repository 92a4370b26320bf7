"""Reconcile NEON carabid identifications and aggregate them into trap counts."""
from .errors import SampleDataError
from .pipeline import CarabidCountPipeline, PipelineResult
from .provider import DataProvider, DirectoryProvider, FrameProvider

__all__ = [
    "CarabidCountPipeline",
    "DataProvider",
    "DirectoryProvider",
    "FrameProvider",
    "PipelineResult",
    "SampleDataError",
]
