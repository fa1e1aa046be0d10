"""Build and packaging pipeline."""

from .image import ImageDescriptor, ImageTarget, read_project_metadata
from .pipeline import BuildPipeline, CoverageReports, PipelineError

__all__ = [
    "ImageDescriptor",
    "ImageTarget",
    "read_project_metadata",
    "BuildPipeline",
    "CoverageReports",
    "PipelineError",
]
