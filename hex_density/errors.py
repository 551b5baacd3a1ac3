"""
Exception taxonomy for density jobs.

Every failure that abandons a (region, resolution) job derives from
DensityJobError so the pipeline can isolate it from sibling jobs.
Zero-area cells are NOT an error: they are flagged on the DensityRecord.
"""

from typing import Optional


class DensityJobError(Exception):
    """Base class for failures that abandon a single density job."""

    def __init__(
        self,
        message: str,
        region: Optional[str] = None,
        resolution: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.region = region
        self.resolution = resolution

    def with_job(self, region: str, resolution: int) -> "DensityJobError":
        """Attach job identity if the raiser did not know it."""
        if self.region is None:
            self.region = region
        if self.resolution is None:
            self.resolution = resolution
        return self

    def __str__(self) -> str:
        if self.region is None:
            return self.message
        return f"[{self.region}@r{self.resolution}] {self.message}"


class InputMissing(DensityJobError):
    """A tract table, tract geometry archive or boundary file is absent."""


class UnsupportedGeometry(DensityJobError):
    """Boundary or tract geometry type (or GeoJSON wrapper) not handled."""


class WorkerFailure(DensityJobError):
    """A chunk worker crashed or reported an internal error."""

    def __init__(
        self,
        message: str,
        region: Optional[str] = None,
        resolution: Optional[int] = None,
        chunk_index: Optional[int] = None,
    ) -> None:
        super().__init__(message, region, resolution)
        self.chunk_index = chunk_index


class PersistenceFailure(DensityJobError):
    """Writing an output artifact or upserting to the document store failed."""


class InvalidResolution(DensityJobError, ValueError):
    """Resolution is not a supported tier of the hexagonal grid."""


__all__ = [
    "DensityJobError",
    "InputMissing",
    "UnsupportedGeometry",
    "WorkerFailure",
    "PersistenceFailure",
    "InvalidResolution",
]
