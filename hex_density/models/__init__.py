"""Data models package for typed tract, hexagon and job structures."""

from .data_models import (
    M2_PER_KM2,
    DensityRecord,
    JobResult,
    JobSpec,
    JobStatus,
    Tract,
    TractAttributes,
    WorkChunk,
)

__all__ = [
    "M2_PER_KM2",
    "DensityRecord",
    "JobResult",
    "JobSpec",
    "JobStatus",
    "Tract",
    "TractAttributes",
    "WorkChunk",
]
