"""
Hexagon Density - area-weighted census tract density on an H3 grid.

For every (region, resolution) job the engine covers the region boundary
with H3 cells, intersects each cell with the census tracts around it and
writes {hex_id: {hex, density, estimatedPopulation}} to
density/{region}/{resolution}/{region}.json (optionally upserting the same
records to Firestore).

Usage:
    from hex_density import CONFIG, AppConfig, run_jobs

    app_config = AppConfig.from_dict(CONFIG)
    results = run_jobs(app_config.jobs(), app_config)
"""

from hex_density.config import CONFIG
from hex_density.config_types import AppConfig
from hex_density.errors import (
    DensityJobError,
    InputMissing,
    InvalidResolution,
    PersistenceFailure,
    UnsupportedGeometry,
    WorkerFailure,
)
from hex_density.models import DensityRecord, JobResult, JobSpec, JobStatus
from hex_density.pipeline import run_job, run_jobs

__all__ = [
    "CONFIG",
    "AppConfig",
    "run_job",
    "run_jobs",
    "JobSpec",
    "JobResult",
    "JobStatus",
    "DensityRecord",
    "DensityJobError",
    "InputMissing",
    "UnsupportedGeometry",
    "WorkerFailure",
    "PersistenceFailure",
    "InvalidResolution",
]
