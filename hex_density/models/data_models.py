"""
Typed data models for hexagon density estimation.

Architectural Overview:
=======================
Immutable dataclasses that flow through the density pipeline instead of
loose Dict[str, Any] payloads. Frozen instances are safe to share between
chunk workers without locking, which is what the tract index relies on.

Data Flow:
----------
1. Ingestion produces TractAttributes keyed by 6-digit tract code
2. The tract index pairs them with geometries into Tract instances
3. Workers emit one DensityRecord per hexagon
4. The pipeline wraps each (region, resolution) run in a JobSpec/JobResult

MODIFICATION POINT: Add new JobStatus values here for future job outcomes
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from shapely.geometry.base import BaseGeometry

M2_PER_KM2 = 1e6


# ═══════════════════════════════════════════════════════════════════════════
# 🏷️ ENUMS SECTION
# ═══════════════════════════════════════════════════════════════════════════


class JobStatus(Enum):
    """Outcome of a single (region, resolution) job."""

    COMPLETED = "completed"
    SKIPPED = "skipped"  # Checkpoint artifact already present
    FAILED = "failed"


# ═══════════════════════════════════════════════════════════════════════════
# 🗺️ TRACT SECTION
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TractAttributes:
    """Population and land area for one census tract code.

    land_area is in square metres. density is people per km² and is None
    when land_area <= 0 (such tracts never enter the index).
    """

    population: float
    land_area: float

    @property
    def density(self) -> Optional[float]:
        if self.land_area <= 0:
            return None
        return self.population / self.land_area * M2_PER_KM2


@dataclass(frozen=True)
class Tract:
    """Census tract polygon annotated with its population density.

    Attributes:
        identifier: Full geometry identifier (e.g. 11-char GEOID)
        geometry: Polygon or MultiPolygon in the index coordinate system
        population: Raw population count
        land_area: Land area in m² (always > 0 inside an index)
        density: population / land_area * 1e6 (people per km²)
    """

    identifier: str
    geometry: BaseGeometry = field(compare=False, repr=False)
    population: float
    land_area: float
    density: float

    @property
    def tract_code(self) -> str:
        """Trailing 6-digit code used to match tabular records."""
        return self.identifier[-6:]

    def as_properties(self) -> Dict[str, Any]:
        """Properties block for GeoJSON export."""
        return {
            "GEOID": self.identifier,
            "DENSITY": self.density,
            "POPULATION": self.population,
            "AREALAND": self.land_area,
        }


# ═══════════════════════════════════════════════════════════════════════════
# 🔷 HEXAGON SECTION
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class DensityRecord:
    """Estimated population and density for one hexagon.

    density is None for degenerate (zero-area) cells. NaN is rejected at
    construction so it can never reach an output artifact.
    """

    hex_id: str
    estimated_population: float
    density: Optional[float]
    degenerate: bool = False

    def __post_init__(self) -> None:
        if math.isnan(self.estimated_population) or self.estimated_population < 0:
            raise ValueError(
                f"estimated_population must be >= 0, got {self.estimated_population} "
                f"for {self.hex_id}"
            )
        if self.density is not None and math.isnan(self.density):
            raise ValueError(f"density must not be NaN for {self.hex_id}")

    def as_dict(self) -> Dict[str, Any]:
        """Flat output shape: {hex, density, estimatedPopulation}."""
        return {
            "hex": self.hex_id,
            "density": self.density,
            "estimatedPopulation": self.estimated_population,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DensityRecord":
        """Rebuild from as_dict() output (density may be null)."""
        density = d.get("density")
        return cls(
            hex_id=d["hex"],
            estimated_population=float(d.get("estimatedPopulation") or 0.0),
            density=None if density is None else float(density),
            degenerate=density is None,
        )


@dataclass(frozen=True)
class WorkChunk:
    """Contiguous slice of a job's hexagon ids handled by one worker call.

    The tract index is not stored here: the worker pool attaches it as the
    shared read-only context so it is serialized once per job, not per chunk.
    """

    index: int
    hex_ids: Tuple[str, ...]

    def __len__(self) -> int:
        return len(self.hex_ids)


# ═══════════════════════════════════════════════════════════════════════════
# 📋 JOB SECTION
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class JobSpec:
    """One (region, resolution) unit of work."""

    region: str
    resolution: int

    def __post_init__(self) -> None:
        if not self.region:
            raise ValueError("region must be a non-empty string")

    @property
    def key(self) -> str:
        """Filesystem-safe key, also used for lock file names."""
        safe_region = "".join(c if c.isalnum() else "_" for c in self.region)
        return f"{safe_region}_r{self.resolution}"

    def __str__(self) -> str:
        return f"{self.region}@r{self.resolution}"


@dataclass(frozen=True)
class JobResult:
    """Outcome of running (or skipping) a JobSpec."""

    job: JobSpec
    status: JobStatus
    hex_count: int = 0
    output_path: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status != JobStatus.FAILED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "region": self.job.region,
            "resolution": self.job.resolution,
            "status": self.status.value,
            "hex_count": self.hex_count,
            "output_path": self.output_path,
            "error": self.error,
            "error_type": self.error_type,
            "duration_seconds": round(self.duration_seconds, 2),
        }
