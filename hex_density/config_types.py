"""
═══════════════════════════════════════════════════════════════════════════════
📋 DENSITY JOB CONFIGURATION TYPES
═══════════════════════════════════════════════════════════════════════════════

ARCHITECTURAL OVERVIEW
----------------------
Responsibility: Define all configuration dataclasses for density jobs.
Replaces CONFIG dictionary access with typed, validated config objects that
are passed explicitly into the engine (no module-level state is read while
a job runs).

Usage:
    from hex_density.config import CONFIG
    from hex_density.config_types import AppConfig

    app_config = AppConfig.from_dict(CONFIG)
    results = run_jobs(app_config.jobs(), app_config)

NAVIGATION GUIDE
----------------
# ═════ 1. FILE PATHS CONFIGURATION
# ═════ 2. TRACTS CONFIGURATION
# ═════ 3. HEXAGON GRID CONFIGURATION
# ═════ 4. PARALLEL PROCESSING CONFIGURATION
# ═════ 5. CHECKPOINT CONFIGURATION
# ═════ 6. OUTPUT CONFIGURATION
# ═════ 7. DOCUMENT STORE CONFIGURATION
# ═════ 8. APP CONFIG (MASTER FACADE)

═══════════════════════════════════════════════════════════════════════════════
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pyproj import CRS
from pyproj.exceptions import CRSError

from hex_density.models import JobSpec


# ═══════════════════════════════════════════════════════════════════════════════
# 📁 1. FILE PATHS CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class FilePathsConfig:
    """
    Where per-region inputs are read from and artifacts are written to.

    Input templates are formatted with ``{region}`` and resolved against
    data_dir. output_dir and log_dir are used as given.

    Attributes:
        data_dir: Root folder for the three per-region inputs.
        tract_attributes: Template for the TRACT,POP100,AREALAND CSV.
        tract_geometry: Template for the zipped tract shapefile.
        boundary: Template for the region boundary GeoJSON.
        output_dir: Root of density/{region}/{resolution}/ artifacts.
        log_dir: Directory for run log folders.
    """

    data_dir: str = "."
    tract_attributes: str = "census/density/{region}.csv"
    tract_geometry: str = "tracts/2020/tl_2020_{region}_tract.zip"
    boundary: str = "states/{region}.geojson"
    output_dir: str = "density"
    log_dir: str = "logs"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FilePathsConfig":
        return cls(
            data_dir=d.get("data_dir", "."),
            tract_attributes=d.get("tract_attributes", "census/density/{region}.csv"),
            tract_geometry=d.get(
                "tract_geometry", "tracts/2020/tl_2020_{region}_tract.zip"
            ),
            boundary=d.get("boundary", "states/{region}.geojson"),
            output_dir=d.get("output_dir", "density"),
            log_dir=d.get("log_dir", "logs"),
        )

    def _resolve(self, template: str, region: str) -> Path:
        return Path(self.data_dir) / template.format(region=region)

    def tract_attributes_path(self, region: str) -> Path:
        return self._resolve(self.tract_attributes, region)

    def tract_geometry_path(self, region: str) -> Path:
        return self._resolve(self.tract_geometry, region)

    def boundary_path(self, region: str) -> Path:
        return self._resolve(self.boundary, region)

    @property
    def output_path(self) -> Path:
        return Path(self.output_dir)

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir)


# ═══════════════════════════════════════════════════════════════════════════════
# 🗺️ 2. TRACTS CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TractsConfig:
    """
    Tract geometry matching settings.

    Attributes:
        id_column: Geometry attribute holding the full tract identifier.
        target_crs: CRS the tract geometries are reprojected to. Must be
            geographic (lng/lat degrees) to line up with H3 cell polygons.
    """

    id_column: str = "GEOID"
    target_crs: str = "EPSG:4326"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TractsConfig":
        """Create TractsConfig from CONFIG['tracts'] dictionary."""
        return cls(
            id_column=d.get("id_column", "GEOID"),
            target_crs=d.get("target_crs", "EPSG:4326"),
        )

    def __post_init__(self) -> None:
        """Validate tract configuration."""
        try:
            crs = CRS.from_user_input(self.target_crs)
        except CRSError as e:
            raise ValueError(f"Invalid target_crs {self.target_crs!r}: {e}") from e
        if not crs.is_geographic:
            raise ValueError(
                f"target_crs must be geographic (lng/lat), got {self.target_crs!r}"
            )


# ═══════════════════════════════════════════════════════════════════════════════
# 🔷 3. HEXAGON GRID CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class GridConfig:
    """
    Boundary handling and tract pre-filter settings.

    Attributes:
        multipolygon_policy: "first" (first polygon only) or "all".
        prefilter_buffer_factor: Multiplier on the resolution's average
            edge length used to grow each tract's bounding box.
    """

    multipolygon_policy: str = "first"
    prefilter_buffer_factor: float = 1.5

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "GridConfig":
        """Create GridConfig from CONFIG['grid'] dictionary."""
        return cls(
            multipolygon_policy=d.get("multipolygon_policy", "first"),
            prefilter_buffer_factor=d.get("prefilter_buffer_factor", 1.5),
        )

    def __post_init__(self) -> None:
        """Validate grid configuration."""
        if self.multipolygon_policy not in ("first", "all"):
            raise ValueError(
                "multipolygon_policy must be 'first' or 'all', "
                f"got {self.multipolygon_policy}"
            )
        if self.prefilter_buffer_factor < 1.0:
            raise ValueError(
                "prefilter_buffer_factor must be >= 1.0, "
                f"got {self.prefilter_buffer_factor}"
            )


# ═══════════════════════════════════════════════════════════════════════════════
# ⚡ 4. PARALLEL PROCESSING CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ParallelConfig:
    """
    Worker pool settings shared by chunk-level and job-level dispatch.

    Attributes:
        mode: "chunk" (jobs sequential, chunks parallel) or "job"
            (jobs parallel, chunks in-process).
        enabled: Master toggle; False forces a single in-process worker.
        max_workers: Worker ceiling (-1 = cpu_count - reserve_cores).
        reserve_cores: Cores left free when max_workers is -1.
        chunks_per_worker: Chunks produced per worker for load balancing.
        backend: Joblib backend ("loky" = process-based, "threading").
        verbose: Joblib verbosity level (0-10).
    """

    mode: str = "chunk"
    enabled: bool = True
    max_workers: int = -1
    reserve_cores: int = 1
    chunks_per_worker: int = 1
    backend: str = "loky"
    verbose: int = 0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ParallelConfig":
        return cls(
            mode=d.get("mode", "chunk"),
            enabled=d.get("enabled", True),
            max_workers=d.get("max_workers", -1),
            reserve_cores=d.get("reserve_cores", 1),
            chunks_per_worker=d.get("chunks_per_worker", 1),
            backend=d.get("backend", "loky"),
            verbose=d.get("verbose", 0),
        )

    def __post_init__(self) -> None:
        """Validate parallel configuration."""
        if self.mode not in ("chunk", "job"):
            raise ValueError(f"mode must be 'chunk' or 'job', got {self.mode}")
        if self.max_workers == 0 or self.max_workers < -1:
            raise ValueError(
                f"max_workers must be -1 or a positive int, got {self.max_workers}"
            )
        if self.reserve_cores < 0:
            raise ValueError(f"reserve_cores must be >= 0, got {self.reserve_cores}")
        if self.chunks_per_worker < 1:
            raise ValueError(
                f"chunks_per_worker must be >= 1, got {self.chunks_per_worker}"
            )
        if self.backend not in ("loky", "multiprocessing", "threading"):
            raise ValueError(f"unsupported joblib backend: {self.backend}")


# ═══════════════════════════════════════════════════════════════════════════════
# 💾 5. CHECKPOINT CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CheckpointConfig:
    """
    Job-level checkpointing.

    Attributes:
        enabled: Skip a job when its primary output artifact exists.
        lock_timeout_s: Seconds to wait for another process holding the
            same job's lock before giving up.
    """

    enabled: bool = True
    lock_timeout_s: float = 600.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CheckpointConfig":
        """Create CheckpointConfig from CONFIG['checkpoint'] dictionary."""
        return cls(
            enabled=d.get("enabled", True),
            lock_timeout_s=d.get("lock_timeout_s", 600.0),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# 📤 6. OUTPUT CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class OutputConfig:
    """Optional GeoJSON artifacts written next to the density JSON."""

    write_hexagon_geojson: bool = False
    write_tract_geojson: bool = False
    json_indent: Optional[int] = 2

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "OutputConfig":
        """Create OutputConfig from CONFIG['output'] dictionary."""
        return cls(
            write_hexagon_geojson=d.get("write_hexagon_geojson", False),
            write_tract_geojson=d.get("write_tract_geojson", False),
            json_indent=d.get("json_indent", 2),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# ☁️ 7. DOCUMENT STORE CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class DocumentStoreConfig:
    """
    Firestore upsert settings.

    Attributes:
        enabled: Upsert each job's records after computing them.
        collection: Target collection; documents are keyed by hexagon id.
        batch_limit: Store-imposed per-batch write ceiling. A batch is
            committed once it holds batch_limit - 1 writes.
        project: Optional GCP project id (None = client default).
    """

    enabled: bool = False
    collection: str = "density"
    batch_limit: int = 500
    project: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DocumentStoreConfig":
        """Create DocumentStoreConfig from CONFIG['document_store'] dictionary."""
        return cls(
            enabled=d.get("enabled", False),
            collection=d.get("collection", "density"),
            batch_limit=d.get("batch_limit", 500),
            project=d.get("project"),
        )

    def __post_init__(self) -> None:
        if self.batch_limit < 2:
            raise ValueError(f"batch_limit must be >= 2, got {self.batch_limit}")


# ═══════════════════════════════════════════════════════════════════════════════
# 🎯 8. APP CONFIG (MASTER FACADE)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class AppConfig:
    """
    Typed view of CONFIG handed to the engine entry points.

    Create it once at startup using AppConfig.from_dict(CONFIG) and pass it
    to run_jobs()/run_job(). Nothing inside the engine reads CONFIG.

    Attributes:
        regions: Region keys to process.
        resolutions: Grid resolutions to process per region.
        file_paths: File path configuration.
        tracts: Tract matching configuration.
        grid: Boundary policy and pre-filter buffer.
        parallel: Parallel processing configuration.
        checkpoint: Job-level checkpoint configuration.
        output: Optional artifact toggles.
        document_store: Firestore upsert configuration.
    """

    regions: Tuple[str, ...] = ("32",)
    resolutions: Tuple[int, ...] = (7,)

    file_paths: FilePathsConfig = field(default_factory=FilePathsConfig)
    tracts: TractsConfig = field(default_factory=TractsConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)
    checkpoint: CheckpointConfig = field(default_factory=CheckpointConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    document_store: DocumentStoreConfig = field(default_factory=DocumentStoreConfig)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "AppConfig":
        """Build every section from a CONFIG-shaped dict; missing keys take defaults."""
        return cls(
            regions=tuple(str(r) for r in config_dict.get("regions", ["32"])),
            resolutions=tuple(int(r) for r in config_dict.get("resolutions", [7])),
            file_paths=FilePathsConfig.from_dict(config_dict.get("file_paths", {})),
            tracts=TractsConfig.from_dict(config_dict.get("tracts", {})),
            grid=GridConfig.from_dict(config_dict.get("grid", {})),
            parallel=ParallelConfig.from_dict(config_dict.get("parallel", {})),
            checkpoint=CheckpointConfig.from_dict(config_dict.get("checkpoint", {})),
            output=OutputConfig.from_dict(config_dict.get("output", {})),
            document_store=DocumentStoreConfig.from_dict(
                config_dict.get("document_store", {})
            ),
        )

    def jobs(self) -> List[JobSpec]:
        """Cartesian product of regions x resolutions, region-major."""
        return [JobSpec(r, res) for r in self.regions for res in self.resolutions]

    @property
    def log_dir(self) -> Path:
        """Parent of the run_{MMDD}_{HHMM} log folders."""
        return self.file_paths.log_path

    @property
    def output_dir(self) -> Path:
        """Root of the {region}/{resolution}/ artifact tree."""
        return self.file_paths.output_path
