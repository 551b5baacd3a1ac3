#!/usr/bin/env python3
"""
Hexagon Density - Configuration

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Centralized default configuration for density jobs.
Single source of truth for regions, resolutions, input/output paths,
parallelism and persistence settings.

Configuration Sections (ordered by how often they are changed):
1. regions / resolutions: Which (region, resolution) jobs to run
2. parallel: Chunk-level vs job-level parallelism, worker ceiling
3. grid: Boundary policy and pre-filter buffer
4. checkpoint: Skip jobs whose output already exists
5. output: Which artifacts to write
6. document_store: Firestore upload settings
7. tracts: Tract table/geometry matching
8. file_paths: Input/output file locations (bottom - rarely changed)

The engine never reads this module directly: callers build an AppConfig
(config_types.py) from CONFIG and pass it explicitly.
"""

import os
from typing import Any, Callable, Dict, Optional, TypeVar

T = TypeVar("T")


def _env_or_default(
    key: str, default: T, type_fn: Optional[Callable[[str], T]] = None
) -> T:
    """
    Read an override from the environment, falling back to `default`.

    `type_fn` converts the raw string (int for worker counts, for example).
    """
    val = os.getenv(key)
    if val is not None:
        if type_fn is not None:
            return type_fn(val)
        return val  # type: ignore[return-value]
    return default


def _env_bool(key: str, default: bool) -> bool:
    """Boolean override: "true"/"1"/"yes" (any case) enable, unset keeps default."""
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")


# ═══════════════════════════════════════════════════════════════════════════
# 🔧 ENVIRONMENT VARIABLE OVERRIDES
# ═══════════════════════════════════════════════════════════════════════════
# HEXDENSITY_DATA_DIR       - root folder holding census/, tracts/, states/
# HEXDENSITY_OUTPUT_DIR     - where density/{region}/{resolution}/ is written
# HEXDENSITY_MAX_WORKERS    - int, -1 = cores minus reserve (default: -1)
# HEXDENSITY_PARALLEL_MODE  - "chunk" or "job" (default: "chunk")
# HEXDENSITY_STORE_ENABLED  - "true" to upsert results to Firestore
#
# Example usage:
#   HEXDENSITY_MAX_WORKERS=8 python -m hex_density.main --regions 32 --resolutions 7
# ═══════════════════════════════════════════════════════════════════════════

# ═══════════════════════════════════════════════════════════════════════════
# ⚙️ MASTER CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════

CONFIG: Dict[str, Any] = {
    # ═══════════════════════════════════════════════════════════════════════
    # 🎯 JOBS
    # ═══════════════════════════════════════════════════════════════════════
    # Region keys are state FIPS codes; one job per (region, resolution)
    "regions": ["32"],
    "resolutions": [7],
    # ═══════════════════════════════════════════════════════════════════════
    # ⚡ PARALLEL PROCESSING
    # ═══════════════════════════════════════════════════════════════════════
    "parallel": {
        # "chunk": jobs in sequence, hexagon chunks in parallel
        # "job":   jobs in parallel, each job's chunks in-process
        "mode": _env_or_default("HEXDENSITY_PARALLEL_MODE", "chunk"),
        "max_workers": _env_or_default("HEXDENSITY_MAX_WORKERS", -1, int),
        "reserve_cores": 1,
        "chunks_per_worker": 1,
        "backend": "loky",
        "verbose": 0,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 🔷 HEXAGON GRID
    # ═══════════════════════════════════════════════════════════════════════
    "grid": {
        # "first": only the first polygon of a MultiPolygon boundary
        # "all":   every polygon's outer ring, cells unioned
        "multipolygon_policy": "first",
        # Multiplier on the average edge length used to buffer tract boxes
        "prefilter_buffer_factor": 1.5,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 💾 CHECKPOINT
    # ═══════════════════════════════════════════════════════════════════════
    "checkpoint": {
        "enabled": True,
        "lock_timeout_s": 600.0,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 📤 OUTPUT ARTIFACTS
    # ═══════════════════════════════════════════════════════════════════════
    "output": {
        "write_hexagon_geojson": False,
        "write_tract_geojson": False,
        "json_indent": 2,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # ☁️ DOCUMENT STORE
    # ═══════════════════════════════════════════════════════════════════════
    "document_store": {
        "enabled": _env_bool("HEXDENSITY_STORE_ENABLED", False),
        "collection": "density",
        "batch_limit": 500,  # Firestore per-batch write ceiling
        "project": None,
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 🗺️ TRACTS
    # ═══════════════════════════════════════════════════════════════════════
    "tracts": {
        "id_column": "GEOID",
        "target_crs": "EPSG:4326",
    },
    # ═══════════════════════════════════════════════════════════════════════
    # 📁 FILE PATHS
    # ═══════════════════════════════════════════════════════════════════════
    # Templates are formatted with {region}; relative to data_dir
    "file_paths": {
        "data_dir": _env_or_default("HEXDENSITY_DATA_DIR", "."),
        "tract_attributes": "census/density/{region}.csv",
        "tract_geometry": "tracts/2020/tl_2020_{region}_tract.zip",
        "boundary": "states/{region}.geojson",
        "output_dir": _env_or_default("HEXDENSITY_OUTPUT_DIR", "density"),
        "log_dir": "logs",
    },
}
