"""
Hexagon Density Export Module - JSON and GeoJSON artifacts.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Write a job's merged density records (and optionally the
hexagon polygons and indexed tracts) to the local file system.

Export Formats:
- JSON: {hex_id: {hex, density, estimatedPopulation}} - primary artifact
- GeoJSON: Hexagon polygons with hex_id, density, estimated_population
- GeoJSON: Indexed tracts with GEOID, DENSITY, POPULATION, AREALAND

Every file is written to a temp file in the target directory, then moved
into place with os.replace(), so readers never see a half-written artifact.
JSON is dumped with allow_nan=False: an undefined density is written as
null, and a NaN anywhere fails the write instead of producing invalid JSON.

Any write error is raised as PersistenceFailure.

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from shapely.geometry import mapping

from hex_density.errors import PersistenceFailure
from hex_density.grid import cell_polygon
from hex_density.models import DensityRecord
from hex_density.tract_index import TractIndex

logger = logging.getLogger("HexDensity.Exporters")

PathLike = Union[str, Path]


# ═══════════════════════════════════════════════════════════════════════════
# 🔧 HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════


def write_json_atomic(
    data: Any, output_path: PathLike, indent: Optional[int] = 2
) -> Path:
    """
    Serialize data to output_path via temp file + os.replace().

    Raises:
        PersistenceFailure: directory creation, serialization or rename failed
    """
    output_path = Path(output_path)
    tmp_name = None
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=output_path.parent,
            prefix=f".{output_path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp_name = f.name
            json.dump(data, f, indent=indent, allow_nan=False)
        os.replace(tmp_name, output_path)
        tmp_name = None
    except (OSError, TypeError, ValueError) as e:
        raise PersistenceFailure(f"Failed to write {output_path}: {e}") from e
    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)
    return output_path


def _feature_collection(features: list) -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": features}


# ═══════════════════════════════════════════════════════════════════════════
# 📤 DENSITY JSON
# ═══════════════════════════════════════════════════════════════════════════


def density_records_to_dict(
    records: Mapping[str, DensityRecord],
) -> Dict[str, Dict[str, Any]]:
    """Flat output mapping, keys in sorted order for stable files."""
    return {hex_id: records[hex_id].as_dict() for hex_id in sorted(records)}


def export_density_json(
    records: Mapping[str, DensityRecord],
    output_path: PathLike,
    indent: Optional[int] = 2,
) -> Path:
    """
    Write the primary {hex_id: {hex, density, estimatedPopulation}} artifact.

    Args:
        records: Merged hex_id -> DensityRecord mapping
        output_path: Target JSON file
        indent: JSON indent (None for compact)

    Returns:
        Path written
    """
    path = write_json_atomic(density_records_to_dict(records), output_path, indent)
    logger.info(f"   💾 Density JSON: {path} ({len(records)} hexagons)")
    return path


def load_density_json(path: PathLike) -> Dict[str, DensityRecord]:
    """
    Read a density JSON artifact back into DensityRecord values.

    Raises:
        PersistenceFailure: file unreadable or not a hex_id -> record mapping
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return {
            hex_id: DensityRecord.from_dict({"hex": hex_id, **entry})
            for hex_id, entry in raw.items()
        }
    except (OSError, ValueError, TypeError, AttributeError, KeyError) as e:
        raise PersistenceFailure(f"Failed to read density JSON {path}: {e}") from e


# ═══════════════════════════════════════════════════════════════════════════
# 🗺️ GEOJSON EXPORT
# ═══════════════════════════════════════════════════════════════════════════


def hexagon_feature(record: DensityRecord) -> Dict[str, Any]:
    """GeoJSON Feature for one hexagon (polygon in lng/lat)."""
    return {
        "type": "Feature",
        "geometry": mapping(cell_polygon(record.hex_id)),
        "properties": {
            "hex_id": record.hex_id,
            "density": record.density,
            "estimated_population": record.estimated_population,
        },
    }


def export_hexagon_geojson(
    records: Mapping[str, DensityRecord], output_path: PathLike
) -> Path:
    """Write hexagon polygons with density properties as a FeatureCollection."""
    features = [hexagon_feature(records[hex_id]) for hex_id in sorted(records)]
    path = write_json_atomic(_feature_collection(features), output_path, indent=None)
    logger.info(f"   🗺️ Hexagon GeoJSON: {path} ({len(features)} features)")
    return path


def export_tract_geojson(tract_index: TractIndex, output_path: PathLike) -> Path:
    """Write the indexed tracts (with DENSITY etc. properties) as GeoJSON."""
    features = [
        {
            "type": "Feature",
            "geometry": mapping(tract.geometry),
            "properties": tract.as_properties(),
        }
        for tract in tract_index
    ]
    path = write_json_atomic(_feature_collection(features), output_path, indent=None)
    logger.info(f"   🗺️ Tract GeoJSON: {path} ({len(features)} features)")
    return path


__all__ = [
    "write_json_atomic",
    "density_records_to_dict",
    "export_density_json",
    "load_density_json",
    "hexagon_feature",
    "export_hexagon_geojson",
    "export_tract_geojson",
]
