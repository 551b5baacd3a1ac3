"""
Input loaders and preparation utilities.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Read the three per-region inputs into the plain structures
the engine consumes, and prepare those inputs from raw downloads.

Loaders (one job each):
- load_tract_attributes():  TRACT,POP100,AREALAND CSV -> {code: TractAttributes}
- load_tract_geometries():  zipped shapefile / GeoJSON -> [(GEOID, geometry)]
- load_boundary_geojson():  region boundary file -> GeoJSON dict

Preparation:
- condense_census_table()/condense_census_file(): raw census table ->
  TRACT,POP100,AREALAND, first row per tract, sorted by population desc
- condense_census_directory(): every {Name}_{ST}.csv -> density/{fips}.csv
- split_boundary_collection(): multi-feature boundary file -> one
  FeatureCollection file per feature, named by a property

A missing input file raises InputMissing so only that region's job fails.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import geopandas as gpd
import pandas as pd
from shapely.geometry.base import BaseGeometry

from hex_density.errors import DensityJobError, InputMissing
from hex_density.exporters import write_json_atomic
from hex_density.models import TractAttributes

logger = logging.getLogger("HexDensity.Ingestion")

PathLike = Union[str, Path]

TRACT_COLUMN = "TRACT"
POPULATION_COLUMN = "POP100"
LAND_AREA_COLUMN = "AREALAND"
CONDENSED_COLUMNS = [TRACT_COLUMN, POPULATION_COLUMN, LAND_AREA_COLUMN]

STATE_FIPS: Dict[str, str] = {
    "AL": "01", "AK": "02", "AZ": "04", "AR": "05", "CA": "06", "CO": "08",
    "CT": "09", "DE": "10", "DC": "11", "FL": "12", "GA": "13", "HI": "15",
    "ID": "16", "IL": "17", "IN": "18", "IA": "19", "KS": "20", "KY": "21",
    "LA": "22", "ME": "23", "MD": "24", "MA": "25", "MI": "26", "MN": "27",
    "MS": "28", "MO": "29", "MT": "30", "NE": "31", "NV": "32", "NH": "33",
    "NJ": "34", "NM": "35", "NY": "36", "NC": "37", "ND": "38", "OH": "39",
    "OK": "40", "OR": "41", "PA": "42", "RI": "44", "SC": "45", "SD": "46",
    "TN": "47", "TX": "48", "UT": "49", "VT": "50", "VA": "51", "WA": "53",
    "WV": "54", "WI": "55", "WY": "56", "PR": "72",
}  # fmt: skip

_CENSUS_FILE_PATTERN = re.compile(r"^[A-Za-z_]+_([A-Za-z]{2})\.csv$")


def _require_file(path: PathLike, what: str) -> Path:
    path = Path(path)
    if not path.is_file():
        raise InputMissing(f"{what} not found: {path}")
    return path


# ═══════════════════════════════════════════════════════════════════════════
# 📊 TRACT ATTRIBUTES
# ═══════════════════════════════════════════════════════════════════════════


def normalize_tract_code(value: Any, width: int = 6) -> str:
    """Tract code as a zero-padded string ("1234" / 1234 / "1234.0" -> "001234")."""
    text = str(value).strip()
    if text.endswith(".0"):
        text = text[:-2]
    return text.zfill(width)


def load_tract_attributes(
    path: PathLike, code_width: int = 6
) -> Dict[str, TractAttributes]:
    """
    Load a condensed TRACT,POP100,AREALAND table.

    Args:
        path: CSV file path
        code_width: Width tract codes are zero-padded to

    Returns:
        Dict mapping padded tract code -> TractAttributes (first row wins)

    Raises:
        InputMissing: file absent
        DensityJobError: required columns missing
    """
    path = _require_file(path, "Tract attribute table")
    df = pd.read_csv(path, dtype={TRACT_COLUMN: str})

    missing = set(CONDENSED_COLUMNS) - set(df.columns)
    if missing:
        raise DensityJobError(f"{path.name} missing columns: {sorted(missing)}")

    df = df.dropna(subset=[TRACT_COLUMN])
    codes = df[TRACT_COLUMN].map(lambda v: normalize_tract_code(v, code_width))
    population = pd.to_numeric(df[POPULATION_COLUMN], errors="coerce").fillna(0.0)
    land_area = pd.to_numeric(df[LAND_AREA_COLUMN], errors="coerce").fillna(0.0)

    attributes: Dict[str, TractAttributes] = {}
    duplicates = 0
    for code, pop, area in zip(codes, population.clip(lower=0.0), land_area):
        if code in attributes:
            duplicates += 1
            continue
        attributes[code] = TractAttributes(population=float(pop), land_area=float(area))

    if duplicates:
        logger.warning(f"⚠️ {path.name}: {duplicates} duplicate tract codes ignored")
    logger.info(f"📊 Loaded {len(attributes)} tract records from {path}")
    return attributes


def condense_census_table(df: pd.DataFrame) -> pd.DataFrame:
    """
    Reduce a raw census table to TRACT,POP100,AREALAND.

    Rows without a TRACT are dropped, the first row per TRACT is kept, and
    the result is sorted by POP100 descending (stable).
    """
    missing = set(CONDENSED_COLUMNS) - set(df.columns)
    if missing:
        raise DensityJobError(f"Census table missing columns: {sorted(missing)}")

    out = df[CONDENSED_COLUMNS].dropna(subset=[TRACT_COLUMN]).copy()
    out[TRACT_COLUMN] = out[TRACT_COLUMN].astype(str).str.strip()
    out = out[out[TRACT_COLUMN] != ""]
    out = out.drop_duplicates(subset=TRACT_COLUMN, keep="first")
    out[POPULATION_COLUMN] = (
        pd.to_numeric(out[POPULATION_COLUMN], errors="coerce").fillna(0).astype(int)
    )
    out = out.sort_values(POPULATION_COLUMN, ascending=False, kind="mergesort")
    return out.reset_index(drop=True)


def condense_census_file(src: PathLike, dst: PathLike) -> Path:
    """Condense one raw census CSV into a TRACT,POP100,AREALAND CSV."""
    src = _require_file(src, "Census table")
    dst = Path(dst)
    df = pd.read_csv(src, dtype={TRACT_COLUMN: str, LAND_AREA_COLUMN: str})
    condensed = condense_census_table(df)
    dst.parent.mkdir(parents=True, exist_ok=True)
    condensed.to_csv(dst, index=False)
    logger.info(f"📊 Condensed {src.name}: {len(df)} rows -> {len(condensed)} tracts")
    return dst


def condense_census_directory(
    src_dir: PathLike, out_dir: Optional[PathLike] = None
) -> List[Path]:
    """
    Condense every {Name}_{ST}.csv in src_dir to {out_dir}/{fips}.csv.

    out_dir defaults to {src_dir}/density. Files whose state abbreviation
    has no FIPS code are skipped with a warning.
    """
    src_dir = Path(src_dir)
    out_dir = Path(out_dir) if out_dir is not None else src_dir / "density"

    written = []
    for path in sorted(src_dir.glob("*.csv")):
        match = _CENSUS_FILE_PATTERN.match(path.name)
        if not match:
            continue
        fips = STATE_FIPS.get(match.group(1).upper())
        if fips is None:
            logger.warning(f"⚠️ No FIPS code for {path.name}, skipping")
            continue
        written.append(condense_census_file(path, out_dir / f"{fips}.csv"))

    if not written:
        logger.warning(f"⚠️ No state census files found in {src_dir}")
    return written


# ═══════════════════════════════════════════════════════════════════════════
# 🗺️ TRACT GEOMETRIES
# ═══════════════════════════════════════════════════════════════════════════


def load_tract_geometries(
    path: PathLike,
    id_column: str = "GEOID",
    target_crs: str = "EPSG:4326",
) -> List[Tuple[str, BaseGeometry]]:
    """
    Load tract polygons with their full identifiers.

    Zipped shapefiles are read in place (no extraction). Geometries are
    reprojected to target_crs; a layer without a CRS is assumed to
    already be in target_crs.

    Returns:
        List of (identifier, geometry) pairs in file order

    Raises:
        InputMissing: file absent
        DensityJobError: id_column missing from the layer
    """
    path = _require_file(path, "Tract geometry")
    source = f"zip://{path.resolve()}" if path.suffix.lower() == ".zip" else path
    gdf = gpd.read_file(source)

    if id_column not in gdf.columns:
        raise DensityJobError(f"{path.name} has no '{id_column}' attribute")

    if gdf.crs is None:
        logger.warning(f"⚠️ {path.name} has no CRS, assuming {target_crs}")
        gdf = gdf.set_crs(target_crs)
    elif gdf.crs != target_crs:
        gdf = gdf.to_crs(target_crs)

    identifiers = gdf[id_column].astype(str)
    logger.info(f"🗺️ Loaded {len(gdf)} tract geometries from {path}")
    return list(zip(identifiers, gdf.geometry))


# ═══════════════════════════════════════════════════════════════════════════
# 🧭 BOUNDARIES
# ═══════════════════════════════════════════════════════════════════════════


def load_boundary_geojson(path: PathLike) -> Dict[str, Any]:
    """Read a region boundary GeoJSON file."""
    path = _require_file(path, "Boundary")
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def split_boundary_collection(
    src: PathLike, out_dir: PathLike, key: str = "state"
) -> List[Path]:
    """
    Write each feature of a boundary collection to {out_dir}/{key value}.geojson.

    Each output is a FeatureCollection holding that single feature, which
    is the layout load_boundary_geojson() expects per region. Features
    without the key property are skipped with a warning.
    """
    collection = load_boundary_geojson(src)
    features = collection.get("features")
    if not isinstance(features, list):
        raise DensityJobError(f"{src} is not a FeatureCollection")

    out_dir = Path(out_dir)
    written = []
    for feature in features:
        value = (feature.get("properties") or {}).get(key)
        if not value:
            logger.warning(f"⚠️ Skipping boundary feature without '{key}'")
            continue
        out_path = out_dir / f"{value}.geojson"
        single = {"type": "FeatureCollection", "features": [feature]}
        write_json_atomic(single, out_path)
        written.append(out_path)

    logger.info(f"🧭 Split {len(written)} boundaries into {out_dir}")
    return written


__all__ = [
    "STATE_FIPS",
    "normalize_tract_code",
    "load_tract_attributes",
    "condense_census_table",
    "condense_census_file",
    "condense_census_directory",
    "load_tract_geometries",
    "load_boundary_geojson",
    "split_boundary_collection",
]
