"""
Intersection Aggregator - area-weighted population per hexagon.

For a hexagon H and its pre-filtered candidate tracts T:

    population(H) = Σ area(H ∩ T) [km²] × density(T)
    density(H)    = Σ area(H ∩ T) / area(H) × density(T)

Each contribution is >= 0, so the running total never decreases as more
tracts are considered. A hexagon covered by one tract takes that
tract's density exactly. A zero-area hexagon gets density None (flagged
degenerate), never a NaN.

Areas are measured in m² by an area function chosen per index geometry
mode: geodesic (pyproj Geod on WGS84) for lng/lat indexes, planar shapely
area for projected ones.
"""

import logging
from typing import Callable, Iterable, Optional

from pyproj import Geod
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from hex_density.grid import cell_centroid, cell_polygon
from hex_density.models import M2_PER_KM2, DensityRecord, Tract
from hex_density.tract_index import GEOGRAPHIC, PROJECTED, TractIndex

logger = logging.getLogger("HexDensity.Aggregation")

AreaFn = Callable[[BaseGeometry], float]

_GEOD = Geod(ellps="WGS84")


# ═══════════════════════════════════════════════════════════════════════════
# 📐 AREA FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════


def _polygon_parts(geometry: BaseGeometry) -> Iterable[Polygon]:
    """Polygonal parts of a (possibly mixed) intersection result."""
    if geometry.is_empty:
        return
    if isinstance(geometry, Polygon):
        yield geometry
    elif isinstance(geometry, (MultiPolygon, GeometryCollection)):
        for part in geometry.geoms:
            yield from _polygon_parts(part)


def _ring_area_m2(ring) -> float:
    lons, lats = ring.coords.xy
    area, _ = _GEOD.polygon_area_perimeter(lons, lats)
    return abs(area)


def geodesic_area_m2(geometry: BaseGeometry) -> float:
    """Ellipsoidal area in m² of a lng/lat geometry (orientation-independent)."""
    total = 0.0
    for poly in _polygon_parts(geometry):
        area = _ring_area_m2(poly.exterior)
        for hole in poly.interiors:
            area -= _ring_area_m2(hole)
        total += max(area, 0.0)
    return total


def planar_area_m2(geometry: BaseGeometry) -> float:
    """Planar area of a projected (metre) geometry."""
    return sum(poly.area for poly in _polygon_parts(geometry))


def area_function(geometry_mode: str) -> AreaFn:
    """Area measure (m²) matching an index's coordinate system."""
    if geometry_mode == GEOGRAPHIC:
        return geodesic_area_m2
    if geometry_mode == PROJECTED:
        return planar_area_m2
    raise ValueError(f"Unknown geometry mode: {geometry_mode!r}")


# ═══════════════════════════════════════════════════════════════════════════
# 🔢 AGGREGATION
# ═══════════════════════════════════════════════════════════════════════════


def estimate_hexagon(
    hex_id: str,
    hex_polygon: BaseGeometry,
    candidates: Iterable[Tract],
    area_fn: AreaFn,
) -> DensityRecord:
    """
    Area-weighted population and density for one hexagon.

    A candidate that covers the whole hexagon contributes the hexagon's own
    area, so a cell inside a single tract gets exactly that tract's density.

    Args:
        hex_id: Cell identifier carried into the record
        hex_polygon: Cell polygon, same coordinate system as the tracts
        candidates: Tracts that passed the pre-filter (may include
            non-intersecting false positives)
        area_fn: Area in m² for that coordinate system

    Returns:
        DensityRecord; density is None and degenerate is True when the
        hexagon has zero area
    """
    hex_m2 = area_fn(hex_polygon)
    population = 0.0
    density = 0.0
    for tract in candidates:
        if hex_m2 > 0 and hex_polygon.covered_by(tract.geometry):
            overlap_m2 = hex_m2
        else:
            overlap = hex_polygon.intersection(tract.geometry)
            if overlap.is_empty:
                continue
            overlap_m2 = area_fn(overlap)
        if overlap_m2 > 0:
            population += overlap_m2 / M2_PER_KM2 * tract.density
            if hex_m2 > 0:
                density += overlap_m2 / hex_m2 * tract.density

    if hex_m2 <= 0:
        logger.warning(f"⚠️ Degenerate cell {hex_id}: zero area, density undefined")
        return DensityRecord(hex_id, population, None, degenerate=True)

    return DensityRecord(hex_id, population, density)


def estimate_cell_density(
    hex_id: str, tract_index: TractIndex, area_fn: Optional[AreaFn] = None
) -> DensityRecord:
    """Pre-filter the index by the cell centroid, then aggregate."""
    if area_fn is None:
        area_fn = area_function(tract_index.geometry_mode)
    lat, lng = cell_centroid(hex_id)
    return estimate_hexagon(
        hex_id, cell_polygon(hex_id), tract_index.candidates(lng, lat), area_fn
    )
