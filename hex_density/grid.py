"""
Grid Generator - H3 hexagonal cells covering a region boundary.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Enumerate the H3 cell ids whose polygons intersect a
Boundary at a given resolution, and rebuild cell geometry from an id.

Coverage Algorithm:
-------------------
H3 polyfill alone is centroid-based: a cell straddling the boundary whose
centre falls outside is dropped, leaving slivers of the region uncovered.
We therefore take:

1. Interior cells:  h3.polygon_to_cells(boundary)
2. Edge cells:      the boundary ring densified to ~edge/4 steps, each
                    sample mapped to its cell, plus that cell's grid_disk(1)
3. Filter:          keep cells whose polygon intersects the boundary

Every boundary point is within a quarter edge of a sample, so its cell is
the sample's cell or a neighbour. Interior points lie in a polyfilled cell
or in a cell that crosses the ring. Output depends only on the boundary and
resolution (sets, no ordering), so reruns produce identical id sets.

Cell geometry is never stored: cell_boundary()/cell_centroid() are pure
functions of the id.
"""

import logging
from typing import FrozenSet, Iterable, Set, Tuple

import h3
import shapely
from shapely.geometry import Polygon
from shapely.prepared import prep

from hex_density.boundary import Boundary, LatLng
from hex_density.errors import InvalidResolution

logger = logging.getLogger("HexDensity.Grid")

MIN_RESOLUTION = 0
MAX_RESOLUTION = 15
METERS_PER_DEGREE_LAT = 111320.0

# Boundary sampling step as a fraction of the average edge length
_RING_SAMPLE_FRACTION = 0.25


def validate_resolution(resolution: int) -> int:
    """Return resolution if it is a supported H3 tier, else raise InvalidResolution."""
    if isinstance(resolution, bool) or not isinstance(resolution, int):
        raise InvalidResolution(
            f"Resolution must be an integer, got {type(resolution).__name__}"
        )
    if not MIN_RESOLUTION <= resolution <= MAX_RESOLUTION:
        raise InvalidResolution(
            f"Resolution {resolution} outside supported range "
            f"{MIN_RESOLUTION}-{MAX_RESOLUTION}",
            resolution=resolution,
        )
    return resolution


def average_edge_length_m(resolution: int) -> float:
    """Average hexagon edge length in metres (≈ centroid-to-vertex distance)."""
    return float(
        h3.average_hexagon_edge_length(validate_resolution(resolution), unit="m")
    )


def prefilter_buffer_m(resolution: int, factor: float = 1.5) -> float:
    """Distance tract bounding boxes are grown by for the centroid pre-filter."""
    return average_edge_length_m(resolution) * factor


# ═══════════════════════════════════════════════════════════════════════════
# 🔷 CELL GENERATION
# ═══════════════════════════════════════════════════════════════════════════


def _ring_cells(boundary: Boundary, resolution: int) -> Set[str]:
    """Cells touched by the densified boundary ring, plus their neighbours."""
    step_deg = average_edge_length_m(resolution) * _RING_SAMPLE_FRACTION
    step_deg /= METERS_PER_DEGREE_LAT
    ring = shapely.segmentize(boundary.polygon.exterior, step_deg)

    cells: Set[str] = set()
    for lng, lat in ring.coords:
        cells.add(h3.latlng_to_cell(lat, lng, resolution))

    expanded: Set[str] = set()
    for cell in cells:
        expanded.update(h3.grid_disk(cell, 1))
    return expanded


def generate_cells(boundary: Boundary, resolution: int) -> FrozenSet[str]:
    """
    Enumerate H3 cells whose polygons intersect the boundary.

    Args:
        boundary: Normalized region boundary (lat-first outer ring)
        resolution: H3 resolution tier, 0-15

    Returns:
        Frozen set of cell id strings (no duplicates by construction)

    Raises:
        InvalidResolution: resolution is not an H3 tier
    """
    validate_resolution(resolution)

    shape = h3.LatLngPoly(list(boundary.open_ring))
    interior = set(h3.polygon_to_cells(shape, resolution))
    edge = _ring_cells(boundary, resolution)

    prepared = prep(boundary.polygon)
    covering = {
        cell for cell in interior | edge if prepared.intersects(cell_polygon(cell))
    }

    logger.debug(
        f"   🔷 r{resolution}: {len(interior)} interior + "
        f"{len(edge - interior)} edge candidates → {len(covering)} cells"
    )
    return frozenset(covering)


def generate_cells_for(
    boundaries: Iterable[Boundary], resolution: int
) -> FrozenSet[str]:
    """Union of generate_cells() over several boundary parts."""
    cells: Set[str] = set()
    for boundary in boundaries:
        cells.update(generate_cells(boundary, resolution))
    return frozenset(cells)


# ═══════════════════════════════════════════════════════════════════════════
# 📐 CELL GEOMETRY
# ═══════════════════════════════════════════════════════════════════════════


def _check_cell(hex_id: str) -> None:
    if not h3.is_valid_cell(hex_id):
        raise ValueError(f"Not a valid H3 cell id: {hex_id!r}")


def cell_boundary(hex_id: str) -> Tuple[LatLng, ...]:
    """Closed ring of (lat, lng) vertices for a cell id."""
    _check_cell(hex_id)
    ring = tuple(h3.cell_to_boundary(hex_id))
    return ring + (ring[0],)


def cell_centroid(hex_id: str) -> LatLng:
    """(lat, lng) centre of a cell id."""
    _check_cell(hex_id)
    return tuple(h3.cell_to_latlng(hex_id))


def cell_polygon(hex_id: str) -> Polygon:
    """Shapely polygon of a cell in (lng, lat) axis order."""
    return Polygon([(lng, lat) for lat, lng in cell_boundary(hex_id)])

