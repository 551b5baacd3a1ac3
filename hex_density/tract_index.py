"""
Tract Index and Spatial Pre-Filter.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Pair tract geometries with their population/land-area
records, compute per-tract density, and answer "which tracts could touch
the hexagon centred here?" cheaply.

Key Interactions:
    - ingestion.py supplies (identifier, geometry) pairs and the attribute map
    - aggregation.py asks candidates() for each hexagon centroid
    - parallel/worker_pool.py serializes the index once per job

Pre-Filter:
-----------
Each tract's bounding box is grown by buffer_m (resolution edge length x a
safety factor). A hexagon is only intersected with tracts whose grown box
contains its centroid: if a hexagon overlaps a tract, its centroid is at
most one circumradius from the tract, so it lies inside the grown box.
Box lookup goes through a shapely STRtree.

Immutability:
-------------
The index is built once per job and never mutated. The STRtree is derived
data: it is dropped when pickled and rebuilt lazily on first query, once
per worker process.
"""

import logging
import math
from typing import (
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from shapely.geometry import MultiPolygon, Point, Polygon, box
from shapely.geometry.base import BaseGeometry
from shapely.strtree import STRtree

from hex_density.errors import UnsupportedGeometry
from hex_density.grid import METERS_PER_DEGREE_LAT
from hex_density.models import Tract, TractAttributes

logger = logging.getLogger("HexDensity.TractIndex")

# The pipeline always builds GEOGRAPHIC indexes (H3 cells are lng/lat).
# PROJECTED serves callers that pair projected tracts with projected cells
# through build_tract_index() and estimate_hexagon() directly.
GEOGRAPHIC = "geographic"
PROJECTED = "projected"

# cos(lat) floor so longitude buffers stay finite near the poles
_MIN_COS_LAT = 1e-6


def buffer_box(
    geometry: BaseGeometry, buffer_m: float, geometry_mode: str = GEOGRAPHIC
) -> Polygon:
    """
    Axis-aligned bounding box of a geometry grown by buffer_m.

    Args:
        geometry: Tract geometry (lng/lat degrees or projected metres)
        buffer_m: Growth distance in metres
        geometry_mode: "geographic" converts metres to degrees per axis,
            "projected" uses buffer_m as-is

    Returns:
        Grown box polygon in the geometry's coordinate system
    """
    minx, miny, maxx, maxy = geometry.bounds
    if geometry_mode == PROJECTED:
        dx = dy = buffer_m
    elif geometry_mode == GEOGRAPHIC:
        dy = buffer_m / METERS_PER_DEGREE_LAT
        # Widest longitude span is at the box edge furthest from the equator
        max_abs_lat = min(90.0, max(abs(miny), abs(maxy)) + dy)
        cos_lat = max(math.cos(math.radians(max_abs_lat)), _MIN_COS_LAT)
        dx = buffer_m / (METERS_PER_DEGREE_LAT * cos_lat)
    else:
        raise ValueError(f"Unknown geometry mode: {geometry_mode!r}")
    return box(minx - dx, miny - dy, maxx + dx, maxy + dy)


class TractIndex:
    """Read-only set of density-annotated tracts with a buffered-box lookup."""

    def __init__(
        self,
        tracts: Sequence[Tract],
        buffer_m: float,
        geometry_mode: str = GEOGRAPHIC,
    ) -> None:
        if geometry_mode not in (GEOGRAPHIC, PROJECTED):
            raise ValueError(f"Unknown geometry mode: {geometry_mode!r}")
        self._tracts: Tuple[Tract, ...] = tuple(tracts)
        self._buffer_m = float(buffer_m)
        self._geometry_mode = geometry_mode
        self._boxes: Tuple[Polygon, ...] = tuple(
            buffer_box(t.geometry, self._buffer_m, geometry_mode) for t in self._tracts
        )
        self._tree: Optional[STRtree] = None

    # -- read-only views ---------------------------------------------------

    @property
    def tracts(self) -> Tuple[Tract, ...]:
        return self._tracts

    @property
    def buffer_m(self) -> float:
        return self._buffer_m

    @property
    def geometry_mode(self) -> str:
        return self._geometry_mode

    def __len__(self) -> int:
        return len(self._tracts)

    def __iter__(self):
        return iter(self._tracts)

    # -- pre-filter --------------------------------------------------------

    def _get_tree(self) -> STRtree:
        if self._tree is None:
            self._tree = STRtree(list(self._boxes))
        return self._tree

    def candidates(self, x: float, y: float) -> List[Tract]:
        """
        Tracts whose buffered box contains the point (x, y).

        In geographic mode x is longitude and y latitude. Box edges count
        as inside. Results are returned in index order.
        """
        if not self._tracts:
            return []
        hits = self._get_tree().query(Point(x, y), predicate="intersects")
        return [self._tracts[i] for i in sorted(int(h) for h in hits)]

    # -- pickling ----------------------------------------------------------

    def __getstate__(self) -> Dict[str, object]:
        state = self.__dict__.copy()
        state["_tree"] = None
        return state

    def __setstate__(self, state: Dict[str, object]) -> None:
        self.__dict__.update(state)


# ═══════════════════════════════════════════════════════════════════════════
# 🏗️ INDEX CONSTRUCTION
# ═══════════════════════════════════════════════════════════════════════════


def build_tract_index(
    tract_geometries: Iterable[Tuple[str, BaseGeometry]],
    attributes: Mapping[str, TractAttributes],
    buffer_m: float,
    geometry_mode: str = GEOGRAPHIC,
    code_width: int = 6,
) -> TractIndex:
    """
    Join tract geometries to attribute records and build the index.

    Geometry identifiers are matched by their trailing code_width characters
    against the attribute map keys. Tracts with land_area <= 0 are excluded
    (their population is not distributed). Geometries with no attribute
    record are excluded. Duplicate identifiers keep the first occurrence.

    Args:
        tract_geometries: (full identifier, Polygon/MultiPolygon) pairs
        attributes: tract code -> TractAttributes
        buffer_m: Pre-filter growth distance in metres
        geometry_mode: "geographic" (lng/lat) or "projected" (metres)
        code_width: Number of trailing identifier characters to match on

    Returns:
        Immutable TractIndex

    Raises:
        UnsupportedGeometry: A tract geometry is not Polygon/MultiPolygon
    """
    tracts: List[Tract] = []
    seen: Dict[str, int] = {}
    unmatched = 0
    zero_area = 0
    empty = 0

    for identifier, geometry in tract_geometries:
        identifier = str(identifier)
        if identifier in seen:
            logger.warning(f"⚠️ Duplicate tract identifier {identifier}, keeping first")
            continue

        if geometry is None or geometry.is_empty:
            empty += 1
            continue
        if not isinstance(geometry, (Polygon, MultiPolygon)):
            raise UnsupportedGeometry(
                f"Tract {identifier} has unsupported geometry {geometry.geom_type}"
            )

        attrs = attributes.get(identifier[-code_width:])
        if attrs is None:
            unmatched += 1
            continue
        density = attrs.density
        if density is None:
            zero_area += 1
            continue

        seen[identifier] = len(tracts)
        tracts.append(
            Tract(
                identifier=identifier,
                geometry=geometry,
                population=float(attrs.population),
                land_area=float(attrs.land_area),
                density=density,
            )
        )

    logger.info(
        f"🗺️ Tract index: {len(tracts)} tracts "
        f"(excluded: {zero_area} zero-area, {unmatched} unmatched, {empty} empty)"
    )
    return TractIndex(tracts, buffer_m, geometry_mode)

