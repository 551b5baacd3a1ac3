"""
Boundary Normalizer.

Turns a region boundary GeoJSON object (FeatureCollection, Feature or bare
geometry) into Boundary instances holding a single outer ring in
latitude-first order, which is what the hexagonal grid indexer expects.

GeoJSON stores positions as [lng, lat]. Holes are ignored: grid coverage
is computed against the outer ring only.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from shapely.geometry import Polygon

from hex_density.errors import UnsupportedGeometry

logger = logging.getLogger("HexDensity.Boundary")

LatLng = Tuple[float, float]


@dataclass(frozen=True)
class Boundary:
    """Immutable outer ring of a region, stored as (lat, lng) pairs.

    The ring is stored closed (first == last).
    """

    ring: Tuple[LatLng, ...]

    def __post_init__(self) -> None:
        if len(self.open_ring) < 3:
            raise UnsupportedGeometry(
                "Boundary ring needs at least 3 distinct vertices, "
                f"got {len(self.open_ring)}"
            )

    @classmethod
    def from_lnglat(cls, coords: Sequence[Sequence[float]]) -> "Boundary":
        """Build from a GeoJSON linear ring ([lng, lat] positions)."""
        ring = [(float(pt[1]), float(pt[0])) for pt in coords]
        if ring and ring[0] != ring[-1]:
            ring.append(ring[0])
        return cls(tuple(ring))

    @property
    def open_ring(self) -> Tuple[LatLng, ...]:
        """Ring without the repeated closing vertex."""
        if len(self.ring) > 1 and self.ring[0] == self.ring[-1]:
            return self.ring[:-1]
        return self.ring

    @property
    def polygon(self) -> Polygon:
        """Shapely polygon in (lng, lat) axis order for geometric tests."""
        return Polygon([(lng, lat) for lat, lng in self.ring])


def _extract_geometry(geojson: Dict[str, Any]) -> Dict[str, Any]:
    """Unwrap FeatureCollection / Feature down to a geometry object."""
    if not isinstance(geojson, dict):
        raise UnsupportedGeometry(
            f"Boundary must be a GeoJSON object, got {type(geojson).__name__}"
        )

    kind = geojson.get("type")
    if kind == "FeatureCollection":
        features = geojson.get("features") or []
        if not features:
            raise UnsupportedGeometry("Boundary FeatureCollection has no features")
        if len(features) > 1:
            logger.warning(
                f"⚠️ Boundary collection has {len(features)} features, using the first"
            )
        return _extract_geometry(features[0])
    if kind == "Feature":
        geometry = geojson.get("geometry")
        if not geometry:
            raise UnsupportedGeometry("Boundary Feature has no geometry")
        return geometry
    if kind in ("Polygon", "MultiPolygon"):
        return geojson
    raise UnsupportedGeometry(f"Unrecognized boundary wrapper or geometry: {kind!r}")


def normalize_boundary_parts(geojson: Dict[str, Any]) -> List[Boundary]:
    """
    Extract every polygon's outer ring from a boundary GeoJSON object.

    Args:
        geojson: FeatureCollection, Feature, Polygon or MultiPolygon dict

    Returns:
        One Boundary per polygon part (a Polygon yields a single part)

    Raises:
        UnsupportedGeometry: wrapper or geometry type not handled
    """
    geometry = _extract_geometry(geojson)
    kind = geometry.get("type")
    coords = geometry.get("coordinates") or []

    if kind == "Polygon":
        if not coords:
            raise UnsupportedGeometry("Polygon boundary has no rings")
        return [Boundary.from_lnglat(coords[0])]
    if kind == "MultiPolygon":
        parts = [Boundary.from_lnglat(poly[0]) for poly in coords if poly]
        if not parts:
            raise UnsupportedGeometry("MultiPolygon boundary has no polygons")
        return parts
    raise UnsupportedGeometry(f"Unsupported boundary geometry type: {kind!r}")


def normalize_boundary(geojson: Dict[str, Any]) -> Boundary:
    """
    Extract a single outer ring, latitude-first.

    For MultiPolygon input only the first polygon's outer ring is kept;
    additional parts are dropped (logged). Use normalize_boundary_parts()
    for full coverage of non-contiguous regions.
    """
    parts = normalize_boundary_parts(geojson)
    if len(parts) > 1:
        logger.warning(
            f"⚠️ MultiPolygon boundary: using first of {len(parts)} parts, "
            f"{len(parts) - 1} dropped"
        )
    return parts[0]


def select_boundaries(geojson: Dict[str, Any], policy: str) -> List[Boundary]:
    """Apply the multipolygon policy ("first" or "all")."""
    if policy == "all":
        return normalize_boundary_parts(geojson)
    if policy == "first":
        return [normalize_boundary(geojson)]
    raise ValueError(f"Unknown multipolygon policy: {policy!r}")
