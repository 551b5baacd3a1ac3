"""
Unit tests for H3 grid generation.

Tests:
1. Coverage: every point inside the boundary falls in a generated cell,
   at several resolutions
2. Tightness: every generated cell intersects the boundary
3. Determinism and uniqueness of the id set
4. Resolution validation (0-15, integers only)
5. Cell geometry helpers (closed ring, centroid)
6. Geodesic cell area agrees with H3's own cell area

Run with: python -m pytest hex_density/_tests/test_grid.py -v
"""

import h3
import numpy as np
import pytest

RENO_RING = [[-120.0, 39.40], [-119.57, 39.40], [-119.57, 39.75], [-120.0, 39.75]]


@pytest.fixture(scope="module")
def reno_boundary():
    from hex_density.boundary import Boundary

    return Boundary.from_lnglat(RENO_RING)


@pytest.fixture(scope="module")
def reno_cells_r6(reno_boundary):
    from hex_density.grid import generate_cells

    return generate_cells(reno_boundary, 6)


class TestGenerateCells:
    """Coverage properties of generate_cells()."""

    def test_every_interior_point_is_covered(self, reno_cells_r6):
        """Sampled points inside the box (edges included) map to a kept cell."""
        lngs = np.linspace(-120.0 + 1e-6, -119.57 - 1e-6, 25)
        lats = np.linspace(39.40 + 1e-6, 39.75 - 1e-6, 25)
        missing = [
            (lat, lng)
            for lat in lats
            for lng in lngs
            if h3.latlng_to_cell(float(lat), float(lng), 6) not in reno_cells_r6
        ]
        assert not missing, f"{len(missing)} sample points not covered"

    @pytest.mark.parametrize("resolution", [2, 4, 5, 7, 8])
    def test_coverage_across_resolutions(self, reno_boundary, resolution):
        """Coarser and finer grids cover the box and stay tight to it."""
        from hex_density.grid import cell_polygon, generate_cells

        cells = generate_cells(reno_boundary, resolution)
        lngs = np.linspace(-120.0 + 1e-6, -119.57 - 1e-6, 15)
        lats = np.linspace(39.40 + 1e-6, 39.75 - 1e-6, 15)

        assert all(
            h3.latlng_to_cell(float(lat), float(lng), resolution) in cells
            for lat in lats
            for lng in lngs
        )
        assert all(cell_polygon(c).intersects(reno_boundary.polygon) for c in cells)
        assert {h3.get_resolution(c) for c in cells} == {resolution}

    def test_every_cell_intersects_boundary(self, reno_boundary, reno_cells_r6):
        from hex_density.grid import cell_polygon

        polygon = reno_boundary.polygon
        assert all(cell_polygon(c).intersects(polygon) for c in reno_cells_r6)

    def test_includes_cells_beyond_polyfill(self, reno_boundary, reno_cells_r6):
        """Straddling cells whose centre lies outside are still included."""
        polyfill = set(
            h3.polygon_to_cells(h3.LatLngPoly(list(reno_boundary.open_ring)), 6)
        )
        assert polyfill <= reno_cells_r6
        assert len(reno_cells_r6) > len(polyfill)

    def test_deterministic(self, reno_boundary, reno_cells_r6):
        from hex_density.grid import generate_cells

        assert generate_cells(reno_boundary, 6) == reno_cells_r6

    def test_all_cells_at_requested_resolution(self, reno_cells_r6):
        assert {h3.get_resolution(c) for c in reno_cells_r6} == {6}

    def test_union_of_parts(self, reno_boundary):
        from hex_density.boundary import Boundary
        from hex_density.grid import generate_cells, generate_cells_for

        far = Boundary.from_lnglat(
            [[-118.0, 38.0], [-117.8, 38.0], [-117.8, 38.2], [-118.0, 38.2]]
        )
        union = generate_cells_for([reno_boundary, far], 5)
        assert union == generate_cells(reno_boundary, 5) | generate_cells(far, 5)

    def test_tiny_boundary_gets_at_least_one_cell(self):
        """A boundary smaller than one cell still intersects its host cell."""
        from hex_density.boundary import Boundary
        from hex_density.grid import generate_cells

        tiny = Boundary.from_lnglat(
            [[-119.80, 39.50], [-119.799, 39.50], [-119.799, 39.501]]
        )
        cells = generate_cells(tiny, 4)
        assert h3.latlng_to_cell(39.50, -119.80, 4) in cells


class TestResolutionValidation:
    """validate_resolution() bounds and types."""

    @pytest.mark.parametrize("resolution", [0, 7, 15])
    def test_valid_resolutions(self, resolution):
        from hex_density.grid import validate_resolution

        assert validate_resolution(resolution) == resolution

    @pytest.mark.parametrize("resolution", [-1, 16, 7.0, "7", True, None])
    def test_invalid_resolutions(self, resolution):
        from hex_density.errors import InvalidResolution
        from hex_density.grid import validate_resolution

        with pytest.raises(InvalidResolution):
            validate_resolution(resolution)

    def test_generate_cells_rejects_bad_resolution(self, reno_boundary):
        from hex_density.errors import InvalidResolution
        from hex_density.grid import generate_cells

        with pytest.raises(InvalidResolution):
            generate_cells(reno_boundary, 16)

    def test_invalid_resolution_is_value_error(self):
        """Callers catching ValueError also see InvalidResolution."""
        from hex_density.grid import validate_resolution

        with pytest.raises(ValueError):
            validate_resolution(99)


class TestCellGeometry:
    """Pure id -> geometry helpers."""

    CELL = h3.latlng_to_cell(39.53, -119.81, 7)

    def test_cell_boundary_closed(self):
        from hex_density.grid import cell_boundary

        ring = cell_boundary(self.CELL)
        assert ring[0] == ring[-1]
        assert len(ring) == 7  # 6 vertices + closing vertex

    def test_centroid_inside_polygon(self):
        from shapely.geometry import Point

        from hex_density.grid import cell_centroid, cell_polygon

        lat, lng = cell_centroid(self.CELL)
        assert cell_polygon(self.CELL).contains(Point(lng, lat))

    def test_invalid_cell_id_raises(self):
        from hex_density.grid import cell_boundary

        with pytest.raises(ValueError):
            cell_boundary("not-a-cell")

    def test_geodesic_area_matches_h3(self):
        """WGS84 area of the cell polygon is within 1% of h3.cell_area."""
        from hex_density.aggregation import geodesic_area_m2
        from hex_density.grid import cell_polygon

        expected = h3.cell_area(self.CELL, unit="m^2")
        assert geodesic_area_m2(cell_polygon(self.CELL)) == pytest.approx(
            expected, rel=0.01
        )

    def test_prefilter_buffer_scales_edge_length(self):
        from hex_density.grid import average_edge_length_m, prefilter_buffer_m

        assert prefilter_buffer_m(7) == pytest.approx(average_edge_length_m(7) * 1.5)
        assert average_edge_length_m(6) > average_edge_length_m(7)
