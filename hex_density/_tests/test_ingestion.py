"""
Unit tests for input loaders and preparation utilities.

Tests:
1. Tract codes are zero-padded strings
2. load_tract_attributes(): first row wins, negative population clipped,
   missing file / columns raise
3. Census condensing keeps TRACT,POP100,AREALAND sorted by population
4. Directory condensing names outputs by state FIPS
5. load_tract_geometries() reads GeoJSON layers with their GEOIDs
6. split_boundary_collection() writes one file per feature

Run with: python -m pytest hex_density/_tests/test_ingestion.py -v
"""

import json

import pandas as pd
import pytest


class TestTractAttributes:
    """Condensed table loading."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("1234", "001234"),
            (1234, "001234"),
            ("1234.0", "001234"),
            ("980100", "980100"),
        ],
    )
    def test_normalize_tract_code(self, value, expected):
        from hex_density.ingestion import normalize_tract_code

        assert normalize_tract_code(value) == expected

    def test_load_first_row_wins(self, tmp_path):
        from hex_density.ingestion import load_tract_attributes

        csv = tmp_path / "32.csv"
        csv.write_text(
            "TRACT,POP100,AREALAND\n"
            "000100,1000,2000000\n"
            "100,9999,1\n"
            "000200,-5,1000000\n"
            "000300,50,0\n"
        )
        attributes = load_tract_attributes(csv)

        assert set(attributes) == {"000100", "000200", "000300"}
        assert attributes["000100"].density == pytest.approx(500.0)
        assert attributes["000200"].population == 0.0
        assert attributes["000300"].density is None

    def test_missing_file_raises_input_missing(self, tmp_path):
        from hex_density.errors import InputMissing
        from hex_density.ingestion import load_tract_attributes

        with pytest.raises(InputMissing):
            load_tract_attributes(tmp_path / "absent.csv")

    def test_missing_columns_raise(self, tmp_path):
        from hex_density.errors import DensityJobError
        from hex_density.ingestion import load_tract_attributes

        csv = tmp_path / "32.csv"
        csv.write_text("TRACT,POP100\n000100,5\n")
        with pytest.raises(DensityJobError):
            load_tract_attributes(csv)


class TestCensusCondensing:
    """Raw census tables -> TRACT,POP100,AREALAND."""

    def _raw(self):
        return pd.DataFrame(
            {
                "NAME": ["a", "b", "c", "d", "e"],
                "TRACT": ["000100", "000200", "000100", None, "000300"],
                "POP100": [10, 300, 999, 5, 40],
                "AREALAND": [1, 2, 3, 4, 5],
            }
        )

    def test_condense_table(self):
        from hex_density.ingestion import condense_census_table

        out = condense_census_table(self._raw())

        assert list(out.columns) == ["TRACT", "POP100", "AREALAND"]
        assert list(out["TRACT"]) == ["000200", "000300", "000100"]
        assert list(out["POP100"]) == [300, 40, 10]

    def test_condense_table_missing_columns(self):
        from hex_density.errors import DensityJobError
        from hex_density.ingestion import condense_census_table

        with pytest.raises(DensityJobError):
            condense_census_table(pd.DataFrame({"TRACT": ["000100"]}))

    def test_condense_directory_uses_fips(self, tmp_path):
        from hex_density.ingestion import condense_census_directory

        self._raw().to_csv(tmp_path / "Nevada_NV.csv", index=False)
        self._raw().to_csv(tmp_path / "New_York_NY.csv", index=False)
        (tmp_path / "README.csv").write_text("ignored\n")

        written = condense_census_directory(tmp_path)

        assert sorted(p.name for p in written) == ["32.csv", "36.csv"]
        condensed = pd.read_csv(tmp_path / "density" / "32.csv", dtype={"TRACT": str})
        assert list(condensed["TRACT"]) == ["000200", "000300", "000100"]

    def test_unknown_state_skipped(self, tmp_path):
        from hex_density.ingestion import condense_census_directory

        self._raw().to_csv(tmp_path / "Atlantis_XX.csv", index=False)
        assert condense_census_directory(tmp_path, tmp_path / "out") == []


class TestGeometryAndBoundaries:
    """GeoJSON-backed loaders."""

    def test_load_tract_geometries(self, tmp_path, region_inputs):
        from hex_density.ingestion import load_tract_geometries

        region_inputs(tmp_path)
        pairs = load_tract_geometries(tmp_path / "tracts" / "32.geojson")

        assert [identifier for identifier, _ in pairs] == [
            "32031000100",
            "32031000200",
        ]
        assert all(geom.geom_type == "Polygon" for _, geom in pairs)

    def test_missing_geometry_file(self, tmp_path):
        from hex_density.errors import InputMissing
        from hex_density.ingestion import load_tract_geometries

        with pytest.raises(InputMissing):
            load_tract_geometries(tmp_path / "tl_2020_32_tract.zip")

    def test_missing_id_column(self, tmp_path, region_inputs):
        from hex_density.errors import DensityJobError
        from hex_density.ingestion import load_tract_geometries

        region_inputs(tmp_path)
        with pytest.raises(DensityJobError):
            load_tract_geometries(
                tmp_path / "tracts" / "32.geojson", id_column="TRACTCE"
            )

    def test_split_boundary_collection(self, tmp_path):
        from hex_density.ingestion import (
            load_boundary_geojson,
            split_boundary_collection,
        )

        square = {
            "type": "Polygon",
            "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]],
        }
        collection = {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "properties": {"state": "32"}, "geometry": square},
                {"type": "Feature", "properties": {"state": "06"}, "geometry": square},
                {"type": "Feature", "properties": {}, "geometry": square},
            ],
        }
        src = tmp_path / "all.geojson"
        src.write_text(json.dumps(collection))

        written = split_boundary_collection(src, tmp_path / "states")

        assert sorted(p.name for p in written) == ["06.geojson", "32.geojson"]
        single = load_boundary_geojson(tmp_path / "states" / "32.geojson")
        assert single["type"] == "FeatureCollection"
        assert len(single["features"]) == 1

    def test_missing_boundary_raises(self, tmp_path):
        from hex_density.errors import InputMissing
        from hex_density.ingestion import load_boundary_geojson

        with pytest.raises(InputMissing):
            load_boundary_geojson(tmp_path / "states" / "32.geojson")
