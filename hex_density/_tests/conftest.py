"""
Shared fixtures for hex_density tests.

- FakeFirestoreClient: records batch.set()/commit() calls in memory
- write_region_inputs(): lays out boundary, tract CSV and tract GeoJSON for
  one region under a data dir, matching the templates in small_app_config
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest
from shapely.geometry import box, mapping


# ═══════════════════════════════════════════════════════════════════════════
# FAKE DOCUMENT STORE
# ═══════════════════════════════════════════════════════════════════════════


class FakeDocumentRef:
    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.id = doc_id


class FakeCollectionRef:
    def __init__(self, name: str):
        self.name = name

    def document(self, doc_id: str) -> FakeDocumentRef:
        return FakeDocumentRef(self.name, doc_id)


class FakeBatch:
    def __init__(self, client: "FakeFirestoreClient"):
        self.client = client
        self.ops: List[Tuple[FakeDocumentRef, Dict[str, Any], bool]] = []

    def set(self, doc_ref, data, merge=False):
        self.ops.append((doc_ref, dict(data), merge))

    def commit(self):
        if self.client.fail_on_commit is not None and (
            len(self.client.commits) + 1 == self.client.fail_on_commit
        ):
            raise RuntimeError("simulated commit failure")
        self.client.commits.append(len(self.ops))
        for doc_ref, data, _merge in self.ops:
            self.client.documents[(doc_ref.collection, doc_ref.id)] = data


class FakeFirestoreClient:
    """In-memory stand-in for google.cloud.firestore.Client."""

    def __init__(self, fail_on_commit=None):
        self.commits: List[int] = []
        self.documents: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.fail_on_commit = fail_on_commit

    def collection(self, name: str) -> FakeCollectionRef:
        return FakeCollectionRef(name)

    def batch(self) -> FakeBatch:
        return FakeBatch(self)


@pytest.fixture
def fake_firestore():
    return FakeFirestoreClient()


# ═══════════════════════════════════════════════════════════════════════════
# REGION INPUT FILES
# ═══════════════════════════════════════════════════════════════════════════

# Small box near Reno, NV; ~30 cells at resolution 6
BOUNDARY_BOX = (-120.0, 39.40, -119.60, 39.70)
# Two tracts split at lng -119.8, with a margin wider than a r6 cell
TRACT_BOXES = {
    "32031000100": (-120.2, 39.2, -119.8, 39.9),
    "32031000200": (-119.8, 39.2, -119.4, 39.9),
}
# TRACT, POP100, AREALAND (m²) -> densities 100 and 300 per km²
TRACT_ROWS = [
    ("000100", 1000, 10_000_000),
    ("000200", 3000, 10_000_000),
]


def write_region_inputs(data_dir: Path, region: str = "32") -> Path:
    """Write states/, census/density/ and tracts/ inputs for one region."""
    data_dir = Path(data_dir)

    boundary_path = data_dir / "states" / f"{region}.geojson"
    boundary_path.parent.mkdir(parents=True, exist_ok=True)
    boundary = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"state": region},
                "geometry": mapping(box(*BOUNDARY_BOX)),
            }
        ],
    }
    boundary_path.write_text(json.dumps(boundary), encoding="utf-8")

    csv_path = data_dir / "census" / "density" / f"{region}.csv"
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    lines = ["TRACT,POP100,AREALAND"]
    lines += [f"{code},{pop},{area}" for code, pop, area in TRACT_ROWS]
    csv_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    tracts_path = data_dir / "tracts" / f"{region}.geojson"
    tracts_path.parent.mkdir(parents=True, exist_ok=True)
    tracts = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"GEOID": geoid},
                "geometry": mapping(box(*bounds)),
            }
            for geoid, bounds in TRACT_BOXES.items()
        ],
    }
    tracts_path.write_text(json.dumps(tracts), encoding="utf-8")
    return data_dir


@pytest.fixture
def small_app_config(tmp_path):
    """AppConfig pointed at tmp_path, threading backend, resolution 6."""
    from hex_density.config_types import AppConfig

    return AppConfig.from_dict(
        {
            "regions": ["32"],
            "resolutions": [6],
            "parallel": {"backend": "threading", "max_workers": 2},
            "file_paths": {
                "data_dir": str(tmp_path / "data"),
                "tract_geometry": "tracts/{region}.geojson",
                "output_dir": str(tmp_path / "density"),
                "log_dir": str(tmp_path / "logs"),
            },
        }
    )


@pytest.fixture
def region_inputs():
    """Callable (data_dir, region="32") -> data_dir that writes region inputs."""
    return write_region_inputs
