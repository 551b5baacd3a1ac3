"""
Unit tests for the job checkpoint gate.

Tests:
1. Artifact paths follow {output}/{region}/{resolution}/{region}*.{json,geojson}
2. is_complete() tracks the primary artifact; disabled gate never skips
3. hold() creates the per-job lock file and releases it
4. Different jobs use different locks

Run with: python -m pytest hex_density/_tests/test_checkpoint.py -v
"""

import filelock


class TestCheckpointPaths:
    """Artifact layout."""

    def test_paths(self, tmp_path):
        from hex_density.models import JobSpec
        from hex_density.parallel import CheckpointGate

        gate = CheckpointGate(tmp_path)
        job = JobSpec("32", 7)

        assert gate.output_path(job) == tmp_path / "32" / "7" / "32.json"
        assert gate.hexagon_geojson_path(job).name == "32_hexagons.geojson"
        assert gate.tract_geojson_path(job).name == "32_tracts.geojson"
        assert gate.lock_path(job) == tmp_path / ".locks" / "32_r7.lock"

    def test_lock_paths_differ_per_job(self, tmp_path):
        from hex_density.models import JobSpec
        from hex_density.parallel import CheckpointGate

        gate = CheckpointGate(tmp_path)
        assert gate.lock_path(JobSpec("32", 7)) != gate.lock_path(JobSpec("32", 8))
        assert gate.lock_path(JobSpec("32", 7)) != gate.lock_path(JobSpec("06", 7))


class TestCheckpointGate:
    """Completion check and locking."""

    def test_complete_only_after_primary_artifact(self, tmp_path):
        from hex_density.models import JobSpec
        from hex_density.parallel import CheckpointGate

        gate = CheckpointGate(tmp_path)
        job = JobSpec("32", 7)
        assert not gate.is_complete(job)

        # Secondary artifacts alone do not mark the job complete
        gate.artifact_dir(job).mkdir(parents=True)
        gate.hexagon_geojson_path(job).write_text("{}")
        assert not gate.is_complete(job)

        gate.output_path(job).write_text("{}")
        assert gate.is_complete(job)

    def test_disabled_gate_never_complete(self, tmp_path):
        from hex_density.models import JobSpec
        from hex_density.parallel import CheckpointGate

        gate = CheckpointGate(tmp_path, enabled=False)
        job = JobSpec("32", 7)
        gate.artifact_dir(job).mkdir(parents=True)
        gate.output_path(job).write_text("{}")
        assert not gate.is_complete(job)

    def test_hold_acquires_and_releases(self, tmp_path):
        from hex_density.models import JobSpec
        from hex_density.parallel import CheckpointGate

        gate = CheckpointGate(tmp_path, lock_timeout_s=1.0)
        job = JobSpec("32", 7)

        with gate.hold(job):
            assert gate.lock_path(job).parent.is_dir()

        # Released: an independent lock on the same file is free
        other_lock = filelock.FileLock(str(gate.lock_path(job)), timeout=0)
        other_lock.acquire()
        other_lock.release()

    def test_hold_releases_on_error(self, tmp_path):
        import pytest

        from hex_density.models import JobSpec
        from hex_density.parallel import CheckpointGate

        gate = CheckpointGate(tmp_path, lock_timeout_s=1.0)
        job = JobSpec("32", 7)

        with pytest.raises(RuntimeError):
            with gate.hold(job):
                raise RuntimeError("job failed")

        with gate.hold(job):
            pass
