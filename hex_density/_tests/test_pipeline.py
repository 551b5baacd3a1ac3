"""
Integration tests for the density job pipeline.

Uses small GeoJSON/CSV inputs near Reno (two tracts at 100 and 300 people
per km²) on the threading backend.

Tests:
1. A job writes one record per generated cell with blended densities
2. Rerunning a completed job is SKIPPED without recomputation
3. --no-checkpoint style runs recompute
4. A job with missing inputs fails alone; sibling jobs complete
5. Job mode (jobs on the pool) gives the same results as chunk mode
6. Optional GeoJSON layers and document store upsert happen before the
   primary artifact; a store failure leaves no checkpoint
7. After a job-pool crash, statuses come from the artifacts: already
   present -> SKIPPED, written during the run -> COMPLETED, absent -> FAILED

Run with: python -m pytest hex_density/_tests/test_pipeline.py -v
"""

import dataclasses
import json
from pathlib import Path


def _with(app_config, **sections):
    """Copy of app_config with some sections' fields replaced."""
    changes = {}
    for name, values in sections.items():
        if isinstance(values, dict):
            changes[name] = dataclasses.replace(getattr(app_config, name), **values)
        else:
            changes[name] = values
    return dataclasses.replace(app_config, **changes)


class TestRunJob:
    """Single job end to end."""

    def test_completed_job_writes_records(
        self, tmp_path, small_app_config, region_inputs
    ):
        from hex_density.boundary import normalize_boundary
        from hex_density.grid import generate_cells
        from hex_density.ingestion import load_boundary_geojson
        from hex_density.models import JobSpec, JobStatus
        from hex_density.pipeline import run_job

        region_inputs(tmp_path / "data")
        job = JobSpec("32", 6)
        result = run_job(job, small_app_config)

        assert result.status == JobStatus.COMPLETED, result.error
        data = json.loads(Path(result.output_path).read_text())

        boundary = normalize_boundary(
            load_boundary_geojson(tmp_path / "data" / "states" / "32.geojson")
        )
        assert set(data) == set(generate_cells(boundary, 6))
        assert result.hex_count == len(data)
        for hex_id, entry in data.items():
            assert entry["hex"] == hex_id
            assert 100.0 * (1 - 1e-3) <= entry["density"] <= 300.0 * (1 + 1e-3)

    def test_second_run_skipped(
        self, tmp_path, small_app_config, region_inputs
    ):
        from hex_density.models import JobSpec, JobStatus
        from hex_density.pipeline import run_job

        region_inputs(tmp_path / "data")
        job = JobSpec("32", 6)
        first = run_job(job, small_app_config)
        mtime = (tmp_path / "density" / "32" / "6" / "32.json").stat().st_mtime_ns

        second = run_job(job, small_app_config)

        assert first.status == JobStatus.COMPLETED
        assert second.status == JobStatus.SKIPPED
        assert second.output_path == first.output_path
        output = tmp_path / "density" / "32" / "6" / "32.json"
        assert output.stat().st_mtime_ns == mtime

    def test_checkpoint_disabled_recomputes(
        self, tmp_path, small_app_config, region_inputs
    ):
        from hex_density.models import JobSpec, JobStatus
        from hex_density.pipeline import run_job

        region_inputs(tmp_path / "data")
        app_config = _with(small_app_config, checkpoint={"enabled": False})
        run_job(JobSpec("32", 6), app_config)

        assert run_job(JobSpec("32", 6), app_config).status == JobStatus.COMPLETED

    def test_missing_inputs_fail_job(self, small_app_config):
        from hex_density.models import JobSpec, JobStatus
        from hex_density.pipeline import run_job

        result = run_job(JobSpec("32", 6), small_app_config)

        assert result.status == JobStatus.FAILED
        assert result.error_type == "InputMissing"
        assert result.output_path is None

    def test_invalid_resolution_fails_job(
        self, tmp_path, small_app_config, region_inputs
    ):
        from hex_density.models import JobSpec, JobStatus
        from hex_density.pipeline import run_job

        region_inputs(tmp_path / "data")
        result = run_job(JobSpec("32", 16), small_app_config)

        assert result.status == JobStatus.FAILED
        assert result.error_type == "InvalidResolution"


class TestPersistence:
    """Optional artifacts and the document store."""

    def test_geojson_layers_written(
        self, tmp_path, small_app_config, region_inputs
    ):
        from hex_density.models import JobSpec, JobStatus
        from hex_density.pipeline import run_job

        region_inputs(tmp_path / "data")
        app_config = _with(
            small_app_config,
            output={"write_hexagon_geojson": True, "write_tract_geojson": True},
        )
        result = run_job(JobSpec("32", 6), app_config)

        out_dir = tmp_path / "density" / "32" / "6"
        assert result.status == JobStatus.COMPLETED
        hexagons = json.loads((out_dir / "32_hexagons.geojson").read_text())
        tracts = json.loads((out_dir / "32_tracts.geojson").read_text())
        assert len(hexagons["features"]) == result.hex_count
        assert len(tracts["features"]) == 2

    def test_records_upserted(
        self, tmp_path, small_app_config, region_inputs, fake_firestore
    ):
        from hex_density.document_store import DocumentStoreWriter
        from hex_density.models import JobSpec, JobStatus
        from hex_density.pipeline import run_job

        region_inputs(tmp_path / "data")
        writer = DocumentStoreWriter(fake_firestore, collection="density")
        result = run_job(JobSpec("32", 6), small_app_config, store_writer=writer)

        assert result.status == JobStatus.COMPLETED
        assert len(fake_firestore.documents) == result.hex_count

    def test_store_failure_leaves_no_checkpoint(
        self, tmp_path, small_app_config, region_inputs, fake_firestore
    ):
        from hex_density.document_store import DocumentStoreWriter
        from hex_density.models import JobSpec, JobStatus
        from hex_density.pipeline import run_job

        region_inputs(tmp_path / "data")
        fake_firestore.fail_on_commit = 1
        writer = DocumentStoreWriter(fake_firestore)
        result = run_job(JobSpec("32", 6), small_app_config, store_writer=writer)

        assert result.status == JobStatus.FAILED
        assert result.error_type == "PersistenceFailure"
        assert not (tmp_path / "density" / "32" / "6" / "32.json").exists()


class TestRunJobs:
    """Many jobs, failure isolation and scheduling modes."""

    def test_failure_isolated(
        self, tmp_path, small_app_config, region_inputs
    ):
        from hex_density.models import JobSpec, JobStatus
        from hex_density.pipeline import run_jobs

        region_inputs(tmp_path / "data", region="32")
        jobs = [JobSpec("32", 6), JobSpec("99", 6), JobSpec("32", 5)]
        results = run_jobs(jobs, small_app_config)

        assert [r.job for r in results] == jobs
        assert [r.status for r in results] == [
            JobStatus.COMPLETED,
            JobStatus.FAILED,
            JobStatus.COMPLETED,
        ]
        assert results[1].error_type == "InputMissing"

    def test_job_mode_matches_chunk_mode(
        self, tmp_path, small_app_config, region_inputs
    ):
        from hex_density.models import JobSpec, JobStatus
        from hex_density.pipeline import run_jobs

        region_inputs(tmp_path / "data")
        jobs = [JobSpec("32", 5), JobSpec("32", 6)]

        chunk_results = run_jobs(jobs, small_app_config)
        chunk_outputs = [
            json.loads(Path(r.output_path).read_text()) for r in chunk_results
        ]

        job_mode = _with(
            small_app_config,
            parallel={"mode": "job"},
            file_paths={"output_dir": str(tmp_path / "density_job_mode")},
        )
        job_results = run_jobs(jobs, job_mode)
        job_outputs = [json.loads(Path(r.output_path).read_text()) for r in job_results]

        assert all(r.status == JobStatus.COMPLETED for r in job_results)
        assert job_outputs == chunk_outputs

    def test_empty_job_list(self, small_app_config):
        from hex_density.pipeline import run_jobs

        assert run_jobs([], small_app_config) == []


class TestJobPoolCrash:
    """Status recovery when the job-mode pool dies."""

    def test_statuses_inferred_from_artifacts(
        self, tmp_path, small_app_config, region_inputs, monkeypatch
    ):
        from hex_density.errors import WorkerFailure
        from hex_density.models import JobSpec, JobStatus
        from hex_density.parallel.worker_pool import WorkerPool
        from hex_density.pipeline import run_job, run_jobs

        region_inputs(tmp_path / "data")
        done_before = JobSpec("32", 5)
        assert run_job(done_before, small_app_config).status == JobStatus.COMPLETED

        def crash_after_second(self, fn, units, shared=None):
            fn(list(units)[1], shared)
            raise WorkerFailure("worker process terminated")

        monkeypatch.setattr(WorkerPool, "run", crash_after_second)
        jobs = [done_before, JobSpec("32", 6), JobSpec("99", 6)]
        results = run_jobs(jobs, _with(small_app_config, parallel={"mode": "job"}))

        assert [r.status for r in results] == [
            JobStatus.SKIPPED,
            JobStatus.COMPLETED,
            JobStatus.FAILED,
        ]
        assert results[2].error_type == "WorkerFailure"
        assert results[2].output_path is None

    def test_untouched_artifact_fails_without_checkpoint(
        self, tmp_path, small_app_config
    ):
        from hex_density.errors import WorkerFailure
        from hex_density.models import JobSpec, JobStatus
        from hex_density.pipeline import (
            _artifact_mtimes,
            _results_after_pool_crash,
            make_checkpoint_gate,
        )

        app_config = _with(small_app_config, checkpoint={"enabled": False})
        jobs = [JobSpec("32", 6)]
        gate = make_checkpoint_gate(app_config)
        gate.output_path(jobs[0]).parent.mkdir(parents=True)
        gate.output_path(jobs[0]).write_text("{}")

        before = _artifact_mtimes(jobs, gate)
        results = _results_after_pool_crash(
            jobs, app_config, WorkerFailure("died"), 0.0, before
        )
        assert results[0].status == JobStatus.FAILED
