"""
Density job pipeline - entry point of the engine.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Run (region, resolution) jobs end to end with per-job
failure isolation.

Per-job flow (run_job):
1. Validate resolution
2. Checkpoint gate: skip if the primary artifact exists
3. Under the job lock: re-check, then
   a. Load boundary -> Boundary parts -> H3 cell ids
   b. Load tract table + geometries -> TractIndex (built once per job)
   c. compute_densities(): chunk dispatch + all-or-nothing merge
   d. Persist: document store upsert, optional GeoJSONs, primary JSON LAST
4. Return JobResult (COMPLETED / SKIPPED / FAILED)

Scheduling (run_jobs):
- mode "chunk": jobs one after another, each job's chunks on the pool
- mode "job":   jobs on the pool, each job's chunks in-process (1 worker)

A failure inside a job never escapes run_job(): it becomes a FAILED
JobResult carrying region, resolution, error type and message, and the job
leaves no checkpoint artifact so the next run retries it.

Configuration is passed in explicitly as an AppConfig; nothing here reads
CONFIG or the environment.
"""

import logging
import time
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from hex_density.boundary import select_boundaries
from hex_density.config_types import AppConfig, DocumentStoreConfig
from hex_density.document_store import DocumentStoreWriter, create_firestore_client
from hex_density.errors import DensityJobError, WorkerFailure
from hex_density.exporters import (
    export_density_json,
    export_hexagon_geojson,
    export_tract_geojson,
)
from hex_density.grid import generate_cells_for, prefilter_buffer_m, validate_resolution
from hex_density.ingestion import (
    load_boundary_geojson,
    load_tract_attributes,
    load_tract_geometries,
)
from hex_density.models import DensityRecord, JobResult, JobSpec, JobStatus
from hex_density.parallel.checkpoint import CheckpointGate
from hex_density.parallel.density_orchestrator import compute_densities
from hex_density.parallel.worker_pool import WorkerPool
from hex_density.tract_index import GEOGRAPHIC, TractIndex, build_tract_index

logger = logging.getLogger("HexDensity.Pipeline")


def make_checkpoint_gate(app_config: AppConfig) -> CheckpointGate:
    return CheckpointGate(
        output_dir=app_config.output_dir,
        enabled=app_config.checkpoint.enabled,
        lock_timeout_s=app_config.checkpoint.lock_timeout_s,
    )


def make_store_writer(store: DocumentStoreConfig) -> Optional[DocumentStoreWriter]:
    """Firestore writer when the document store is enabled, else None."""
    if not store.enabled:
        return None
    return DocumentStoreWriter(
        create_firestore_client(store.project),
        collection=store.collection,
        batch_limit=store.batch_limit,
    )


# ═══════════════════════════════════════════════════════════════════════════
# 🏗️ JOB PREPARATION
# ═══════════════════════════════════════════════════════════════════════════


def prepare_job(
    job: JobSpec, app_config: AppConfig
) -> Tuple[FrozenSet[str], TractIndex]:
    """
    Load a job's inputs and build its hexagon id set and tract index.

    Raises:
        InputMissing: boundary, tract table or tract geometry file absent
        UnsupportedGeometry: boundary or tract geometry not handled
    """
    paths = app_config.file_paths

    boundary_geojson = load_boundary_geojson(paths.boundary_path(job.region))
    policy = app_config.grid.multipolygon_policy
    boundaries = select_boundaries(boundary_geojson, policy)
    hex_ids = generate_cells_for(boundaries, job.resolution)
    logger.info(
        f"🔷 {job}: {len(hex_ids)} hexagons from {len(boundaries)} boundary part(s)"
    )

    attributes = load_tract_attributes(paths.tract_attributes_path(job.region))
    geometries = load_tract_geometries(
        paths.tract_geometry_path(job.region),
        id_column=app_config.tracts.id_column,
        target_crs=app_config.tracts.target_crs,
    )
    tract_index = build_tract_index(
        geometries,
        attributes,
        buffer_m=prefilter_buffer_m(
            job.resolution, app_config.grid.prefilter_buffer_factor
        ),
        geometry_mode=GEOGRAPHIC,
    )
    return hex_ids, tract_index


def persist_job_outputs(
    job: JobSpec,
    records: Mapping[str, DensityRecord],
    tract_index: TractIndex,
    gate: CheckpointGate,
    app_config: AppConfig,
    store_writer: Optional[DocumentStoreWriter] = None,
) -> Path:
    """
    Write every artifact for a job; the checkpoint artifact goes last.

    Raises:
        PersistenceFailure: any write or upsert failed (no checkpoint left)
    """
    output = app_config.output

    if store_writer is not None:
        store_writer.upsert(records[hex_id] for hex_id in sorted(records))
    if output.write_hexagon_geojson:
        export_hexagon_geojson(records, gate.hexagon_geojson_path(job))
    if output.write_tract_geojson:
        export_tract_geojson(tract_index, gate.tract_geojson_path(job))

    return export_density_json(records, gate.output_path(job), output.json_indent)


# ═══════════════════════════════════════════════════════════════════════════
# 🚀 SINGLE JOB
# ═══════════════════════════════════════════════════════════════════════════


def run_job(
    job: JobSpec,
    app_config: AppConfig,
    inner_workers: Optional[int] = None,
    store_writer: Optional[DocumentStoreWriter] = None,
) -> JobResult:
    """
    Run one (region, resolution) job; never raises for job-local failures.

    Args:
        job: Region and resolution to compute
        app_config: Explicit configuration
        inner_workers: Chunk-stage worker count (None = from config)
        store_writer: Document store writer (None = build from config)

    Returns:
        JobResult with status COMPLETED, SKIPPED or FAILED
    """
    start = time.time()
    gate = make_checkpoint_gate(app_config)

    def _result(status: JobStatus, **kwargs) -> JobResult:
        return JobResult(job, status, duration_seconds=time.time() - start, **kwargs)

    try:
        validate_resolution(job.resolution)
        if gate.is_complete(job):
            return _result(JobStatus.SKIPPED, output_path=str(gate.output_path(job)))

        with gate.hold(job):
            # Another runner may have finished it while we waited on the lock
            if gate.is_complete(job):
                return _result(
                    JobStatus.SKIPPED, output_path=str(gate.output_path(job))
                )

            logger.info(f"▶️ {job}: starting")
            hex_ids, tract_index = prepare_job(job, app_config)
            records = compute_densities(
                hex_ids, tract_index, app_config.parallel, n_workers=inner_workers
            )
            if store_writer is None:
                store_writer = make_store_writer(app_config.document_store)
            output_path = persist_job_outputs(
                job, records, tract_index, gate, app_config, store_writer
            )

        result = _result(
            JobStatus.COMPLETED, hex_count=len(records), output_path=str(output_path)
        )
        logger.info(
            f"✅ {job}: {result.hex_count} hexagons in {result.duration_seconds:.1f}s"
        )
        return result

    except DensityJobError as e:
        e.with_job(job.region, job.resolution)
        logger.error(f"❌ {job}: {type(e).__name__}: {e.message}")
        return _result(JobStatus.FAILED, error=e.message, error_type=type(e).__name__)
    except Exception as e:
        logger.exception(f"❌ {job}: unexpected {type(e).__name__}: {e}")
        return _result(JobStatus.FAILED, error=str(e), error_type=type(e).__name__)


# ═══════════════════════════════════════════════════════════════════════════
# 🗂️ MANY JOBS
# ═══════════════════════════════════════════════════════════════════════════


def _job_unit(job: JobSpec, shared: Tuple[AppConfig, Optional[DocumentStoreWriter]]):
    """Job-mode pool task: chunks of this job run in-process."""
    app_config, store_writer = shared
    return run_job(job, app_config, inner_workers=1, store_writer=store_writer)


def _artifact_mtimes(
    jobs: List[JobSpec], gate: CheckpointGate
) -> Dict[JobSpec, Optional[float]]:
    """Primary artifact mtime per job (None when absent)."""
    mtimes: Dict[JobSpec, Optional[float]] = {}
    for job in jobs:
        path = gate.output_path(job)
        mtimes[job] = path.stat().st_mtime if path.is_file() else None
    return mtimes


def _results_after_pool_crash(
    jobs: List[JobSpec],
    app_config: AppConfig,
    error: WorkerFailure,
    start: float,
    mtimes_before: Mapping[JobSpec, Optional[float]],
) -> List[JobResult]:
    """
    Checkpoint artifacts tell which jobs finished before the pool died.

    An artifact that predates the dispatch means the job was SKIPPED when
    checkpointing is on, and was not redone when it is off. A new or
    rewritten artifact means the job COMPLETED. No artifact means FAILED.
    """
    gate = make_checkpoint_gate(app_config)
    mtimes_after = _artifact_mtimes(jobs, gate)
    results = []
    for job in jobs:
        before, after = mtimes_before.get(job), mtimes_after[job]
        if after is not None and after != before:
            status = JobStatus.COMPLETED
        elif after is not None and app_config.checkpoint.enabled:
            status = JobStatus.SKIPPED
        else:
            status = JobStatus.FAILED
        failed = status == JobStatus.FAILED
        results.append(
            JobResult(
                job,
                status,
                output_path=None if failed else str(gate.output_path(job)),
                error=error.message if failed else None,
                error_type="WorkerFailure" if failed else None,
                duration_seconds=time.time() - start,
            )
        )
    return results


def run_jobs(
    jobs: Iterable[JobSpec],
    app_config: AppConfig,
    store_writer: Optional[DocumentStoreWriter] = None,
) -> List[JobResult]:
    """
    Run many jobs with the configured scheduling tier.

    In "job" mode with a process backend the store_writer (if given) must be
    picklable; leave it None to let each job build one from config.

    Returns:
        One JobResult per job, in input order
    """
    jobs = list(jobs)
    mode = app_config.parallel.mode
    start = time.time()

    logger.info("=" * 70)
    logger.info(f"🗂️ Running {len(jobs)} density job(s), parallel mode: {mode}")
    logger.info("=" * 70)

    if mode == "job" and len(jobs) > 1:
        mtimes_before = _artifact_mtimes(jobs, make_checkpoint_gate(app_config))
        pool = WorkerPool.from_config(app_config.parallel, len(jobs))
        logger.info(f"🚀 Dispatching {len(jobs)} jobs to {pool.n_workers} worker(s)")
        try:
            results = pool.run(_job_unit, jobs, (app_config, store_writer))
        except WorkerFailure as e:
            logger.error(f"❌ Job pool crashed: {e}")
            results = _results_after_pool_crash(
                jobs, app_config, e, start, mtimes_before
            )
    else:
        results = [
            run_job(job, app_config, store_writer=store_writer) for job in jobs
        ]

    _log_summary(results, time.time() - start)
    return results


def _log_summary(results: List[JobResult], elapsed: float) -> None:
    counts = {status: 0 for status in JobStatus}
    for result in results:
        counts[result.status] += 1
    logger.info(
        f"📊 Jobs: {counts[JobStatus.COMPLETED]} completed, "
        f"{counts[JobStatus.SKIPPED]} skipped, {counts[JobStatus.FAILED]} failed "
        f"in {elapsed:.1f}s"
    )
    for result in results:
        if result.status == JobStatus.FAILED:
            logger.warning(
                f"   ⚠️ {result.job}: {result.error_type}: {result.error}"
            )


__all__ = [
    "run_job",
    "run_jobs",
    "prepare_job",
    "persist_job_outputs",
    "make_checkpoint_gate",
    "make_store_writer",
]
