"""
Job-level Checkpoint Gate

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Decide whether a (region, resolution) job still needs to
run, and keep two runners from computing the same job at once.

Checkpoint Marker:
- The job's primary artifact {output_dir}/{region}/{resolution}/{region}.json
  IS the completion flag. Exporters write it last and atomically, so its
  existence means every other artifact and upsert for the job succeeded.
- Coarse-grained: an interrupted job leaves no marker and is redone from
  scratch on the next run. There is no per-chunk progress.

Concurrency Model:
- Per-job filelock at {output_dir}/.locks/{job.key}.lock
- The pipeline holds the lock across check -> compute -> persist, so a
  second runner blocks, then sees the marker and skips
- Different jobs use different locks and never contend

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

import filelock

from hex_density.errors import DensityJobError
from hex_density.models import JobSpec

logger = logging.getLogger("HexDensity.Checkpoint")

LOCK_DIR_NAME = ".locks"


class CheckpointGate:
    """
    Artifact paths, completion check and per-job locking for density jobs.

    Attributes:
        output_dir: Root of the density output tree
        enabled: When False, is_complete() is always False (force recompute)
        lock_timeout_s: Seconds to wait for a job lock held elsewhere
    """

    def __init__(
        self,
        output_dir: Union[str, Path],
        enabled: bool = True,
        lock_timeout_s: float = 600.0,
    ):
        self.output_dir = Path(output_dir)
        self.enabled = enabled
        self.lock_timeout_s = lock_timeout_s

    # ─────────────────────────────────────────────────────────────────────
    # Artifact paths
    # ─────────────────────────────────────────────────────────────────────

    def artifact_dir(self, job: JobSpec) -> Path:
        return self.output_dir / job.region / str(job.resolution)

    def output_path(self, job: JobSpec) -> Path:
        """Primary density JSON; its existence marks the job complete."""
        return self.artifact_dir(job) / f"{job.region}.json"

    def hexagon_geojson_path(self, job: JobSpec) -> Path:
        return self.artifact_dir(job) / f"{job.region}_hexagons.geojson"

    def tract_geojson_path(self, job: JobSpec) -> Path:
        return self.artifact_dir(job) / f"{job.region}_tracts.geojson"

    def lock_path(self, job: JobSpec) -> Path:
        return self.output_dir / LOCK_DIR_NAME / f"{job.key}.lock"

    # ─────────────────────────────────────────────────────────────────────
    # Gate
    # ─────────────────────────────────────────────────────────────────────

    def is_complete(self, job: JobSpec) -> bool:
        """True when checkpointing is on and the primary artifact exists."""
        if not self.enabled:
            return False
        done = self.output_path(job).is_file()
        if done:
            logger.info(f"♻️ {job}: output exists, skipping ({self.output_path(job)})")
        return done

    @contextmanager
    def hold(self, job: JobSpec) -> Iterator[None]:
        """
        Hold the job's lock for the duration of the block.

        Raises:
            DensityJobError: lock not acquired within lock_timeout_s
        """
        lock_path = self.lock_path(job)
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock = filelock.FileLock(str(lock_path), timeout=self.lock_timeout_s)

        wait_start = time.perf_counter()
        try:
            lock.acquire()
        except filelock.Timeout as e:
            raise DensityJobError(
                f"Timed out after {self.lock_timeout_s}s waiting for job lock "
                f"{lock_path}",
                region=job.region,
                resolution=job.resolution,
            ) from e

        waited = time.perf_counter() - wait_start
        if waited > 1.0:
            logger.info(f"   🔒 {job}: acquired job lock after {waited:.1f}s")
        try:
            yield
        finally:
            lock.release()


__all__ = ["CheckpointGate", "LOCK_DIR_NAME"]
