"""
Worker pool shared by job-level and chunk-level parallelism.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Run fn(unit, shared) for every unit of work on a joblib
Parallel pool and return the results in unit order.

One abstraction serves both scheduling tiers:
- Job tier:   units = JobSpec values, shared = AppConfig
- Chunk tier: units = WorkChunk values, shared = the job's TractIndex

Shared Context Transport:
-------------------------
The shared object is read-only and can be large (a state's tract polygons).
- Process backends (loky, multiprocessing) with >1 worker: pickled ONCE to
  a temp blob; each task carries only a SharedContextHandle (a path). A
  worker process unpickles the blob at most once and reuses it for every
  later task of the same dispatch.
- Threading backend or a single worker: the object is passed directly.

Failure Model:
--------------
Unit functions are expected to catch their own errors and return result
dicts. A worker process dying (segfault, OOM kill) surfaces from joblib as
TerminatedWorkerError and is raised here as WorkerFailure.
"""

import logging
import os
import pickle
import shutil
import tempfile
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import psutil
from joblib import Parallel, delayed
from joblib.externals.loky.process_executor import TerminatedWorkerError

from hex_density.config_types import ParallelConfig
from hex_density.errors import WorkerFailure

logger = logging.getLogger("HexDensity.Parallel.Pool")

PROCESS_BACKENDS = ("loky", "multiprocessing")

# Per-process cache of the most recently loaded shared blob
_LOADED_CONTEXT: Dict[str, Any] = {}


# ═══════════════════════════════════════════════════════════════════════════
# 📦 SHARED CONTEXT HANDLE
# ═══════════════════════════════════════════════════════════════════════════


class SharedContextHandle:
    """Picklable pointer to a serialized shared context on disk."""

    def __init__(self, path: str) -> None:
        self.path = path

    def load(self) -> Any:
        """Unpickle the blob, at most once per process per path."""
        if self.path not in _LOADED_CONTEXT:
            with open(self.path, "rb") as f:
                obj = pickle.load(f)
            # Keep only the current dispatch's context resident
            _LOADED_CONTEXT.clear()
            _LOADED_CONTEXT[self.path] = obj
        return _LOADED_CONTEXT[self.path]

    def __repr__(self) -> str:
        return f"SharedContextHandle({self.path!r})"


def _invoke(fn: Callable[[Any, Any], Any], unit: Any, shared: Any) -> Any:
    """Task body executed in the worker: resolve the handle, then call fn."""
    if isinstance(shared, SharedContextHandle):
        shared = shared.load()
    return fn(unit, shared)


# ═══════════════════════════════════════════════════════════════════════════
# 📊 RESOURCE MONITORING
# ═══════════════════════════════════════════════════════════════════════════


def _log_resource_usage(stage: str) -> None:
    """Debug-log RSS and CPU for this process, tagged with `stage`."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    try:
        process = psutil.Process()
        mem_mb = process.memory_info().rss / (1024 * 1024)
        cpu_pct = process.cpu_percent()
        logger.debug(f"[{stage}] Memory: {mem_mb:.0f}MB, CPU: {cpu_pct:.1f}%")
    except psutil.Error as e:
        logger.debug(f"[{stage}] Resource monitoring failed: {e}")


# ═══════════════════════════════════════════════════════════════════════════
# 🔍 PARALLEL DECISION LOGIC
# ═══════════════════════════════════════════════════════════════════════════


def should_use_parallel(n_units: int, parallel: ParallelConfig) -> Tuple[bool, str]:
    """Return (use_pool, reason) for `n_units` of work."""
    if not parallel.enabled:
        return False, "parallel.enabled is False"
    if n_units < 2:
        return False, f"Only {n_units} unit(s) of work"
    return True, f"OK ({n_units} units)"


def get_effective_worker_count(n_units: int, parallel: ParallelConfig) -> int:
    """
    Calculate worker count from config and workload.

    max_workers = -1 means every core except parallel.reserve_cores. The
    result is never below 1 and never above n_units.

    Args:
        n_units: Number of units of work to process.
        parallel: Parallel processing configuration.

    Returns:
        Number of workers to use.
    """
    use_parallel, _ = should_use_parallel(n_units, parallel)
    if not use_parallel:
        return 1

    max_workers = parallel.max_workers
    if max_workers == -1:
        cpu_count = os.cpu_count() or 1
        max_workers = cpu_count - parallel.reserve_cores

    return max(1, min(max_workers, n_units))


# ═══════════════════════════════════════════════════════════════════════════
# 🏊 WORKER POOL
# ═══════════════════════════════════════════════════════════════════════════


class WorkerPool:
    """
    joblib-backed pool parameterized by worker count and backend.

    Example:
        pool = WorkerPool(n_workers=4)
        results = pool.run(worker_process_hex_chunk, chunks, tract_index)
    """

    def __init__(self, n_workers: int = 1, backend: str = "loky", verbose: int = 0):
        if n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {n_workers}")
        self.n_workers = n_workers
        self.backend = backend
        self.verbose = verbose

    @classmethod
    def from_config(
        cls, parallel: ParallelConfig, n_units: int, n_workers: Optional[int] = None
    ) -> "WorkerPool":
        """Build a pool sized for n_units (explicit n_workers wins)."""
        if n_workers is None:
            n_workers = get_effective_worker_count(n_units, parallel)
        return cls(
            n_workers=n_workers, backend=parallel.backend, verbose=parallel.verbose
        )

    def _needs_blob(self, n_jobs: int) -> bool:
        return n_jobs > 1 and self.backend in PROCESS_BACKENDS

    def run(
        self,
        fn: Callable[[Any, Any], Any],
        units: Iterable[Any],
        shared: Any = None,
    ) -> List[Any]:
        """
        Call fn(unit, shared) for every unit; results are in unit order.

        Args:
            fn: Module-level (picklable) callable
            units: Units of work
            shared: Read-only context handed to every call

        Returns:
            List of fn return values, one per unit

        Raises:
            WorkerFailure: A worker process terminated abruptly
        """
        units = list(units)
        if not units:
            return []

        n_jobs = min(self.n_workers, len(units))
        blob_dir = None
        try:
            payload = shared
            if self._needs_blob(n_jobs):
                blob_dir = tempfile.mkdtemp(prefix="hexdensity_ctx_")
                blob_path = os.path.join(blob_dir, "shared.pkl")
                serialize_start = time.time()
                with open(blob_path, "wb") as f:
                    pickle.dump(shared, f, protocol=pickle.HIGHEST_PROTOCOL)
                blob_mb = os.path.getsize(blob_path) / (1024 * 1024)
                logger.debug(
                    f"   📦 Shared context serialized once: {blob_mb:.1f}MB "
                    f"in {time.time() - serialize_start:.2f}s"
                )
                payload = SharedContextHandle(blob_path)

            _log_resource_usage("before_dispatch")
            dispatch_start = time.time()
            try:
                results = Parallel(
                    n_jobs=n_jobs, backend=self.backend, verbose=self.verbose
                )(delayed(_invoke)(fn, unit, payload) for unit in units)
            except TerminatedWorkerError as e:
                raise WorkerFailure(f"Worker process terminated: {e}") from e
            logger.debug(
                f"   ⏱️ {len(units)} units on {n_jobs} worker(s) "
                f"[{self.backend}] in {time.time() - dispatch_start:.1f}s"
            )
            _log_resource_usage("after_dispatch")
            return list(results)
        finally:
            if blob_dir is not None:
                shutil.rmtree(blob_dir, ignore_errors=True)


__all__ = [
    "WorkerPool",
    "SharedContextHandle",
    "should_use_parallel",
    "get_effective_worker_count",
]
