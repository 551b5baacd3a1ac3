"""
Orchestrator for parallel hexagon density computation.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Partition a job's hexagon ids into chunks, dispatch them
to the worker pool with the job's tract index as shared context, and merge
per-chunk records into one hex_id -> DensityRecord mapping.

Pattern:
- Partition deterministically (sorted ids, contiguous slices)
- Serialize the tract index ONCE per dispatch (WorkerPool handles this)
- Thin workers return result dicts with success/error status
- Result collection is all-or-nothing: any failed chunk, or any id missing
  or duplicated across chunks, fails the whole job with WorkerFailure

The orchestrator is the only writer of the merged mapping, and it only
builds it after every chunk has reported.

Key Functions:
- partition_hexagons(): Strict partition into WorkChunk values
- compute_densities(): Main entry point for one job's chunk stage
- _collect_results(): Merge + validate chunk results

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import time
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from hex_density.config_types import ParallelConfig
from hex_density.errors import WorkerFailure
from hex_density.models import DensityRecord, WorkChunk
from hex_density.parallel.density_worker import worker_process_hex_chunk
from hex_density.parallel.worker_pool import (
    WorkerPool,
    get_effective_worker_count,
    should_use_parallel,
)
from hex_density.tract_index import TractIndex

logger = logging.getLogger("HexDensity.Parallel.Orchestrator")


# ═══════════════════════════════════════════════════════════════════════════
# ✂️ PARTITIONING
# ═══════════════════════════════════════════════════════════════════════════


def get_chunk_count(
    n_hexagons: int, n_workers: int, chunks_per_worker: int = 1
) -> int:
    """Number of chunks: workers x chunks_per_worker, capped at n_hexagons."""
    if n_hexagons <= 0:
        return 0
    return max(1, min(n_workers * chunks_per_worker, n_hexagons))


def partition_hexagons(hex_ids: Iterable[str], n_chunks: int) -> List[WorkChunk]:
    """
    Split hexagon ids into n_chunks disjoint contiguous chunks.

    Ids are sorted first so the same id set always yields the same chunks.
    Chunk sizes differ by at most one. No chunk is empty.

    Args:
        hex_ids: Job's hexagon ids (any iterable; duplicates are collapsed)
        n_chunks: Requested chunk count (capped at the number of ids)

    Returns:
        List of WorkChunk, indexed 0..n-1
    """
    ordered = sorted(set(hex_ids))
    if not ordered:
        return []
    n_chunks = max(1, min(n_chunks, len(ordered)))

    chunks = []
    splits = np.array_split(np.arange(len(ordered)), n_chunks)
    for index, positions in enumerate(splits):
        if len(positions) == 0:
            continue
        start, stop = int(positions[0]), int(positions[-1]) + 1
        chunks.append(WorkChunk(index=index, hex_ids=tuple(ordered[start:stop])))
    return chunks


# ═══════════════════════════════════════════════════════════════════════════
# 🚀 MAIN ORCHESTRATOR FUNCTION
# ═══════════════════════════════════════════════════════════════════════════


def compute_densities(
    hex_ids: Iterable[str],
    tract_index: TractIndex,
    parallel: ParallelConfig,
    n_workers: Optional[int] = None,
) -> Dict[str, DensityRecord]:
    """
    Produce one DensityRecord per hexagon id.

    Args:
        hex_ids: Full hexagon id set for the job
        tract_index: Job's read-only tract index
        parallel: Parallel config (backend, worker ceiling, chunking)
        n_workers: Explicit worker count (job mode passes 1)

    Returns:
        Dict mapping hex_id -> DensityRecord

    Raises:
        WorkerFailure: any chunk failed or the merged ids do not match
    """
    expected = frozenset(hex_ids)
    if not expected:
        logger.warning("⚠️ No hexagons to process")
        return {}

    if n_workers is None:
        use_parallel, reason = should_use_parallel(len(expected), parallel)
        if not use_parallel:
            logger.info(f"📋 Sequential chunk processing: {reason}")
        n_workers = get_effective_worker_count(len(expected), parallel)

    n_chunks = get_chunk_count(len(expected), n_workers, parallel.chunks_per_worker)
    chunks = partition_hexagons(expected, n_chunks)
    pool = WorkerPool.from_config(parallel, len(chunks), n_workers=n_workers)

    logger.info(
        f"🚀 Dispatching {len(expected)} hexagons as {len(chunks)} chunks "
        f"to {pool.n_workers} worker(s)..."
    )
    logger.info(f"   Tract index: {len(tract_index)} tracts")

    dispatch_start = time.time()
    results_list = pool.run(worker_process_hex_chunk, chunks, tract_index)
    dispatch_time = time.time() - dispatch_start
    logger.info(f"   ⏱️ Chunk dispatch completed in {dispatch_time:.1f}s")

    return _collect_results(results_list, expected)


# ═══════════════════════════════════════════════════════════════════════════
# 📦 RESULT COLLECTION
# ═══════════════════════════════════════════════════════════════════════════


def _collect_results(
    results_list: List[Optional[Dict[str, Any]]],
    expected: Optional[frozenset] = None,
) -> Dict[str, DensityRecord]:
    """
    Merge worker results into one dict keyed by hex_id.

    Args:
        results_list: Result dicts from worker_process_hex_chunk
        expected: Full id set; when given, the merge must match it exactly

    Returns:
        Dict mapping hex_id -> DensityRecord

    Raises:
        WorkerFailure: a chunk reported failure, returned nothing, or the
            merged ids are duplicated/missing/unexpected
    """
    failures = []
    for position, result in enumerate(results_list):
        if result is None:
            failures.append((position, "Worker returned no result"))
        elif not result.get("success"):
            chunk_index = result.get("chunk_index", position)
            failures.append((chunk_index, result.get("error") or "Unknown error"))
            if result.get("traceback"):
                logger.debug(
                    f"   Traceback for chunk {chunk_index}:\n{result['traceback']}"
                )

    if failures:
        for chunk_index, error in failures:
            logger.error(f"❌ Chunk {chunk_index}: {error}")
        first_index, first_error = failures[0]
        raise WorkerFailure(
            f"{len(failures)} of {len(results_list)} chunks failed; "
            f"first: chunk {first_index}: {first_error}",
            chunk_index=first_index,
        )

    merged: Dict[str, DensityRecord] = {}
    degenerate = 0
    for result in results_list:
        for record in result["records"]:
            if record.hex_id in merged:
                raise WorkerFailure(
                    f"Hexagon {record.hex_id} reported by more than one chunk",
                    chunk_index=result.get("chunk_index"),
                )
            merged[record.hex_id] = record
            degenerate += record.degenerate

    if expected is not None and merged.keys() != expected:
        missing = len(expected - merged.keys())
        unexpected = len(merged.keys() - expected)
        raise WorkerFailure(
            f"Merged records do not match job grid: "
            f"{missing} missing, {unexpected} unexpected"
        )

    logger.info(
        f"📦 Collected {len(merged)} records from {len(results_list)} chunks"
        + (f" ({degenerate} degenerate)" if degenerate else "")
    )
    return merged


# ═══════════════════════════════════════════════════════════════════════════
# 📦 MODULE EXPORTS
# ═══════════════════════════════════════════════════════════════════════════

__all__ = [
    "compute_densities",
    "partition_hexagons",
    "get_chunk_count",
]
