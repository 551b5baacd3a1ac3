"""
Hexagon Density Parallel Processing Module

Provides the worker pool, chunk orchestration and job checkpointing.
- Thin workers calling aggregation functions
- One WorkerPool for both job-level and chunk-level parallelism
- Shared read-only context serialized once per dispatch

Module Structure:
- worker_pool.py: joblib pool + shared context transport
- density_orchestrator.py: Chunk partition, dispatch, result merge
- density_worker.py: Thin worker for one hexagon chunk
- checkpoint.py: Job completion marker and per-job file locking
"""

from hex_density.parallel.checkpoint import CheckpointGate
from hex_density.parallel.density_orchestrator import (
    compute_densities,
    get_chunk_count,
    partition_hexagons,
)
from hex_density.parallel.density_worker import worker_process_hex_chunk
from hex_density.parallel.worker_pool import (
    SharedContextHandle,
    WorkerPool,
    get_effective_worker_count,
    should_use_parallel,
)

__all__ = [
    # Pool
    "WorkerPool",
    "SharedContextHandle",
    "should_use_parallel",
    "get_effective_worker_count",
    # Orchestrator
    "compute_densities",
    "partition_hexagons",
    "get_chunk_count",
    "worker_process_hex_chunk",
    # Checkpoint
    "CheckpointGate",
]
