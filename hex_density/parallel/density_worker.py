"""
Worker function for processing one chunk of hexagons.

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Estimate density for every hexagon id in a WorkChunk.
THIN WRAPPER pattern - calls aggregation.estimate_cell_density() per id.

Follows the worker-result pattern:
- Accept only picklable parameters (chunk + read-only TractIndex)
- Return dict with success/error status, never raise across the pool
- Own no shared mutable state: records are only returned, never written

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import time
import traceback
from typing import Any, Dict

from hex_density.aggregation import area_function, estimate_cell_density
from hex_density.models import WorkChunk
from hex_density.tract_index import TractIndex


def _chunk_key(chunk: WorkChunk) -> str:
    return f"chunk_{chunk.index:04d}"


def _create_empty_result(chunk: WorkChunk) -> Dict[str, Any]:
    """Create empty result dict for one chunk."""
    return {
        "key": _chunk_key(chunk),
        "chunk_index": chunk.index,
        "success": False,
        "records": [],
        "hex_count": len(chunk),
        "degenerate_count": 0,
        "error": None,
        "traceback": None,
        "duration_seconds": 0.0,
    }


def worker_process_hex_chunk(
    chunk: WorkChunk, tract_index: TractIndex
) -> Dict[str, Any]:
    """
    Worker function to process a single chunk of hexagon ids.

    Args:
        chunk: Contiguous slice of the job's hexagon ids
        tract_index: Job's read-only tract index (shared context)

    Returns:
        Dict with key, chunk_index, success, records (List[DensityRecord]),
        hex_count, degenerate_count, error, traceback, duration_seconds
    """
    start_time = time.time()
    logger = logging.getLogger("HexDensity.Parallel.Worker")
    result = _create_empty_result(chunk)

    try:
        area_fn = area_function(tract_index.geometry_mode)
        records = [
            estimate_cell_density(hex_id, tract_index, area_fn)
            for hex_id in chunk.hex_ids
        ]
        result["records"] = records
        result["degenerate_count"] = sum(1 for r in records if r.degenerate)
        result["success"] = True
        result["duration_seconds"] = time.time() - start_time
        logger.debug(
            "✅ %s: %d hexagons, %.1fs",
            result["key"],
            len(records),
            result["duration_seconds"],
        )
        return result

    except Exception as e:
        result["records"] = []
        result["error"] = f"{type(e).__name__}: {str(e)}"
        result["traceback"] = traceback.format_exc()
        result["duration_seconds"] = time.time() - start_time
        logger.error("❌ %s: %s", result["key"], result["error"])
        return result


__all__ = ["worker_process_hex_chunk"]
