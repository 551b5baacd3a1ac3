#!/usr/bin/env python3
"""
Hexagon Density - Main Entry Point

Estimates population density per H3 hexagon for each configured
(region, resolution) job and writes density/{region}/{resolution}/{region}.json.

Usage:
    python -m hex_density.main --regions 32 06 --resolutions 6 7
    python -m hex_density.main --mode job --workers 8
    python -m hex_density.main --upload-only
    python -m hex_density.main --condense-census census census/density
    python -m hex_density.main --split-boundaries us-state-boundaries.geojson states

Each run writes logs/run_{MMDD}_{HHMM}/main.log and a per-job summary.json.
Exit code is 1 when any job failed.
"""

import argparse
import copy
import dataclasses
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

# Fix Windows console encoding for emoji support
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

from hex_density.config import CONFIG
from hex_density.config_types import AppConfig
from hex_density.document_store import upload_existing_outputs
from hex_density.errors import DensityJobError
from hex_density.exporters import write_json_atomic
from hex_density.ingestion import (
    condense_census_directory,
    condense_census_file,
    split_boundary_collection,
)
from hex_density.models import JobResult
from hex_density.pipeline import make_store_writer, run_jobs

LOGGER_NAME = "HexDensity"


def setup_logging(
    log_dir: Path, level: int = logging.INFO
) -> Tuple[logging.Logger, Path]:
    """Configure logging with file and console handlers.

    Handlers are attached to the "HexDensity" parent logger, so every
    HexDensity.* module logger writes to both.

    Returns:
        Tuple of (logger, run_log_folder) where run_log_folder is
        {log_dir}/run_{MMDD}_{HHMM}/ and holds main.log.
    """
    timestamp = datetime.now().strftime("%m%d_%H%M")
    run_log_folder = Path(log_dir) / f"run_{timestamp}"
    run_log_folder.mkdir(parents=True, exist_ok=True)
    log_path = run_log_folder / "main.log"

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    # File handler
    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    # Console handler
    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(level)
    ch.setFormatter(logging.Formatter("%(message)s"))

    logger.addHandler(fh)
    logger.addHandler(ch)

    return logger, run_log_folder


# ═══════════════════════════════════════════════════════════════════════════
# ⌨️ COMMAND LINE
# ═══════════════════════════════════════════════════════════════════════════


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Estimate population density per H3 hexagon from census tracts."
    )
    parser.add_argument("--regions", nargs="+", help="Region keys (state FIPS)")
    parser.add_argument("--resolutions", nargs="+", type=int, help="H3 resolutions")
    parser.add_argument(
        "--mode",
        choices=("chunk", "job"),
        help="Parallelize hexagon chunks within a job, or whole jobs",
    )
    parser.add_argument("--workers", type=int, help="Worker ceiling (-1 = auto)")
    parser.add_argument(
        "--no-checkpoint",
        action="store_true",
        help="Recompute jobs even if their output exists",
    )
    parser.add_argument(
        "--upload-only",
        action="store_true",
        help="Upload existing density JSON outputs to the document store",
    )
    parser.add_argument(
        "--condense-census",
        nargs=2,
        metavar=("SRC", "DST"),
        help="Condense a census CSV, or a folder of {Name}_{ST}.csv files",
    )
    parser.add_argument(
        "--split-boundaries",
        nargs=2,
        metavar=("SRC", "OUT_DIR"),
        help="Split a boundary FeatureCollection into one file per 'state'",
    )
    parser.add_argument("--verbose", action="store_true", help="DEBUG logging")
    return parser


def config_from_args(
    args: argparse.Namespace, base: Optional[Dict[str, Any]] = None
) -> AppConfig:
    """Apply CLI overrides on top of CONFIG and build the typed config."""
    config = copy.deepcopy(base if base is not None else CONFIG)
    if args.regions:
        config["regions"] = list(args.regions)
    if args.resolutions:
        config["resolutions"] = list(args.resolutions)
    if args.mode:
        config["parallel"]["mode"] = args.mode
    if args.workers is not None:
        config["parallel"]["max_workers"] = args.workers
    if args.no_checkpoint:
        config["checkpoint"]["enabled"] = False
    return AppConfig.from_dict(config)


def _run_upload(app_config: AppConfig, logger: logging.Logger) -> int:
    store = app_config.document_store
    if not store.enabled:
        logger.info("   ☁️ Document store disabled in config; enabling for upload")
    writer = make_store_writer(dataclasses.replace(store, enabled=True))
    uploaded = upload_existing_outputs(app_config.output_dir, writer)
    logger.info(f"✅ Uploaded {sum(uploaded.values())} records")
    return 0


def write_run_summary(results: Sequence[JobResult], run_log_folder: Path) -> Path:
    """Write one JobResult.as_dict() entry per job to summary.json."""
    return write_json_atomic(
        {
            "jobs": [r.as_dict() for r in results],
            "failed": sum(1 for r in results if not r.ok),
        },
        run_log_folder / "summary.json",
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI; returns the process exit code."""
    args = build_parser().parse_args(argv)
    app_config = config_from_args(args)

    level = logging.DEBUG if args.verbose else logging.INFO
    logger, run_log_folder = setup_logging(app_config.log_dir, level)
    logger.info("=" * 60)
    logger.info("🎯 Hexagon Density")
    logger.info("=" * 60)
    logger.info(f"   Log folder: {run_log_folder}")

    try:
        if args.condense_census:
            src, dst = (Path(p) for p in args.condense_census)
            if src.is_dir():
                condense_census_directory(src, dst)
            else:
                condense_census_file(src, dst)
            return 0

        if args.split_boundaries:
            src, out_dir = args.split_boundaries
            split_boundary_collection(src, out_dir)
            return 0

        if args.upload_only:
            return _run_upload(app_config, logger)

    except DensityJobError as e:
        logger.error(f"❌ {type(e).__name__}: {e}")
        return 1

    logger.info(f"   Regions: {', '.join(app_config.regions)}")
    logger.info(f"   Resolutions: {', '.join(map(str, app_config.resolutions))}")
    logger.info(f"   Output: {app_config.output_dir}")

    results = run_jobs(app_config.jobs(), app_config)
    try:
        summary_path = write_run_summary(results, run_log_folder)
        logger.info(f"   Summary: {summary_path}")
    except DensityJobError as e:
        logger.warning(f"⚠️ Run summary not written: {e}")

    failed: List[str] = [str(r.job) for r in results if not r.ok]
    if failed:
        logger.error(f"❌ {len(failed)} job(s) failed: {', '.join(failed)}")
        return 1
    return 0


# ═══════════════════════════════════════════════════════════════════════════
# 🚀 ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════


if __name__ == "__main__":
    sys.exit(main())
