"""
Document store persistence (Firestore).

Upserts DensityRecord values into a collection keyed by hexagon id. The
store caps writes per batch; a batch is committed as soon as it holds
batch_limit - 1 writes, then once more for any remainder, so N records
always take ceil(N / (batch_limit - 1)) sequential commits.

Commit errors are raised as PersistenceFailure. The pipeline upserts
before writing the checkpoint artifact, so a failed upsert leaves the job
incomplete and it is retried on the next run.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from google.cloud import firestore

from hex_density.errors import PersistenceFailure
from hex_density.exporters import load_density_json
from hex_density.models import DensityRecord

logger = logging.getLogger("HexDensity.DocumentStore")


def create_firestore_client(project: Optional[str] = None) -> firestore.Client:
    """Firestore client using application default credentials."""
    return firestore.Client(project=project)


class DocumentStoreWriter:
    """
    Batched upsert of density records.

    Args:
        client: Firestore client (anything with batch() and collection())
        collection: Target collection name
        batch_limit: Store-imposed per-batch ceiling
    """

    def __init__(
        self, client: Any, collection: str = "density", batch_limit: int = 500
    ):
        if batch_limit < 2:
            raise ValueError(f"batch_limit must be >= 2, got {batch_limit}")
        self.client = client
        self.collection = collection
        self.batch_limit = batch_limit

    @property
    def ops_per_batch(self) -> int:
        return self.batch_limit - 1

    def _commit(self, batch: Any, n_ops: int, batch_number: int) -> None:
        try:
            batch.commit()
        except Exception as e:
            raise PersistenceFailure(
                f"Firestore commit of batch {batch_number} ({n_ops} ops) "
                f"to '{self.collection}' failed: {e}"
            ) from e
        logger.debug(f"   ☁️ Committed batch {batch_number} with {n_ops} operations")

    def upsert(self, records: Iterable[DensityRecord]) -> int:
        """
        Write every record as document {hex_id} (merge semantics).

        Returns:
            Number of batches committed

        Raises:
            PersistenceFailure: a batch commit failed (later batches not sent)
        """
        collection_ref = self.client.collection(self.collection)
        batch = self.client.batch()
        pending = 0
        committed = 0
        total = 0

        for record in records:
            doc_ref = collection_ref.document(record.hex_id)
            batch.set(doc_ref, record.as_dict(), merge=True)
            pending += 1
            total += 1
            if pending >= self.ops_per_batch:
                committed += 1
                self._commit(batch, pending, committed)
                batch = self.client.batch()
                pending = 0

        if pending > 0:
            committed += 1
            self._commit(batch, pending, committed)

        logger.info(
            f"☁️ Upserted {total} records to '{self.collection}' in {committed} batches"
        )
        return committed


def upload_existing_outputs(
    output_dir: Union[str, Path],
    writer: DocumentStoreWriter,
    resolution: Optional[int] = None,
) -> Dict[str, int]:
    """
    Upload every primary density artifact already on disk.

    Scans {output_dir}/{region}/{resolution}/{region}.json.

    Args:
        output_dir: Root of the density output tree
        writer: Configured DocumentStoreWriter
        resolution: Only upload this resolution (None = all)

    Returns:
        Dict mapping artifact path -> number of records uploaded
    """
    output_dir = Path(output_dir)
    uploaded: Dict[str, int] = {}

    for path in sorted(output_dir.glob("*/*/*.json")):
        region_dir = path.parent.parent
        if path.stem != region_dir.name or region_dir.name.startswith("."):
            continue
        if resolution is not None and path.parent.name != str(resolution):
            continue

        records = load_density_json(path)
        writer.upsert(records[h] for h in sorted(records))
        uploaded[str(path)] = len(records)
        logger.info(f"   📤 {path}: {len(records)} records")

    logger.info(f"📤 Uploaded {len(uploaded)} existing artifacts from {output_dir}")
    return uploaded


__all__ = ["DocumentStoreWriter", "create_firestore_client", "upload_existing_outputs"]
