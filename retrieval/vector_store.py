"""In-memory vector store with JSON persistence and cosine similarity search."""

import hashlib
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, ValidationError

from llm.base_client import BaseLLMClient
from llm.errors import OrchestratorError
from .metrics import RetrievalMetrics

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class StoreNotFoundError(OrchestratorError):
    """No persisted snapshot at the given path."""


class StoreFormatError(OrchestratorError):
    """A snapshot or vector does not match the expected shape."""


class EmbeddingRecord(BaseModel):
    """One embedded chunk. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    vector: List[float]


class StoreSnapshot(BaseModel):
    """On-disk representation of a vector store."""
    version: int = SNAPSHOT_VERSION
    model: Optional[str] = None
    dimension: Optional[int] = None
    records: List[EmbeddingRecord] = []


def record_id(text: str) -> str:
    """Stable id of a chunk: SHA-256 hex digest of its text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def cosine_similarity(a, b) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero norm. The result is clipped to
    [-1, 1] to absorb floating point drift.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector dimensions differ: {va.shape} vs {vb.shape}")

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    similarity = np.dot(va, vb) / (norm_a * norm_b)
    return float(np.clip(similarity, -1.0, 1.0))


class VectorStore:
    """
    Insertion-ordered collection of embedded chunks.

    Built once per corpus (ingested or loaded), then searched. Not
    thread-safe.
    """

    def __init__(self, llm_client: BaseLLMClient, model: Optional[str] = None):
        """
        Initialize vector store.

        Args:
            llm_client: Provider of the embedding capability
            model: Embedding model id recorded in snapshots
                (default: the client's embedding model)
        """
        self.llm_client = llm_client
        self.model = model or llm_client.get_embedding_model_name()
        self.dimension: Optional[int] = None
        self.metrics = RetrievalMetrics()
        self._records: Dict[str, EmbeddingRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def records(self) -> List[EmbeddingRecord]:
        return list(self._records.values())

    def reset(self) -> None:
        """Drop every record and the recorded dimension."""
        self._records = {}
        self.dimension = None

    def _embed(self, text: str) -> List[float]:
        start = time.perf_counter()
        vector = [float(value) for value in self.llm_client.embed(text)]
        self.metrics.record_embedding(text, len(vector), time.perf_counter() - start)
        return vector

    def _check_dimension(self, vector: List[float]) -> None:
        if not vector:
            raise StoreFormatError("Embedding provider returned an empty vector")
        if self.dimension is not None and len(vector) != self.dimension:
            raise StoreFormatError(
                f"Embedding dimension {len(vector)} does not match store dimension {self.dimension}"
            )

    def ingest(self, chunks: Iterable[str]) -> int:
        """
        Embed and store chunks.

        Blank chunks and chunks already in the store are skipped. The first
        embedding failure propagates; records created before it are kept.

        Returns:
            Number of new records
        """
        added = 0
        for chunk in chunks:
            if not chunk or not chunk.strip():
                continue

            chunk_id = record_id(chunk)
            if chunk_id in self._records:
                logger.debug(f"Skipping duplicate chunk {chunk_id[:12]}")
                continue

            vector = self._embed(chunk)
            self._check_dimension(vector)
            if self.dimension is None:
                self.dimension = len(vector)

            self._records[chunk_id] = EmbeddingRecord(id=chunk_id, text=chunk, vector=vector)
            added += 1
            logger.debug(f"Stored chunk {chunk_id[:12]} ({len(chunk)} chars)")

        logger.info(f"Ingested {added} new chunks ({len(self._records)} records in store)")
        return added

    def search_similarities(
        self,
        query: str,
        min_similarity: float
    ) -> List[Tuple[EmbeddingRecord, float]]:
        """All records scoring at least min_similarity, most similar first."""
        return self._search(query, min_similarity, None)

    def search_top_n(
        self,
        query: str,
        min_similarity: float,
        n: int
    ) -> List[Tuple[EmbeddingRecord, float]]:
        """
        Find the n records most similar to the query.

        Args:
            query: Text to embed and compare
            min_similarity: Minimum cosine similarity, in [0, 1]
            n: Maximum number of results (positive)

        Returns:
            (record, score) pairs by descending score; ties keep insertion order

        Raises:
            ValueError: Invalid n or min_similarity
        """
        if isinstance(n, bool) or not isinstance(n, int) or n <= 0:
            raise ValueError(f"n must be a positive integer, got {n!r}")
        return self._search(query, min_similarity, n)

    def _search(
        self,
        query: str,
        min_similarity: float,
        n: Optional[int]
    ) -> List[Tuple[EmbeddingRecord, float]]:
        if not 0.0 <= min_similarity <= 1.0:
            raise ValueError(f"min_similarity must be in [0, 1], got {min_similarity}")
        if not self._records:
            return []

        start = time.perf_counter()
        query_vector = self._embed(query)
        self._check_dimension(query_vector)

        matches = []
        for record in self._records.values():
            score = cosine_similarity(query_vector, record.vector)
            if score >= min_similarity:
                matches.append((record, score))

        # sort() is stable, equal scores stay in insertion order
        matches.sort(key=lambda match: match[1], reverse=True)
        if n is not None:
            matches = matches[:n]

        self.metrics.record_search(time.perf_counter() - start)
        logger.debug(f"Search returned {len(matches)} matches (min_similarity={min_similarity})")
        return matches

    @staticmethod
    def store_file_exists(path) -> bool:
        return Path(path).is_file()

    def persist(self, path) -> None:
        """
        Write a snapshot to path.

        The snapshot is written to a temporary file next to the target and
        moved into place, so an existing snapshot survives a failed write.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        snapshot = StoreSnapshot(
            model=self.model,
            dimension=self.dimension,
            records=self.records()
        )
        fd, tmp_path = tempfile.mkstemp(
            dir=str(target.parent),
            prefix=f".{target.name}.",
            suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(snapshot.model_dump_json(indent=2))
            os.replace(tmp_path, target)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

        logger.info(f"Persisted {len(self._records)} records to {target}")

    def load(self, path) -> None:
        """
        Replace the store contents with a persisted snapshot.

        Raises:
            StoreNotFoundError: Nothing at path
            StoreFormatError: Unreadable or inconsistent snapshot, or one
                embedded with another model
        """
        source = Path(path)
        if not source.is_file():
            raise StoreNotFoundError(f"No vector store snapshot at {source}")

        try:
            with open(source, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreFormatError(f"Cannot read vector store snapshot {source}: {e}") from e

        if not isinstance(data, dict) or data.get("version") != SNAPSHOT_VERSION:
            raise StoreFormatError(f"Unsupported vector store snapshot version in {source}")

        try:
            snapshot = StoreSnapshot.model_validate(data)
        except ValidationError as e:
            raise StoreFormatError(f"Invalid vector store snapshot {source}: {e}") from e

        for record in snapshot.records:
            if snapshot.dimension is None or len(record.vector) != snapshot.dimension:
                raise StoreFormatError(
                    f"Record {record.id[:12]} has {len(record.vector)} dimensions, "
                    f"snapshot declares {snapshot.dimension}"
                )

        # queries must be embedded by the model that embedded the records
        if snapshot.model and self.model and snapshot.model != self.model:
            raise StoreFormatError(
                f"Snapshot {source} was embedded with {snapshot.model}, "
                f"this store embeds with {self.model}"
            )

        self._records = {record.id: record for record in snapshot.records}
        self.dimension = snapshot.dimension
        if snapshot.model:
            self.model = snapshot.model
        logger.info(f"Loaded {len(self._records)} records from {source}")
