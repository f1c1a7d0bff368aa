"""Corpus loading and vector store bootstrap."""

import logging
from pathlib import Path
from typing import List

from .chunking import chunk_document
from .vector_store import VectorStore

logger = logging.getLogger(__name__)


def read_documents(directory, extension: str = ".md") -> List[str]:
    """Read every file with the extension under directory, sorted by path."""
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"Documents directory not found: {root}")

    contents = []
    for path in sorted(root.rglob(f"*{extension}")):
        if path.is_file():
            contents.append(path.read_text(encoding="utf-8"))
    logger.info(f"Read {len(contents)} documents from {root}")
    return contents


def store_file_path(store_path, store_name: str) -> Path:
    return Path(store_path) / f"{store_name}.json"


def load_or_build_store(
    store: VectorStore,
    store_file,
    documents_dir,
    chunk_size: int = 1024,
    chunk_overlap: int = 128,
    extension: str = ".md"
) -> VectorStore:
    """
    Load a persisted store, or build it from the documents and persist it.

    Args:
        store: Empty vector store to fill
        store_file: Snapshot path
        documents_dir: Corpus directory, used only when no snapshot exists
        chunk_size: Maximum chunk length
        chunk_overlap: Overlap between windows of a long section
        extension: Document file extension

    Returns:
        The filled store
    """
    if store.store_file_exists(store_file):
        logger.info(f"Loading vector store from {store_file}")
        store.load(store_file)
        return store

    logger.info(f"No vector store at {store_file}; building from {documents_dir}")
    chunks = []
    for document in read_documents(documents_dir, extension):
        chunks.extend(chunk_document(document, chunk_size, chunk_overlap))
    logger.info(f"Prepared {len(chunks)} chunks for embedding")

    store.ingest(chunks)
    store.persist(store_file)
    return store
