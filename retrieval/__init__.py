"""Retrieval layer: chunking, embeddings and similarity search."""

from .chunking import (
    chunk_document,
    chunk_text,
    chunk_xml,
    split_markdown_by_level,
    split_markdown_by_sections,
    split_text_with_delimiter,
)
from .documents import load_or_build_store, read_documents, store_file_path
from .metrics import RetrievalMetrics
from .vector_store import (
    EmbeddingRecord,
    StoreFormatError,
    StoreNotFoundError,
    VectorStore,
    cosine_similarity,
)

__all__ = [
    "chunk_document",
    "chunk_text",
    "chunk_xml",
    "split_markdown_by_level",
    "split_markdown_by_sections",
    "split_text_with_delimiter",
    "load_or_build_store",
    "read_documents",
    "store_file_path",
    "RetrievalMetrics",
    "EmbeddingRecord",
    "StoreFormatError",
    "StoreNotFoundError",
    "VectorStore",
    "cosine_similarity",
]
