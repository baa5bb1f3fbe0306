"""
vectormatch - semantic retrieval and matching over SQLite.

This package turns business records and documents into embeddings and
answers similarity questions about them.

Features:
- Section-aware document chunking with token budgets and overlap
- Sentence Transformers embeddings with caching and a disabled mode
- SQLite vector storage with k-NN, hybrid BM25 + vector and duplicate search
- Candidate/mandate semantic fit scoring
- Batched writes with per-row error reporting
- Background embedding workers and table backfill
"""

from .config import Settings
from .errors import (
    InvalidInputError,
    ModelUnavailableError,
    NotFoundError,
    StorageError,
    VectorMatchError,
)
from .tables import EmbeddableTable, TABLE_SCHEMAS, TableSchema
from .chunker import (
    DocumentChunk,
    TextChunk,
    chunk_document_by_sections,
    estimate_tokens,
    extract_section,
    split_into_chunks,
)
from .database import VectorStore
from .embeddings.engine import EmbeddingEngine
from .embeddings.semantic_fit import SemanticFitScorer, compute_semantic_fit
from .embeddings.pipeline import EmbeddingPipeline, build_pipeline
from .logging_config import setup_logging

__all__ = [
    # Configuration
    "Settings",
    "setup_logging",
    # Errors
    "VectorMatchError",
    "ModelUnavailableError",
    "InvalidInputError",
    "StorageError",
    "NotFoundError",
    # Tables
    "EmbeddableTable",
    "TABLE_SCHEMAS",
    "TableSchema",
    # Chunking
    "TextChunk",
    "DocumentChunk",
    "estimate_tokens",
    "split_into_chunks",
    "extract_section",
    "chunk_document_by_sections",
    # Embeddings & storage
    "EmbeddingEngine",
    "VectorStore",
    "SemanticFitScorer",
    "compute_semantic_fit",
    # Facade
    "EmbeddingPipeline",
    "build_pipeline",
]
__version__ = "0.1.0"
