"""
Embedding generation, semantic fit and background writes.

Provides normalized text embeddings using Sentence Transformers
(all-MiniLM-L6-v2 model, 384 dimensions) and the pieces built on them.

Features:
- Lazy, single-flight model loading with a disabled mode
- Bounded LRU cache keyed by normalized text
- Banded candidate/mandate semantic fit
- Background worker pool with retries

Example:
    from src.vectormatch.embeddings import EmbeddingEngine, SemanticFitScorer

    engine = EmbeddingEngine()
    vec = engine.embed("Head of private credit, London")

    fit = SemanticFitScorer(engine).compute(candidate, mandate)
    print(fit.semantic_score, fit.mismatches)

EmbeddingPipeline lives in .pipeline and is not imported here because it
depends on the vector store.
"""

from .models import (
    BackfillStats,
    BatchError,
    BatchResult,
    CandidateProfile,
    ChunkingResult,
    ChunkRecord,
    EmbeddingMetadata,
    EmbeddingRow,
    MandateProfile,
    SemanticFitResult,
)
from .engine import EmbeddingEngine, cosine, normalize_text, tokenize_keywords
from .semantic_fit import SemanticFitScorer, compute_semantic_fit, similarity_to_score
from .worker import EmbeddingJob, EmbeddingWorkerPool

__all__ = [
    "EmbeddingEngine",
    "normalize_text",
    "tokenize_keywords",
    "cosine",
    "SemanticFitScorer",
    "compute_semantic_fit",
    "similarity_to_score",
    "EmbeddingJob",
    "EmbeddingWorkerPool",
    "BackfillStats",
    "BatchError",
    "BatchResult",
    "CandidateProfile",
    "ChunkingResult",
    "ChunkRecord",
    "EmbeddingMetadata",
    "EmbeddingRow",
    "MandateProfile",
    "SemanticFitResult",
]
