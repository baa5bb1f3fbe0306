"""
Models for embedding generation, persistence and semantic fit.

Contains:
- Metadata and row models passed to the vector store
- Batch/backfill statistics
- Chunk persistence models
- Semantic fit profiles (pydantic, validated from upstream dicts) and result
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import DEFAULT_MODEL_NAME

Vector = Union[np.ndarray, list[float]]


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class EmbeddingMetadata:
    """
    Metadata written alongside every stored vector.

    computed_at defaults to the time of the write when left as None.
    """

    model_id: str = DEFAULT_MODEL_NAME
    source_tag: str = "parsed"
    normalized: bool = True
    computed_at: Optional[str] = None

    def resolved_computed_at(self) -> str:
        return self.computed_at or utc_now_iso()


@dataclass
class EmbeddingRow:
    """One row for VectorStore.batch_upsert_embeddings()."""

    id: Any
    embedding: Vector
    metadata: EmbeddingMetadata = field(default_factory=EmbeddingMetadata)


@dataclass
class BatchError:
    """
    A failure recorded during a batch operation.

    Row-level failures carry the row id; batch-level (commit) failures carry
    the batch offset instead.
    """

    error: str
    id: Any = None
    batch: Optional[int] = None


@dataclass
class BatchResult:
    """
    Outcome of a batch upsert or chunk insert.

    Example:
        result = store.batch_upsert_embeddings("candidates", rows)
        if result.is_partial:
            for err in result.errors:
                logger.warning(f"{err.id}: {err.error}")
    """

    succeeded: int = 0
    failed: int = 0
    errors: list[BatchError] = field(default_factory=list)
    embedding_errors: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    @property
    def is_partial(self) -> bool:
        """Some rows failed but at least one succeeded."""
        return self.failed > 0 and self.succeeded > 0

    @property
    def failed_ids(self) -> list[Any]:
        return [e.id for e in self.errors if e.id is not None]

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ChunkRecord:
    """A chunk row for VectorStore.insert_chunk()."""

    parent_document_id: int
    chunk_index: int
    text: str
    section_label: str = "paragraph"
    token_count_estimate: Optional[int] = None
    attributed_entity_id: Optional[int] = None
    source: Optional[str] = None
    embedding: Optional[Vector] = None
    metadata: EmbeddingMetadata = field(
        default_factory=lambda: EmbeddingMetadata(source_tag="chunk")
    )


@dataclass
class ChunkingResult:
    """Outcome of EmbeddingPipeline.process_document_chunks()."""

    success: bool = False
    chunks_created: int = 0
    total_chunks: int = 0
    errors: list[BatchError] = field(default_factory=list)
    dry_run: bool = False


@dataclass
class BackfillStats:
    """
    Statistics from a backfill pass over one table.

    Tracks progress so a caller can report it between batches.
    """

    table: str
    rows_total: int = 0
    rows_processed: int = 0
    rows_skipped: int = 0
    rows_failed: int = 0
    elapsed_seconds: float = 0.0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def rows_per_second(self) -> float:
        """Calculate processing throughput."""
        if self.elapsed_seconds > 0:
            return self.rows_processed / self.elapsed_seconds
        return 0.0

    @property
    def progress_pct(self) -> float:
        """Calculate completion percentage."""
        if self.rows_total > 0:
            done = self.rows_processed + self.rows_skipped + self.rows_failed
            return (done / self.rows_total) * 100
        return 0.0


# =============================================================================
# Semantic Fit Models
# =============================================================================


class CandidateProfile(BaseModel):
    """Structured candidate fields used for semantic fit."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    current_title: Optional[str] = None
    current_firm: Optional[str] = None
    location: Optional[str] = None
    sectors: list[str] = Field(default_factory=list)
    functions: list[str] = Field(default_factory=list)
    asset_classes: list[str] = Field(default_factory=list)
    geographies: list[str] = Field(default_factory=list)
    seniority: Optional[str] = None

    @field_validator("sectors", "functions", "asset_classes", "geographies", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return v or []

    def parts(self) -> list[str]:
        """Non-empty fields in document order."""
        parts = [
            self.name,
            self.current_title,
            self.current_firm,
            self.location,
            *self.sectors,
            *self.functions,
            *self.asset_classes,
            *self.geographies,
            self.seniority,
        ]
        return [p for p in parts if p]


class MandateProfile(BaseModel):
    """Structured requirement (mandate) fields used for semantic fit."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    location: Optional[str] = None
    primary_sector: Optional[str] = None
    sectors: list[str] = Field(default_factory=list)
    functions: list[str] = Field(default_factory=list)
    asset_classes: list[str] = Field(default_factory=list)
    regions: list[str] = Field(default_factory=list)
    seniority_min: Optional[str] = None
    seniority_max: Optional[str] = None

    @field_validator("sectors", "functions", "asset_classes", "regions", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return v or []

    def parts(self) -> list[str]:
        """Non-empty fields in document order."""
        parts = [
            self.name,
            self.location,
            self.primary_sector,
            *self.sectors,
            *self.functions,
            *self.asset_classes,
            *self.regions,
            self.seniority_min,
            self.seniority_max,
        ]
        return [p for p in parts if p]


@dataclass
class SemanticFitResult:
    """
    Candidate/mandate semantic compatibility signal.

    semantic_score is one of 0.25, 0.55, 0.75, 1.0, or 0 when embeddings
    are disabled or the computation failed before scoring.
    """

    similarity: float = 0.0
    semantic_score: float = 0.0
    mismatches: list[str] = field(default_factory=list)
    candidate_keywords: list[str] = field(default_factory=list)
    mandate_keywords: list[str] = field(default_factory=list)
    timing_ms: float = 0.0
    model_id: str = DEFAULT_MODEL_NAME
    disabled: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)
