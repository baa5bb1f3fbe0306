"""
Embedding pipeline: the entry point other services call.

Ties the pieces together:
- EmbeddingEngine for text -> vector
- VectorStore for persistence, k-NN, hybrid and duplicate search
- chunker for section-aware document ingestion
- SemanticFitScorer for candidate/mandate fit
- EmbeddingWorkerPool for fire-and-forget writes

Example:
    pipeline = build_pipeline(Settings.from_env())

    pipeline.generate_and_persist("candidates", 42, "Credit analyst, London")
    matches = pipeline.search_by_text("candidates", "private credit analyst", k=5)

    result = pipeline.process_document_chunks(7, cv_text, attributed_entity_id=42)
    print(f"Stored {result.chunks_created}/{result.total_chunks} chunks")
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Sequence

import numpy as np

from ..chunker import OVERLAP_TOKENS, TARGET_TOKENS_PER_CHUNK, chunk_document_by_sections
from ..config import Settings
from ..database import DEFAULT_DUPLICATE_THRESHOLD, VectorStore
from ..errors import InvalidInputError, ModelUnavailableError
from ..tables import EmbeddableTable, TableRef, TableSchema, resolve_table
from .engine import EmbeddingEngine
from .models import (
    BackfillStats,
    BatchError,
    BatchResult,
    ChunkingResult,
    ChunkRecord,
    EmbeddingMetadata,
    EmbeddingRow,
    SemanticFitResult,
)
from .semantic_fit import ProfileInput, SemanticFitScorer
from .worker import EmbeddingJob, EmbeddingWorkerPool

logger = logging.getLogger(__name__)

TextComposer = Callable[[Mapping[str, Any]], str]


# =============================================================================
# Backfill Text Composers
# =============================================================================


def _compose_email(row: Mapping[str, Any]) -> str:
    parts = []
    if row.get("subject"):
        parts.append(f"Subject: {row['subject']}")
    if row.get("sender"):
        parts.append(f"From: {row['sender']}")
    if row.get("body"):
        parts.append(row["body"][:500])
    return "\n".join(parts)


def _compose_contact(row: Mapping[str, Any]) -> str:
    parts = []
    if row.get("display_name"):
        parts.append(row["display_name"])
    if row.get("company_name"):
        parts.append(f"Company: {row['company_name']}")
    if row.get("job_title"):
        parts.append(f"Title: {row['job_title']}")
    if row.get("email_address"):
        parts.append(f"Email: {row['email_address']}")
    if row.get("department"):
        parts.append(f"Department: {row['department']}")
    return " | ".join(parts)


def _compose_calendar_event(row: Mapping[str, Any]) -> str:
    parts = []
    if row.get("title"):
        parts.append(row["title"])
    if row.get("description"):
        parts.append(row["description"][:300])
    if row.get("location"):
        parts.append(f"Location: {row['location']}")
    if row.get("organizer"):
        parts.append(f"Organizer: {row['organizer']}")
    return " - ".join(parts)


def _compose_candidate(row: Mapping[str, Any]) -> str:
    parts = [row.get("name"), row.get("current_title")]
    if row.get("current_firm"):
        parts.append(f"at {row['current_firm']}")
    parts += [row.get("location"), row.get("profile_summary")]
    return " ".join(filter(None, parts))


def _compose_firm(row: Mapping[str, Any]) -> str:
    notes = (row.get("notes_text") or "")[:200]
    parts = [row.get("name"), row.get("short_name"), row.get("website"), notes]
    return " ".join(filter(None, parts))


def compose_text_columns(schema: TableSchema, row: Mapping[str, Any]) -> str:
    """Fallback composer: the table's text columns joined with spaces."""
    return " ".join(str(row[col]) for col in schema.text_columns if row.get(col))


# Per-table text composer and source tag used by backfill_table()
TABLE_TEXT_COMPOSERS: dict[EmbeddableTable, TextComposer] = {
    EmbeddableTable.EMAILS: _compose_email,
    EmbeddableTable.CONTACTS: _compose_contact,
    EmbeddableTable.CALENDAR_EVENTS: _compose_calendar_event,
    EmbeddableTable.CANDIDATES: _compose_candidate,
    EmbeddableTable.FIRMS: _compose_firm,
}

TABLE_SOURCE_TAGS: dict[EmbeddableTable, str] = {
    EmbeddableTable.EMAILS: "email_content",
    EmbeddableTable.CONTACTS: "contact_profile",
    EmbeddableTable.CALENDAR_EVENTS: "event_details",
    EmbeddableTable.CANDIDATES: "parsed",
    EmbeddableTable.MANDATES: "mandate",
    EmbeddableTable.FIRMS: "firm_profile",
    EmbeddableTable.DOCUMENT_CHUNKS: "chunk",
}


class EmbeddingPipeline:
    """
    Facade over the engine, store, chunker, scorer and worker pool.

    Engine and store are injected, so tests can pass a store on a temp
    database and an engine with a stub encoder.
    """

    def __init__(
        self,
        store: VectorStore,
        engine: EmbeddingEngine,
        worker: Optional[EmbeddingWorkerPool] = None,
        model_id: Optional[str] = None,
    ):
        """
        Args:
            store: Vector store
            engine: Embedding engine
            worker: Pool for schedule_embedding(); None disables background writes
            model_id: Model id recorded with stored vectors (defaults to the engine's)
        """
        self.store = store
        self.engine = engine
        self.worker = worker
        self.model_id = model_id or engine.model_name
        self.scorer = SemanticFitScorer(engine)

    def _metadata(self, source: str) -> EmbeddingMetadata:
        return EmbeddingMetadata(model_id=self.model_id, source_tag=source, normalized=True)

    # =========================================================================
    # Generation & Persistence
    # =========================================================================

    def generate_and_persist(
        self,
        table: TableRef,
        row_id: Any,
        text: str,
        source: str = "parsed",
        skip_persist: bool = False,
    ) -> np.ndarray:
        """
        Embed text and store the vector on a row.

        Args:
            table: Allow-listed table
            row_id: Row ID
            text: Text to embed
            source: Source tag recorded with the vector
            skip_persist: Only embed, don't write

        Returns:
            The embedding

        Raises:
            InvalidInputError: Missing table, id or text
            ModelUnavailableError: Embeddings disabled or model failure
            StorageError: The write failed
        """
        schema = resolve_table(table)
        if row_id is None or row_id == "":
            raise InvalidInputError("id is required")
        if not text or not str(text).strip():
            raise InvalidInputError("text is required")

        embedding = self.engine.embed(text)

        if not skip_persist:
            self.store.upsert_embedding(schema.table, row_id, embedding, self._metadata(source))
            logger.debug(f"Stored embedding for {schema.name}.id={row_id}")

        return embedding

    def batch_generate_and_persist(
        self,
        table: TableRef,
        records: Sequence[Mapping[str, Any]],
        batch_size: int = 50,
    ) -> BatchResult:
        """
        Embed and store many records.

        Each record is a dict with 'id', 'text' and optional 'source'.
        Records whose embedding fails are counted in failed and in
        embedding_errors and are not written; the rest go through
        VectorStore.batch_upsert_embeddings().

        Returns:
            BatchResult covering every record

        Raises:
            InvalidInputError: Unknown table or empty records
        """
        schema = resolve_table(table)
        if not records:
            raise InvalidInputError("records must be a non-empty sequence")

        rows: list[EmbeddingRow] = []
        embedding_failures: list[BatchError] = []

        for record in records:
            row_id = record.get("id")
            try:
                text = record.get("text")
                if not text or not str(text).strip():
                    raise InvalidInputError("text is required")
                embedding = self.engine.embed(text)
            except (InvalidInputError, ModelUnavailableError) as e:
                logger.warning(f"Embedding failed for {schema.name}.id={row_id}: {e}")
                embedding_failures.append(BatchError(id=row_id, error=str(e)))
                continue
            rows.append(
                EmbeddingRow(
                    id=row_id,
                    embedding=embedding,
                    metadata=self._metadata(record.get("source") or "parsed"),
                )
            )

        result = (
            self.store.batch_upsert_embeddings(schema.table, rows, batch_size=batch_size)
            if rows
            else BatchResult()
        )
        result.failed += len(embedding_failures)
        result.embedding_errors = len(embedding_failures)
        result.errors = embedding_failures + result.errors
        return result

    def delete_embedding(self, table: TableRef, row_id: Any) -> bool:
        """Clear a row's vector and metadata."""
        return self.store.delete_embedding(table, row_id)

    # =========================================================================
    # Search
    # =========================================================================

    def _embed_query(self, text: str) -> np.ndarray:
        if not text or not str(text).strip():
            raise InvalidInputError("query text is required")
        return self.engine.embed(text)

    def search_by_text(
        self,
        table: TableRef,
        text: str,
        k: int = 10,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> list[dict]:
        """k-NN search with an embedded text query."""
        resolve_table(table)
        return self.store.knn_search(table, self._embed_query(text), k=k, filters=filters)

    def hybrid_search_by_text(
        self,
        table: TableRef,
        text: str,
        k: int = 20,
        text_weight: float = 0.4,
        vector_weight: float = 0.6,
        text_column: Optional[str] = None,
    ) -> list[dict]:
        """Hybrid BM25 + vector search using the same text for both signals."""
        resolve_table(table)
        return self.store.hybrid_search(
            table,
            text,
            self._embed_query(text),
            k=k,
            text_weight=text_weight,
            vector_weight=vector_weight,
            text_column=text_column,
        )

    def search_chunks(
        self,
        query_text: str,
        parent_id: Optional[Any] = None,
        limit: int = 5,
    ) -> list[dict]:
        """Find the chunks closest to a text query, optionally within one document."""
        return self.store.find_similar_chunks(
            self._embed_query(query_text), parent_id=parent_id, limit=limit
        )

    def detect_duplicates(
        self,
        row_id: Any,
        threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
        table: TableRef = EmbeddableTable.DOCUMENTS,
    ) -> list[dict]:
        """
        Find likely duplicates of an already-embedded row.

        Returns:
            Up to 10 rows with cosine distance below threshold, closest first
        """
        schema = resolve_table(table)
        duplicates = self.store.find_duplicates(schema.table, row_id, distance_threshold=threshold)
        if duplicates:
            logger.info(f"Found {len(duplicates)} possible duplicates of {schema.name}.id={row_id}")
        return duplicates

    def find_similar(self, table: TableRef, row_id: Any, limit: int = 10) -> list[dict]:
        return self.store.find_similar(table, row_id, limit=limit)

    # =========================================================================
    # Semantic Fit
    # =========================================================================

    def compute_semantic_fit(
        self,
        candidate: ProfileInput,
        mandate: ProfileInput,
    ) -> SemanticFitResult:
        """Semantic fit between a candidate and a mandate. Never raises."""
        return self.scorer.compute(candidate, mandate)

    # =========================================================================
    # Document Chunking
    # =========================================================================

    def process_document_chunks(
        self,
        parent_id: Any,
        text: Optional[str],
        attributed_entity_id: Optional[Any] = None,
        batch_size: int = 10,
        dry_run: bool = False,
        target_tokens: int = TARGET_TOKENS_PER_CHUNK,
        overlap_tokens: int = OVERLAP_TOKENS,
    ) -> ChunkingResult:
        """
        Chunk a document, embed each chunk and store the chunks.

        A chunk whose embedding fails is still stored, without a vector,
        and its failure is recorded so a later backfill can fill it in.

        Args:
            parent_id: Parent document ID
            text: Document text
            attributed_entity_id: Entity the document is about (e.g., candidate)
            batch_size: Chunks per insert transaction
            dry_run: Chunk only; don't embed or store
            target_tokens: Token budget per chunk
            overlap_tokens: Tokens repeated between consecutive chunks

        Returns:
            ChunkingResult
        """
        if parent_id is None or parent_id == "":
            raise InvalidInputError("parent_id is required")

        result = ChunkingResult(dry_run=dry_run)
        if not text or not text.strip():
            result.errors.append(BatchError(id=parent_id, error="No text to chunk"))
            return result

        chunks = chunk_document_by_sections(text, target_tokens, overlap_tokens)
        result.total_chunks = len(chunks)
        logger.info(f"Document {parent_id}: {len(chunks)} chunks")

        if dry_run:
            result.success = True
            return result

        records: list[ChunkRecord] = []
        for chunk in chunks:
            embedding = None
            try:
                embedding = self.engine.embed(chunk.text)
            except ModelUnavailableError as e:
                logger.warning(f"Chunk {chunk.chunk_index} of document {parent_id} not embedded: {e}")
                result.errors.append(BatchError(id=chunk.chunk_index, error=str(e)))

            records.append(
                ChunkRecord(
                    parent_document_id=parent_id,
                    chunk_index=chunk.chunk_index,
                    text=chunk.text,
                    section_label=chunk.section,
                    token_count_estimate=chunk.token_count,
                    attributed_entity_id=attributed_entity_id,
                    source=chunk.source,
                    embedding=embedding,
                    metadata=self._metadata("chunk"),
                )
            )

        if records:
            inserted = self.store.insert_chunks(records, batch_size=batch_size)
            result.chunks_created = inserted.succeeded
            result.errors.extend(inserted.errors)

        result.success = not result.errors
        return result

    def rechunk_document(
        self,
        parent_id: Any,
        text: Optional[str],
        attributed_entity_id: Optional[Any] = None,
        batch_size: int = 10,
        dry_run: bool = False,
        target_tokens: int = TARGET_TOKENS_PER_CHUNK,
        overlap_tokens: int = OVERLAP_TOKENS,
    ) -> ChunkingResult:
        """Delete a document's chunks and chunk it again."""
        if not dry_run:
            deleted = self.store.delete_chunks_by_parent(parent_id)
            logger.info(f"Deleted {deleted} existing chunks for document {parent_id}")
        return self.process_document_chunks(
            parent_id,
            text,
            attributed_entity_id=attributed_entity_id,
            batch_size=batch_size,
            dry_run=dry_run,
            target_tokens=target_tokens,
            overlap_tokens=overlap_tokens,
        )

    # =========================================================================
    # Statistics & Backfill
    # =========================================================================

    def get_stats(self, table: TableRef) -> dict:
        """Embedding coverage for a table."""
        return self.store.get_embedding_stats(table)

    def get_chunk_stats(self, parent_id: Optional[Any] = None) -> dict:
        return self.store.get_chunk_stats(parent_id)

    def backfill_table(
        self,
        table: TableRef,
        compose_text: Optional[TextComposer] = None,
        batch_size: int = 50,
        limit: int = 10_000,
        progress_callback: Optional[Callable[[BackfillStats], None]] = None,
    ) -> BackfillStats:
        """
        Embed rows that have no vector yet.

        Args:
            table: Allow-listed table
            compose_text: Row -> text; defaults to the table's composer
            batch_size: Rows per batch
            limit: Max rows to consider
            progress_callback: Called with stats after each batch

        Returns:
            BackfillStats with processing metrics
        """
        schema = resolve_table(table)
        compose = compose_text or TABLE_TEXT_COMPOSERS.get(schema.table)
        source = TABLE_SOURCE_TAGS.get(schema.table, "parsed")

        stats = BackfillStats(table=schema.name, started_at=datetime.now())
        start_time = time.time()

        rows = self.store.get_rows_without_embeddings(schema.table, limit=limit)
        stats.rows_total = len(rows)
        logger.info(f"Starting backfill for {stats.rows_total} {schema.name} rows")

        for i in range(0, len(rows), batch_size):
            records = []
            for row in rows[i : i + batch_size]:
                text = compose(row) if compose else compose_text_columns(schema, row)
                if not text or not text.strip():
                    logger.debug(f"Skipping {schema.name}.id={row['id']} - no text to embed")
                    stats.rows_skipped += 1
                    continue
                records.append({"id": row["id"], "text": text, "source": source})

            if records:
                result = self.batch_generate_and_persist(schema.table, records, batch_size=batch_size)
                stats.rows_processed += result.succeeded
                stats.rows_failed += result.failed

            stats.elapsed_seconds = time.time() - start_time
            if progress_callback:
                progress_callback(stats)

        stats.elapsed_seconds = time.time() - start_time
        stats.completed_at = datetime.now()

        logger.info(
            f"Backfill of {schema.name} complete: {stats.rows_processed} processed, "
            f"{stats.rows_failed} failed, {stats.rows_skipped} skipped "
            f"in {stats.elapsed_seconds:.1f}s ({stats.rows_per_second:.1f} rows/sec)"
        )
        return stats

    # =========================================================================
    # Background Writes
    # =========================================================================

    def handle_job(self, job: EmbeddingJob) -> None:
        """Worker handler: embed and persist one queued job."""
        if self.engine.disabled:
            logger.debug(f"Embeddings disabled, skipping {job.table}.id={job.id}")
            return
        self.generate_and_persist(job.table, job.id, job.text, source=job.source)

    def schedule_embedding(
        self,
        table: TableRef,
        row_id: Any,
        text: str,
        source: str = "parsed",
    ) -> bool:
        """
        Queue an embedding write on the worker pool.

        Never raises: bad input is logged and refused.

        Returns:
            True if the job was accepted
        """
        try:
            schema = resolve_table(table)
            if row_id is None or row_id == "":
                raise InvalidInputError("id is required")
        except InvalidInputError as e:
            logger.warning(f"Not scheduling embedding for {table!r} id={row_id!r}: {e}")
            return False
        if self.worker is None:
            logger.warning(f"No worker pool configured, not scheduling {schema.name}.id={row_id}")
            return False
        return self.worker.submit(EmbeddingJob(schema.name, row_id, text, source))

    def close(self, drain: bool = True) -> None:
        """Stop the worker pool, finishing queued jobs by default."""
        if self.worker is not None:
            self.worker.shutdown(drain=drain)

    def __enter__(self) -> "EmbeddingPipeline":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def build_pipeline(
    settings: Optional[Settings] = None,
    start_worker: bool = True,
    **engine_kwargs,
) -> EmbeddingPipeline:
    """
    Wire store, engine and worker pool from settings.

    Args:
        settings: Settings (defaults to Settings.from_env())
        start_worker: Start the background worker threads
        **engine_kwargs: Extra EmbeddingEngine arguments (e.g., model_factory)

    Returns:
        Ready-to-use EmbeddingPipeline
    """
    settings = settings or Settings.from_env()

    store = VectorStore(settings.db_path, dimension=settings.dimension)
    engine = EmbeddingEngine.from_settings(settings, **engine_kwargs)
    pipeline = EmbeddingPipeline(store, engine)

    pipeline.worker = EmbeddingWorkerPool(
        pipeline.handle_job,
        num_workers=settings.workers,
        max_queue_size=settings.max_queue_size,
        max_attempts=settings.max_attempts,
    )
    if start_worker:
        pipeline.worker.start()

    logger.info(
        f"Embedding pipeline ready (db={settings.db_path}, model={settings.model_name}, "
        f"disabled={settings.disable_embeddings})"
    )
    return pipeline
