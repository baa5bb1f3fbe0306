"""
SQLite vector store for embeddable records.

Provides persistent storage with:
- Embedding columns on every allow-listed table (vector + model/source/
  normalized/computed_at metadata, written together)
- k-NN search ordered by cosine distance, computed by a SQL function
  registered on each connection
- FTS5 full-text indexes for hybrid lexical + vector ranking
- Batched upserts, one transaction per batch, with per-row error reporting
- Document chunk storage for chunk-level retrieval
- Coverage statistics for monitoring and backfill tooling
"""

import logging
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional, Sequence, Union

import numpy as np

from .config import DEFAULT_DIMENSION
from .embeddings.models import (
    BatchError,
    BatchResult,
    ChunkRecord,
    EmbeddingMetadata,
    EmbeddingRow,
    Vector,
)
from .errors import InvalidInputError, NotFoundError, StorageError, VectorMatchError
from .tables import (
    EMBEDDING_COLUMNS,
    TABLE_SCHEMAS,
    EmbeddableTable,
    TableRef,
    TableSchema,
    resolve_table,
)

logger = logging.getLogger(__name__)

CHUNKS = TABLE_SCHEMAS[EmbeddableTable.DOCUMENT_CHUNKS]

DEFAULT_DUPLICATE_THRESHOLD = 0.15
MAX_DUPLICATES = 10

_TERM_RE = re.compile(r"\w+")


def _cosine_distance(a: Optional[bytes], b: Optional[bytes]) -> float:
    """SQL function: 1 - dot(a, b) for float32 blobs of normalized vectors."""
    if a is None or b is None:
        return 1.0
    va = np.frombuffer(a, dtype=np.float32)
    vb = np.frombuffer(b, dtype=np.float32)
    if va.shape != vb.shape:
        return 1.0
    return max(0.0, float(1.0 - np.dot(va, vb)))


def _row_to_dict(row: sqlite3.Row) -> dict:
    """Row as a dict, without the raw embedding blob."""
    data = dict(row)
    data.pop("embedding", None)
    return data


def _require_id(row_id: Any) -> None:
    if row_id is None or row_id == "":
        raise InvalidInputError("id is required")


class VectorStore:
    """
    SQLite storage for embeddings shared by many tables.

    Every operation opens its own connection and closes it on every exit
    path; multi-statement operations run in one transaction that is rolled
    back on error.

    Example:
        store = VectorStore("data/vectormatch.db")
        store.upsert_embedding("candidates", 42, vector)
        nearest = store.knn_search("candidates", query_vector, k=5, filters={"status": "active"})
    """

    def __init__(
        self,
        db_path: Union[str, Path] = "data/vectormatch.db",
        dimension: int = DEFAULT_DIMENSION,
        timeout: float = 30.0,
    ):
        """
        Initialize the store and ensure the schema exists.

        Args:
            db_path: Path to SQLite database file
            dimension: Expected embedding dimensionality
            timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.dimension = dimension
        self.timeout = timeout
        self._ensure_schema()

    # =========================================================================
    # Connection & Schema
    # =========================================================================

    def _open(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.create_function("cosine_distance", 2, _cosine_distance, deterministic=True)
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        conn = self._open()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        """Create tables, add missing embedding columns, set up FTS5."""
        with self._connection() as conn:
            existing = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
            for schema in TABLE_SCHEMAS.values():
                if schema.name in existing:
                    self._migrate_embedding_columns(conn, schema)
                else:
                    conn.executescript(schema.create_table_sql())
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{schema.name}_embedding_model "
                    f"ON {schema.name}(embedding_model)"
                )
                if schema.fts_table not in existing:
                    self._create_fts(conn, schema)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_chunks_parent ON document_chunks(parent_document_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_chunks_entity ON document_chunks(attributed_entity_id)"
            )

        logger.debug(f"Database schema ensured at {self.db_path}")

    def _migrate_embedding_columns(self, conn: sqlite3.Connection, schema: TableSchema) -> None:
        """
        Add embedding columns to a pre-existing table if they don't exist.

        This handles the ALTER TABLE gracefully for existing databases.
        """
        columns = {row[1] for row in conn.execute(f"PRAGMA table_info({schema.name})")}
        # SQLite can't ADD COLUMN with a CURRENT_TIMESTAMP default
        wanted = {**EMBEDDING_COLUMNS, "updated_at": "TIMESTAMP"}
        for column, sql_type in wanted.items():
            if column not in columns:
                logger.info(f"Adding {column} column to {schema.name} table...")
                conn.execute(f"ALTER TABLE {schema.name} ADD COLUMN {column} {sql_type}")

    def _create_fts(self, conn: sqlite3.Connection, schema: TableSchema) -> None:
        logger.info(f"Creating FTS5 index for {schema.name}...")
        conn.executescript(schema.create_fts_sql())

        row_count = conn.execute(f"SELECT COUNT(*) FROM {schema.name}").fetchone()[0]
        if row_count > 0:
            logger.info(f"Rebuilding FTS5 index for {row_count} {schema.name} rows...")
            conn.execute(f"INSERT INTO {schema.fts_table}({schema.fts_table}) VALUES('rebuild')")

    def rebuild_fts_index(self, table: TableRef) -> None:
        """
        Rebuild a table's FTS index from its rows.

        Use this to recover from corruption or after bulk data changes.
        """
        schema = resolve_table(table)
        with self._connection() as conn:
            conn.execute(f"INSERT INTO {schema.fts_table}({schema.fts_table}) VALUES('rebuild')")
        logger.info(f"FTS5 index rebuilt for {schema.name}")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _to_blob(self, vector: Optional[Vector]) -> bytes:
        """Validate a vector and serialize it as float32 bytes."""
        if vector is None:
            raise InvalidInputError("embedding cannot be empty")
        arr = np.asarray(vector, dtype=np.float32).ravel()
        if arr.size == 0:
            raise InvalidInputError("embedding cannot be empty")
        if arr.size != self.dimension:
            raise InvalidInputError(
                f"embedding has {arr.size} dimensions, expected {self.dimension}"
            )
        return arr.tobytes()

    @staticmethod
    def _check_filter_column(schema: TableSchema, column: str) -> None:
        if column not in schema.filterable_columns:
            raise InvalidInputError(f"Cannot filter {schema.name} on column {column!r}")

    @staticmethod
    def _coerce_row(row: Union[EmbeddingRow, Mapping[str, Any]]) -> EmbeddingRow:
        if isinstance(row, EmbeddingRow):
            return row
        metadata = row.get("metadata") or EmbeddingMetadata()
        if isinstance(metadata, Mapping):
            metadata = EmbeddingMetadata(**metadata)
        return EmbeddingRow(id=row.get("id"), embedding=row.get("embedding"), metadata=metadata)

    def _update_params(self, blob: Optional[bytes], metadata: Optional[EmbeddingMetadata], row_id: Any) -> tuple:
        if blob is None:
            return (None, None, None, None, None, row_id)
        metadata = metadata or EmbeddingMetadata()
        return (
            blob,
            metadata.model_id,
            metadata.source_tag,
            int(bool(metadata.normalized)),
            metadata.resolved_computed_at(),
            row_id,
        )

    @staticmethod
    def _update_sql(schema: TableSchema) -> str:
        return f"""
            UPDATE {schema.name}
            SET embedding = ?,
                embedding_model = ?,
                embedding_source = ?,
                embedding_normalized = ?,
                embedding_computed_at = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """

    # =========================================================================
    # Embedding CRUD
    # =========================================================================

    def upsert_embedding(
        self,
        table: TableRef,
        row_id: Any,
        vector: Vector,
        metadata: Optional[EmbeddingMetadata] = None,
    ) -> bool:
        """
        Write a row's vector and metadata in one atomic update.

        Args:
            table: Allow-listed table
            row_id: Row ID
            vector: Embedding vector of the store's dimension
            metadata: Model/source/normalized/computed_at (defaults applied)

        Returns:
            True if the row was updated, False if no such row (logged)

        Raises:
            InvalidInputError: Unknown table, missing id, bad vector
            StorageError: Transaction failed (rolled back)
        """
        schema = resolve_table(table)
        _require_id(row_id)
        blob = self._to_blob(vector)

        with self._connection() as conn:
            cursor = conn.execute(
                self._update_sql(schema), self._update_params(blob, metadata, row_id)
            )
            updated = cursor.rowcount > 0

        if not updated:
            logger.warning(f"Row not found: {schema.name}.id={row_id}")
        return updated

    def delete_embedding(self, table: TableRef, row_id: Any) -> bool:
        """
        Clear a row's vector and its metadata.

        Returns:
            True if the row exists
        """
        schema = resolve_table(table)
        _require_id(row_id)

        with self._connection() as conn:
            cursor = conn.execute(self._update_sql(schema), self._update_params(None, None, row_id))
            cleared = cursor.rowcount > 0

        if not cleared:
            logger.warning(f"Row not found: {schema.name}.id={row_id}")
        return cleared

    def get_embedding(self, table: TableRef, row_id: Any) -> Optional[np.ndarray]:
        """
        Retrieve a row's embedding as a numpy array.

        Returns:
            Embedding array or None if the row or its vector is missing
        """
        schema = resolve_table(table)
        _require_id(row_id)

        with self._connection() as conn:
            row = conn.execute(
                f"SELECT embedding FROM {schema.name} WHERE id = ?", (row_id,)
            ).fetchone()

        if row is None or row[0] is None:
            return None
        return np.frombuffer(row[0], dtype=np.float32)

    def batch_upsert_embeddings(
        self,
        table: TableRef,
        rows: Sequence[Union[EmbeddingRow, Mapping[str, Any]]],
        batch_size: int = 100,
    ) -> BatchResult:
        """
        Upsert many embeddings, one transaction per batch.

        A row that fails (unknown id, malformed vector) is recorded with its
        id and the rest of its batch still commits. If a batch's commit
        fails, the batch is rolled back and all of its rows count as failed.

        Args:
            table: Allow-listed table
            rows: EmbeddingRow objects or dicts with id/embedding/metadata
            batch_size: Rows per transaction

        Returns:
            BatchResult with succeeded/failed counts and errors

        Raises:
            InvalidInputError: Unknown table, empty rows, bad batch_size
            StorageError: The database could not be opened
        """
        schema = resolve_table(table)
        if not rows:
            raise InvalidInputError("rows must be a non-empty sequence")
        if batch_size <= 0:
            raise InvalidInputError("batch_size must be positive")

        sql = self._update_sql(schema)
        result = BatchResult()

        for offset in range(0, len(rows), batch_size):
            batch = rows[offset : offset + batch_size]
            batch_succeeded = 0
            batch_errors: list[BatchError] = []

            conn = self._open()
            try:
                for raw in batch:
                    row_id = raw.id if isinstance(raw, EmbeddingRow) else raw.get("id")
                    try:
                        _require_id(row_id)
                        row = self._coerce_row(raw)
                        blob = self._to_blob(row.embedding)
                        cursor = conn.execute(sql, self._update_params(blob, row.metadata, row.id))
                        if cursor.rowcount == 0:
                            raise NotFoundError(f"Row not found: {schema.name}.id={row_id}")
                        batch_succeeded += 1
                    except (VectorMatchError, sqlite3.Error, TypeError, ValueError) as e:
                        batch_errors.append(BatchError(id=row_id, error=str(e)))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"Batch at offset {offset} for {schema.name} rolled back: {e}")
                result.failed += len(batch)
                result.errors.append(BatchError(batch=offset, error=str(e)))
                continue
            finally:
                conn.close()

            result.succeeded += batch_succeeded
            result.failed += len(batch_errors)
            result.errors.extend(batch_errors)

        logger.info(
            f"Batch upsert on {schema.name}: {result.succeeded} succeeded, {result.failed} failed"
        )
        return result

    # =========================================================================
    # Search
    # =========================================================================

    def knn_search(
        self,
        table: TableRef,
        query_vector: Vector,
        k: int = 10,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> list[dict]:
        """
        Find the k rows closest to a query vector.

        Args:
            table: Allow-listed table
            query_vector: Query embedding
            k: Number of results
            filters: Equality predicates on declared columns (None -> IS NULL)

        Returns:
            Row dicts with a 'distance' key, ascending by distance
        """
        schema = resolve_table(table)
        blob = self._to_blob(query_vector)
        if k <= 0:
            return []

        where = ["embedding IS NOT NULL"]
        params: list[Any] = [blob]
        for column, value in (filters or {}).items():
            self._check_filter_column(schema, column)
            if value is None:
                where.append(f"{column} IS NULL")
            else:
                where.append(f"{column} = ?")
                params.append(value)
        params.append(k)

        sql = f"""
            SELECT *, cosine_distance(embedding, ?) AS distance
            FROM {schema.name}
            WHERE {' AND '.join(where)}
            ORDER BY distance ASC, id ASC
            LIMIT ?
        """
        with self._connection() as conn:
            rows = conn.execute(sql, params).fetchall()

        return [_row_to_dict(row) for row in rows]

    @staticmethod
    def _build_match_query(text_query: str, text_column: Optional[str]) -> Optional[str]:
        """Turn free text into an FTS5 query requiring every term."""
        terms = _TERM_RE.findall(text_query or "")
        if not terms:
            return None
        prefix = f"{text_column} : " if text_column else ""
        return " AND ".join(f'{prefix}"{term}"' for term in terms)

    @staticmethod
    def _normalize_scores(scores: dict[Any, float]) -> dict[Any, float]:
        """
        Normalize scores to [0, 1] range using min-max normalization.

        All-equal scores map to 1.0.
        """
        if not scores:
            return {}

        values = list(scores.values())
        min_val = min(values)
        max_val = max(values)

        if max_val == min_val:
            return {key: 1.0 for key in scores}

        return {key: (score - min_val) / (max_val - min_val) for key, score in scores.items()}

    def hybrid_search(
        self,
        table: TableRef,
        text_query: str,
        query_vector: Vector,
        k: int = 20,
        text_weight: float = 0.4,
        vector_weight: float = 0.6,
        text_column: Optional[str] = None,
    ) -> list[dict]:
        """
        Rank lexical matches by a blend of BM25 relevance and vector distance.

        Only rows whose text matches every query term are considered. For
        each, text_rank is the min-max normalized BM25 relevance (1 = best)
        and the combined score is:

            text_weight * (1 - text_rank) + vector_weight * vec_distance / 2

        Lower combined scores rank first.

        Args:
            table: Allow-listed table
            text_query: Free-text query
            query_vector: Query embedding
            k: Number of results
            text_weight: Weight of the lexical signal
            vector_weight: Weight of the vector signal
            text_column: Restrict lexical matching to one text column

        Returns:
            Row dicts with text_rank, vec_distance and combined_score
        """
        schema = resolve_table(table)
        if not text_query:
            raise InvalidInputError("text_query is required")
        blob = self._to_blob(query_vector)
        if text_weight < 0 or vector_weight < 0:
            raise InvalidInputError("weights must be non-negative")
        if text_column is not None and text_column not in schema.text_columns:
            raise InvalidInputError(f"{text_column!r} is not a text column of {schema.name}")

        match = self._build_match_query(text_query, text_column)
        if match is None or k <= 0:
            return []

        fts = schema.fts_table
        sql = f"""
            SELECT t.*,
                   bm25({fts}) AS bm25_score,
                   cosine_distance(t.embedding, ?) AS vec_distance
            FROM {fts}
            INNER JOIN {schema.name} t ON t.id = {fts}.rowid
            WHERE {fts} MATCH ?
              AND t.embedding IS NOT NULL
        """
        with self._connection() as conn:
            rows = [_row_to_dict(row) for row in conn.execute(sql, (blob, match)).fetchall()]

        if not rows:
            return []

        # BM25 is negative (lower = better); negate so higher = better
        text_ranks = self._normalize_scores({row["id"]: -row["bm25_score"] for row in rows})
        for row in rows:
            row["text_rank"] = text_ranks[row["id"]]
            row["combined_score"] = (
                text_weight * (1 - row["text_rank"])
                + vector_weight * row["vec_distance"] / 2.0
            )

        rows.sort(key=lambda r: (r["combined_score"], r["id"]))
        return rows[:k]

    def find_similar(self, table: TableRef, row_id: Any, limit: int = 10) -> list[dict]:
        """
        Find rows nearest to an existing row's embedding.

        Returns:
            Other rows with 'distance', ascending; empty if the row has no vector
        """
        return self._neighbours(table, row_id, limit=limit)

    def find_duplicates(
        self,
        table: TableRef,
        row_id: Any,
        distance_threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
    ) -> list[dict]:
        """
        Find likely duplicates of a row.

        Args:
            table: Allow-listed table
            row_id: Row to check
            distance_threshold: Cosine distance below which rows are duplicates

        Returns:
            Up to 10 other rows with distance < threshold, ascending
        """
        return self._neighbours(
            table, row_id, limit=MAX_DUPLICATES, max_distance=distance_threshold
        )

    def _neighbours(
        self,
        table: TableRef,
        row_id: Any,
        limit: int,
        max_distance: Optional[float] = None,
    ) -> list[dict]:
        schema = resolve_table(table)
        _require_id(row_id)
        if limit <= 0:
            return []

        where = ["id != ?", "embedding IS NOT NULL"]
        if max_distance is not None:
            where.append("cosine_distance(embedding, ?) < ?")

        sql = f"""
            SELECT *, cosine_distance(embedding, ?) AS distance
            FROM {schema.name}
            WHERE {' AND '.join(where)}
            ORDER BY distance ASC, id ASC
            LIMIT ?
        """

        with self._connection() as conn:
            source = conn.execute(
                f"SELECT embedding FROM {schema.name} WHERE id = ?", (row_id,)
            ).fetchone()
            if source is None or source[0] is None:
                logger.warning(f"No embedding found for {schema.name}.id={row_id}")
                return []

            params: list[Any] = [source[0], row_id]
            if max_distance is not None:
                params += [source[0], max_distance]
            params.append(limit)
            rows = conn.execute(sql, params).fetchall()

        return [_row_to_dict(row) for row in rows]

    def find_similar_chunks(
        self,
        query_vector: Vector,
        parent_id: Optional[Any] = None,
        limit: int = 5,
    ) -> list[dict]:
        """
        Find the chunks closest to a query vector.

        Args:
            query_vector: Query embedding
            parent_id: Restrict to one parent document
            limit: Number of results
        """
        filters = {"parent_document_id": parent_id} if parent_id is not None else None
        return self.knn_search(CHUNKS.table, query_vector, k=limit, filters=filters)

    # =========================================================================
    # Chunk Storage
    # =========================================================================

    _INSERT_CHUNK_SQL = """
        INSERT INTO document_chunks (
            parent_document_id, attributed_entity_id, chunk_index, section_label,
            text, token_count_estimate, source,
            embedding, embedding_model, embedding_source, embedding_normalized,
            embedding_computed_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """

    def _chunk_params(self, chunk: ChunkRecord) -> tuple:
        if chunk.parent_document_id is None:
            raise InvalidInputError("parent_document_id is required")
        if chunk.chunk_index is None or chunk.chunk_index < 0:
            raise InvalidInputError("chunk_index must be a non-negative integer")
        if not chunk.text:
            raise InvalidInputError("text is required")

        if chunk.embedding is not None:
            blob = self._to_blob(chunk.embedding)
            meta = chunk.metadata or EmbeddingMetadata(source_tag="chunk")
            embedding_values = (
                blob,
                meta.model_id,
                meta.source_tag,
                int(bool(meta.normalized)),
                meta.resolved_computed_at(),
            )
        else:
            embedding_values = (None, None, None, None, None)

        return (
            chunk.parent_document_id,
            chunk.attributed_entity_id,
            chunk.chunk_index,
            chunk.section_label,
            chunk.text,
            chunk.token_count_estimate,
            chunk.source,
            *embedding_values,
        )

    def insert_chunk(self, chunk: ChunkRecord) -> int:
        """
        Insert one chunk.

        Returns:
            New chunk id

        Raises:
            InvalidInputError: Missing parent, index or text
            StorageError: Duplicate (parent, chunk_index) or other failure
        """
        params = self._chunk_params(chunk)
        with self._connection() as conn:
            cursor = conn.execute(self._INSERT_CHUNK_SQL, params)
            return cursor.lastrowid

    def insert_chunks(self, chunks: Sequence[ChunkRecord], batch_size: int = 10) -> BatchResult:
        """
        Insert chunks in batches, one transaction per batch.

        Per-chunk failures are recorded with the chunk_index as id.
        """
        if batch_size <= 0:
            raise InvalidInputError("batch_size must be positive")

        result = BatchResult()
        for offset in range(0, len(chunks), batch_size):
            batch = chunks[offset : offset + batch_size]
            batch_succeeded = 0
            batch_errors: list[BatchError] = []

            conn = self._open()
            try:
                for chunk in batch:
                    try:
                        conn.execute(self._INSERT_CHUNK_SQL, self._chunk_params(chunk))
                        batch_succeeded += 1
                    except (VectorMatchError, sqlite3.Error, TypeError, ValueError) as e:
                        batch_errors.append(BatchError(id=chunk.chunk_index, error=str(e)))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"Chunk batch at offset {offset} rolled back: {e}")
                result.failed += len(batch)
                result.errors.append(BatchError(batch=offset, error=str(e)))
                continue
            finally:
                conn.close()

            result.succeeded += batch_succeeded
            result.failed += len(batch_errors)
            result.errors.extend(batch_errors)

        return result

    def get_chunks(self, parent_id: Any) -> list[dict]:
        """All chunks of a parent document, in chunk_index order."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM document_chunks WHERE parent_document_id = ? ORDER BY chunk_index",
                (parent_id,),
            ).fetchall()
        return [_row_to_dict(row) for row in rows]

    def delete_chunks_by_parent(self, parent_id: Any) -> int:
        """Delete all chunks of a parent document. Returns deleted count."""
        _require_id(parent_id)
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM document_chunks WHERE parent_document_id = ?", (parent_id,)
            )
            deleted = cursor.rowcount
        logger.debug(f"Deleted {deleted} chunks for document {parent_id}")
        return deleted

    def delete_chunks_by_attributed_entity(self, entity_id: Any) -> int:
        """Delete all chunks attributed to an entity. Returns deleted count."""
        _require_id(entity_id)
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM document_chunks WHERE attributed_entity_id = ?", (entity_id,)
            )
            deleted = cursor.rowcount
        logger.debug(f"Deleted {deleted} chunks attributed to entity {entity_id}")
        return deleted

    # =========================================================================
    # Statistics & Backfill
    # =========================================================================

    def get_embedding_stats(self, table: TableRef) -> dict:
        """
        Get embedding coverage for a table.

        Returns:
            Dict with total_rows, embedded_rows, model_versions, models,
            coverage_pct
        """
        schema = resolve_table(table)
        with self._connection() as conn:
            row = conn.execute(
                f"""
                SELECT COUNT(*) AS total_rows,
                       COUNT(embedding) AS embedded_rows,
                       COUNT(DISTINCT embedding_model) AS model_versions
                FROM {schema.name}
                """
            ).fetchone()
            models = [
                r[0]
                for r in conn.execute(
                    f"SELECT DISTINCT embedding_model FROM {schema.name} "
                    f"WHERE embedding_model IS NOT NULL ORDER BY embedding_model"
                )
            ]

        total = row["total_rows"]
        embedded = row["embedded_rows"]
        return {
            "table": schema.name,
            "total_rows": total,
            "embedded_rows": embedded,
            "model_versions": row["model_versions"],
            "models": models,
            "coverage_pct": (embedded / total * 100) if total > 0 else 0,
        }

    def get_chunk_stats(self, parent_id: Optional[Any] = None) -> dict:
        """Chunk count and token totals, optionally for one parent document."""
        sql = (
            "SELECT COUNT(*) AS total, COALESCE(SUM(token_count_estimate), 0) AS total_tokens, "
            "AVG(token_count_estimate) AS avg_tokens FROM document_chunks"
        )
        params: tuple = ()
        if parent_id is not None:
            sql += " WHERE parent_document_id = ?"
            params = (parent_id,)

        with self._connection() as conn:
            row = conn.execute(sql, params).fetchone()

        return {
            "total": row["total"],
            "total_tokens": row["total_tokens"],
            "avg_tokens": row["avg_tokens"] or 0.0,
        }

    def get_rows_without_embeddings(self, table: TableRef, limit: int = 1000) -> list[dict]:
        """Rows whose vector is missing, oldest id first."""
        schema = resolve_table(table)
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM {schema.name} WHERE embedding IS NULL ORDER BY id LIMIT ?",
                (limit,),
            ).fetchall()
        return [_row_to_dict(row) for row in rows]
