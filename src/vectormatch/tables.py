"""
Allow-list of tables that carry embedding columns.

Every table the vector store touches is declared here with its lexical text
columns (indexed by FTS5) and the extra columns callers may filter on. SQL
identifiers are only ever taken from these declarations, never from caller
strings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from .errors import InvalidInputError


class EmbeddableTable(str, Enum):
    """Tables that expose the shared embedding columns."""

    DOCUMENTS = "documents"
    DOCUMENT_CHUNKS = "document_chunks"
    CANDIDATES = "candidates"
    MANDATES = "mandates"
    CONTACTS = "contacts"
    TEAMS = "teams"
    EMPLOYMENTS = "employments"
    RECOMMENDATIONS = "recommendations"
    CALENDAR_EVENTS = "calendar_events"
    EMAILS = "emails"
    FIRMS = "firms"


# Embedding column -> SQLite type. Written and cleared together.
EMBEDDING_COLUMNS: dict[str, str] = {
    "embedding": "BLOB",
    "embedding_model": "TEXT",
    "embedding_source": "TEXT",
    "embedding_normalized": "INTEGER",
    "embedding_computed_at": "TIMESTAMP",
}


@dataclass(frozen=True)
class TableSchema:
    """
    Column layout for one embeddable table.

    Attributes:
        table: Table identifier
        text_columns: TEXT columns indexed for lexical (FTS5) search
        extra_columns: Other business columns (name -> SQL type)
        constraints: Extra table constraints for CREATE TABLE
    """

    table: EmbeddableTable
    text_columns: tuple[str, ...]
    extra_columns: dict[str, str] = field(default_factory=dict)
    constraints: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.table.value

    @property
    def fts_table(self) -> str:
        return f"{self.table.value}_fts"

    @property
    def default_text_column(self) -> str:
        return self.text_columns[0]

    @property
    def filterable_columns(self) -> frozenset[str]:
        """Columns allowed in equality filters."""
        return frozenset(("id", *self.text_columns, *self.extra_columns))

    def create_table_sql(self) -> str:
        columns = ["id INTEGER PRIMARY KEY AUTOINCREMENT"]
        columns += [f"{col} TEXT" for col in self.text_columns]
        columns += [f"{col} {sql_type}" for col, sql_type in self.extra_columns.items()]
        columns += [f"{col} {sql_type}" for col, sql_type in EMBEDDING_COLUMNS.items()]
        columns.append("created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP")
        columns.append("updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP")
        columns += list(self.constraints)
        body = ",\n    ".join(columns)
        return f"CREATE TABLE IF NOT EXISTS {self.name} (\n    {body}\n);"

    def create_fts_sql(self) -> str:
        """FTS5 external-content index plus the triggers that keep it in sync."""
        cols = ", ".join(self.text_columns)
        new_cols = ", ".join(f"new.{c}" for c in self.text_columns)
        old_cols = ", ".join(f"old.{c}" for c in self.text_columns)
        fts = self.fts_table
        return f"""
CREATE VIRTUAL TABLE IF NOT EXISTS {fts} USING fts5(
    {cols},
    content='{self.name}',
    content_rowid='id',
    tokenize='porter unicode61'
);

CREATE TRIGGER IF NOT EXISTS {self.name}_ai AFTER INSERT ON {self.name} BEGIN
    INSERT INTO {fts}(rowid, {cols}) VALUES (new.id, {new_cols});
END;

CREATE TRIGGER IF NOT EXISTS {self.name}_ad AFTER DELETE ON {self.name} BEGIN
    INSERT INTO {fts}({fts}, rowid, {cols}) VALUES ('delete', old.id, {old_cols});
END;

CREATE TRIGGER IF NOT EXISTS {self.name}_au AFTER UPDATE OF {cols} ON {self.name} BEGIN
    INSERT INTO {fts}({fts}, rowid, {cols}) VALUES ('delete', old.id, {old_cols});
    INSERT INTO {fts}(rowid, {cols}) VALUES (new.id, {new_cols});
END;
"""


TABLE_SCHEMAS: dict[EmbeddableTable, TableSchema] = {
    schema.table: schema
    for schema in (
        TableSchema(
            EmbeddableTable.DOCUMENTS,
            text_columns=("parsed_text", "title"),
            extra_columns={"file_name": "TEXT", "status": "TEXT", "document_type": "TEXT"},
        ),
        TableSchema(
            EmbeddableTable.DOCUMENT_CHUNKS,
            text_columns=("text",),
            extra_columns={
                "parent_document_id": "INTEGER NOT NULL",
                "attributed_entity_id": "INTEGER",
                "chunk_index": "INTEGER NOT NULL",
                "section_label": "TEXT",
                "token_count_estimate": "INTEGER",
                "source": "TEXT",
            },
            constraints=("UNIQUE(parent_document_id, chunk_index)",),
        ),
        TableSchema(
            EmbeddableTable.CANDIDATES,
            text_columns=("name", "current_title", "current_firm", "location", "profile_summary"),
            extra_columns={"status": "TEXT"},
        ),
        TableSchema(
            EmbeddableTable.MANDATES,
            text_columns=("name", "location", "primary_sector", "description"),
            extra_columns={"status": "TEXT", "firm_id": "INTEGER"},
        ),
        TableSchema(
            EmbeddableTable.CONTACTS,
            text_columns=("display_name", "company_name", "job_title", "email_address", "department"),
        ),
        TableSchema(
            EmbeddableTable.TEAMS,
            text_columns=("name", "description"),
            extra_columns={"firm_id": "INTEGER"},
        ),
        TableSchema(
            EmbeddableTable.EMPLOYMENTS,
            text_columns=("title", "firm_name", "description"),
            extra_columns={"candidate_id": "INTEGER"},
        ),
        TableSchema(
            EmbeddableTable.RECOMMENDATIONS,
            text_columns=("title", "rationale"),
            extra_columns={"mandate_id": "INTEGER", "candidate_id": "INTEGER", "status": "TEXT"},
        ),
        TableSchema(
            EmbeddableTable.CALENDAR_EVENTS,
            text_columns=("title", "description", "location", "organizer"),
        ),
        TableSchema(
            EmbeddableTable.EMAILS,
            text_columns=("subject", "sender", "body"),
        ),
        TableSchema(
            EmbeddableTable.FIRMS,
            text_columns=("name", "short_name", "website", "notes_text"),
        ),
    )
}


TableRef = Union[EmbeddableTable, str]


def resolve_table(table: TableRef) -> TableSchema:
    """
    Map a table reference to its schema.

    Args:
        table: EmbeddableTable member or its string value

    Returns:
        TableSchema for the table

    Raises:
        InvalidInputError: If the table is missing or not allow-listed
    """
    if not table:
        raise InvalidInputError("table is required")
    try:
        return TABLE_SCHEMAS[EmbeddableTable(table)]
    except ValueError:
        raise InvalidInputError(f"Unsupported table: {table!r}") from None
