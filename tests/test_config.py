"""
Tests for Settings, the table allow-list and logging setup.
"""

import logging
import os

import pytest
from pydantic import ValidationError

from src.vectormatch.config import DEFAULT_MODEL_NAME, Settings
from src.vectormatch.errors import InvalidInputError
from src.vectormatch.logging_config import setup_logging
from src.vectormatch.tables import (
    TABLE_SCHEMAS,
    EmbeddableTable,
    resolve_table,
)


class TestSettings:
    """Tests for Settings defaults and environment overrides."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch):
        for key in list(os.environ):
            if key.startswith("VECTORMATCH_"):
                monkeypatch.delenv(key)

        settings = Settings.from_env()

        assert settings.model_name == DEFAULT_MODEL_NAME
        assert settings.dimension == 384
        assert settings.disable_embeddings is False
        assert settings.cache_size == 10_000
        assert settings.workers == 2

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("VECTORMATCH_DB_PATH", "/tmp/vm.db")
        monkeypatch.setenv("VECTORMATCH_DISABLE_EMBEDDINGS", "true")
        monkeypatch.setenv("VECTORMATCH_CACHE_SIZE", "500")
        monkeypatch.setenv("VECTORMATCH_DEVICE", "cpu")
        monkeypatch.setenv("VECTORMATCH_MAX_ATTEMPTS", "5")

        settings = Settings.from_env()

        assert settings.db_path == "/tmp/vm.db"
        assert settings.disable_embeddings is True
        assert settings.cache_size == 500
        assert settings.device == "cpu"
        assert settings.max_attempts == 5

    @pytest.mark.parametrize("value,expected", [("1", True), ("yes", True), ("0", False), ("off", False)])
    def test_boolean_parsing(self, monkeypatch: pytest.MonkeyPatch, value: str, expected: bool):
        monkeypatch.setenv("VECTORMATCH_DISABLE_EMBEDDINGS", value)

        assert Settings.from_env().disable_embeddings is expected

    def test_overrides_beat_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("VECTORMATCH_WORKERS", "8")

        assert Settings.from_env(workers=1).workers == 1

    def test_validation(self):
        with pytest.raises(ValidationError):
            Settings(cache_size=0)


class TestTables:
    """Tests for the table allow-list."""

    def test_resolves_enum_and_string(self):
        assert resolve_table(EmbeddableTable.EMAILS) is TABLE_SCHEMAS[EmbeddableTable.EMAILS]
        assert resolve_table("emails") is TABLE_SCHEMAS[EmbeddableTable.EMAILS]

    @pytest.mark.parametrize("table", [None, "", "users", "emails; DROP TABLE emails"])
    def test_rejects_unknown(self, table):
        with pytest.raises(InvalidInputError):
            resolve_table(table)

    def test_every_table_declared(self):
        assert set(TABLE_SCHEMAS) == set(EmbeddableTable)

    def test_chunk_schema(self):
        schema = resolve_table("document_chunks")

        assert schema.fts_table == "document_chunks_fts"
        assert {"parent_document_id", "attributed_entity_id", "chunk_index"} <= schema.filterable_columns
        assert "UNIQUE(parent_document_id, chunk_index)" in schema.create_table_sql()


class TestLogging:
    """Tests for setup_logging()."""

    def test_quiets_model_loggers(self):
        setup_logging(verbose=True)

        assert logging.getLogger("sentence_transformers").level == logging.WARNING
