"""
Shared pytest fixtures for all tests.

This module provides reusable fixtures for:
- Temporary directories and databases
- A vector store on a throwaway SQLite file
- An embedding engine backed by a deterministic stub encoder
- A pipeline wiring the two together

Fixtures are designed to be composable - use `store` for storage tests,
`engine` for embedding tests, and `pipeline` for end-to-end flows.
"""

import tempfile
from pathlib import Path
from typing import Generator

import numpy as np
import pytest

from src.vectormatch.database import VectorStore
from src.vectormatch.embeddings.engine import EmbeddingEngine
from src.vectormatch.embeddings.pipeline import EmbeddingPipeline

from .factories import StubEncoder, make_vector


# =============================================================================
# Basic Fixtures
# =============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Provide a temporary directory for test files.

    The directory is automatically cleaned up after the test completes.

    Yields:
        Path to temporary directory
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db_path(temp_dir: Path) -> Path:
    """Path for a temporary test database."""
    return temp_dir / "test_vectormatch.db"


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def store(temp_db_path: Path) -> VectorStore:
    """
    Provide an empty vector store.

    Schema is created but no data is inserted.

    Args:
        temp_db_path: Path for test database

    Returns:
        Empty VectorStore instance
    """
    return VectorStore(temp_db_path)


# =============================================================================
# Embedding Fixtures
# =============================================================================


@pytest.fixture
def stub_encoder() -> StubEncoder:
    """Deterministic bag-of-words encoder with a call counter."""
    return StubEncoder()


@pytest.fixture
def engine(stub_encoder: StubEncoder) -> EmbeddingEngine:
    """Engine that loads the stub encoder instead of a real model."""
    return EmbeddingEngine(model_factory=lambda name, device: stub_encoder)


@pytest.fixture
def disabled_engine() -> EmbeddingEngine:
    """Engine in disabled mode."""
    return EmbeddingEngine(disabled=True)


@pytest.fixture
def pipeline(store: VectorStore, engine: EmbeddingEngine) -> EmbeddingPipeline:
    """Pipeline over the test store and stub engine, without a worker pool."""
    return EmbeddingPipeline(store, engine)


@pytest.fixture
def mock_embedding() -> np.ndarray:
    """
    A single normalized 384-dimensional vector (MiniLM embedding size).

    Returns:
        Normalized numpy array of shape (384,)
    """
    return make_vector(seed=7)
