"""
Test data factories for records, vectors and documents.

These factories insert realistic rows into the allow-listed tables and build
deterministic vectors, so tests stay readable and don't depend on a real
embedding model.
"""

import random
import re
import zlib
from typing import Any, Optional

import numpy as np

from src.vectormatch.database import VectorStore
from src.vectormatch.tables import TableRef, resolve_table

DIMENSION = 384


# =============================================================================
# Sample Data Pools
# =============================================================================

TITLES = [
    "Credit Analyst",
    "Portfolio Manager",
    "Head of Private Credit",
    "Infrastructure Associate",
    "Investment Director",
    "Real Estate Analyst",
    "Risk Manager",
    "Quantitative Researcher",
]

FIRMS = [
    "Northbridge Capital",
    "Harbour Lane Partners",
    "Aldgate Asset Management",
    "Meridian Infrastructure",
    "Blackfriars Credit",
]

LOCATIONS = ["London", "Paris", "New York", "Singapore", "Frankfurt"]

SECTORS = ["Private Credit", "Infrastructure", "Real Estate", "Private Equity", "Hedge Funds"]

FILLER_WORDS = [
    "portfolio", "credit", "returns", "fund", "capital", "deal", "origination",
    "underwriting", "valuation", "equity", "debt", "yield", "risk", "investor",
    "mandate", "sector", "asset", "coverage", "strategy", "analysis",
]

SAMPLE_CV = """Summary
Seasoned credit investor with a focus on direct lending and special situations.

Experience
Eight years at Northbridge Capital leading mid-market direct lending deals
across the UK and Benelux, sitting on the investment committee.

Education
MSc Finance, London Business School.

Skills
Financial modelling, credit documentation, restructuring.
"""


# =============================================================================
# Stub Encoder
# =============================================================================


class StubEncoder:
    """
    Deterministic stand-in for SentenceTransformer.

    Hashes each word into one of DIMENSION buckets and L2-normalizes, so
    texts that share words are close and unrelated texts are near-orthogonal.
    """

    device = "cpu"

    def __init__(self, dimension: int = DIMENSION):
        self.dimension = dimension
        self.calls = 0

    def encode(self, sentences: Any, normalize_embeddings: bool = True, **kwargs) -> np.ndarray:
        self.calls += 1
        vec = np.zeros(self.dimension, dtype=np.float32)
        for word in re.findall(r"\w+", str(sentences).lower()):
            vec[zlib.crc32(word.encode()) % self.dimension] += 1.0
        if not vec.any():
            vec[0] = 1.0
        if normalize_embeddings:
            vec /= np.linalg.norm(vec)
        return vec


# =============================================================================
# Factory Functions
# =============================================================================


def make_vector(seed: int, dimension: int = DIMENSION) -> np.ndarray:
    """Random unit vector, reproducible by seed."""
    rng = np.random.default_rng(seed)
    vec = rng.standard_normal(dimension).astype(np.float32)
    return vec / np.linalg.norm(vec)


def perturb(vector: np.ndarray, scale: float = 0.05, seed: int = 0) -> np.ndarray:
    """Unit vector close to `vector` (cosine distance well under 0.15 for small scale)."""
    noise = make_vector(seed + 10_000, len(vector)) * scale
    out = (vector + noise).astype(np.float32)
    return out / np.linalg.norm(out)


def vector_at_similarity(similarity: float, dimension: int = DIMENSION) -> tuple[np.ndarray, np.ndarray]:
    """Two unit vectors whose dot product is `similarity`."""
    a = np.zeros(dimension, dtype=np.float32)
    b = np.zeros(dimension, dtype=np.float32)
    a[0] = 1.0
    b[0] = similarity
    b[1] = np.sqrt(1.0 - similarity**2)
    return a, b


def generate_words(n: int, seed: int = 42) -> str:
    """n space-separated filler words."""
    rng = random.Random(seed)
    return " ".join(rng.choice(FILLER_WORDS) for _ in range(n))


def insert_row(store: VectorStore, table: TableRef, **values: Any) -> int:
    """Insert a raw row into an allow-listed table and return its id."""
    schema = resolve_table(table)
    columns = ", ".join(values)
    placeholders = ", ".join("?" for _ in values)
    with store._connection() as conn:
        cursor = conn.execute(
            f"INSERT INTO {schema.name} ({columns}) VALUES ({placeholders})",
            tuple(values.values()),
        )
        return cursor.lastrowid


def insert_document(
    store: VectorStore,
    parsed_text: str = SAMPLE_CV,
    title: Optional[str] = None,
    **extra: Any,
) -> int:
    values = {"file_name": "cv.pdf", "status": "parsed", **extra}
    return insert_row(
        store,
        "documents",
        parsed_text=parsed_text,
        title=title or values["file_name"],
        **values,
    )


def insert_candidate(
    store: VectorStore,
    name: Optional[str] = None,
    current_title: Optional[str] = None,
    current_firm: Optional[str] = None,
    location: Optional[str] = None,
    status: str = "active",
    **extra: Any,
) -> int:
    return insert_row(
        store,
        "candidates",
        name=name or f"Candidate {random.randint(1000, 9999)}",
        current_title=current_title or random.choice(TITLES),
        current_firm=current_firm or random.choice(FIRMS),
        location=location or random.choice(LOCATIONS),
        status=status,
        **extra,
    )


def generate_candidates(store: VectorStore, n: int = 10) -> list[int]:
    """Insert n candidates with random profiles; returns their ids."""
    return [insert_candidate(store, name=f"Candidate {i}") for i in range(n)]


def generate_candidate_profile(**overrides: Any) -> dict:
    profile = {
        "name": "Alex Morgan",
        "current_title": "Credit Analyst",
        "current_firm": "Northbridge Capital",
        "location": "London",
        "sectors": ["Private Credit"],
        "functions": ["Investing"],
        "asset_classes": ["Debt"],
        "geographies": ["UK"],
        "seniority": "Associate",
    }
    profile.update(overrides)
    return profile


def generate_mandate_profile(**overrides: Any) -> dict:
    profile = {
        "name": "Head of Credit",
        "location": "London",
        "primary_sector": "Private Credit",
        "sectors": ["Private Credit", "Infrastructure"],
        "functions": ["Investing"],
        "asset_classes": ["Debt"],
        "regions": ["UK"],
        "seniority_min": "VP",
        "seniority_max": "Director",
    }
    profile.update(overrides)
    return profile
