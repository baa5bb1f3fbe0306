"""
Embedding engine for semantic retrieval.

Turns text into normalized vectors using Sentence Transformers
(all-MiniLM-L6-v2, 384 dimensions, mean pooling). Provides the text
normalization, caching, cosine similarity and keyword tokenization primitives
the rest of the package builds on.
"""

import logging
import re
import threading
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Protocol

import numpy as np
from cachetools import LRUCache

from ..config import DEFAULT_MODEL_NAME, Settings
from ..errors import ModelUnavailableError

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)

_STRIP_RE = re.compile(r"[^\w\s.-]")
_SPACE_RE = re.compile(r"\s+")
_KEYWORD_SPLIT_RE = re.compile(r"[\s,/]+")


class Encoder(Protocol):
    """Anything with a SentenceTransformer-compatible encode()."""

    def encode(self, sentences: Any, normalize_embeddings: bool = ..., **kwargs: Any) -> Any:
        ...


def normalize_text(text: Any) -> str:
    """
    Canonical form used for embedding and cache keys.

    Lowercases, replaces everything except word characters, whitespace,
    periods and hyphens with a space, collapses whitespace and trims.
    Idempotent.
    """
    if text is None:
        return ""
    s = str(text).lower()
    s = _STRIP_RE.sub(" ", s)
    return _SPACE_RE.sub(" ", s).strip()


def tokenize_keywords(parts: Iterable[Any]) -> list[str]:
    """
    Turn profile fields into a sorted, de-duplicated keyword list.

    Each part is normalized and split on whitespace, commas and slashes;
    single-character tokens are dropped.
    """
    tokens: set[str] = set()
    for part in parts:
        for tok in _KEYWORD_SPLIT_RE.split(normalize_text(part)):
            if len(tok) > 1:
                tokens.add(tok)
    return sorted(tokens)


def cosine(a: Any, b: Any) -> float:
    """
    Cosine similarity of two normalized vectors (their dot product).

    Returns 0.0 when the shapes differ.
    """
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    if a.shape != b.shape:
        return 0.0
    return float(np.dot(a, b))


def _default_model_factory(model_name: str, device: Optional[str]) -> "SentenceTransformer":
    from sentence_transformers import SentenceTransformer

    return SentenceTransformer(model_name, device=device)


class EmbeddingEngine:
    """
    Generates and caches semantic embeddings.

    Uses Sentence Transformers with all-MiniLM-L6-v2 (384 dimensions).
    Vectors are L2-normalized, so a dot product is the cosine similarity.

    Handles:
    - Lazy, single-flight model loading (first caller loads, others wait)
    - Disabled mode that fails every call before touching the model
    - A bounded LRU cache keyed by normalized text
    - Injection of a stub encoder for tests via model_factory

    Example:
        engine = EmbeddingEngine()
        vec = engine.embed("Senior credit analyst, London")
        sim = engine.cosine(vec, engine.embed("Credit analyst based in London"))
    """

    MODEL_NAME = DEFAULT_MODEL_NAME
    DIMENSION = 384
    CACHE_SIZE = 10_000

    normalize_text = staticmethod(normalize_text)
    tokenize_keywords = staticmethod(tokenize_keywords)
    cosine = staticmethod(cosine)

    def __init__(
        self,
        model_name: Optional[str] = None,
        device: Optional[str] = None,
        disabled: bool = False,
        cache_size: Optional[int] = None,
        model_factory: Optional[Callable[[str, Optional[str]], Encoder]] = None,
    ):
        """
        Initialize engine with lazy model loading.

        Args:
            model_name: Override default model (e.g., for testing)
            device: 'cpu', 'cuda', 'mps', or None for auto-detect
            disabled: Fail every call with ModelUnavailableError
            cache_size: Max cached embeddings
            model_factory: Callable (model_name, device) -> encoder
        """
        self.model_name = model_name or self.MODEL_NAME
        self.device = device
        self.disabled = disabled
        self._model_factory = model_factory or _default_model_factory
        self._model: Optional[Encoder] = None
        self._load_lock = threading.Lock()
        self._cache: LRUCache = LRUCache(maxsize=cache_size or self.CACHE_SIZE)
        self._cache_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "EmbeddingEngine":
        return cls(
            model_name=settings.model_name,
            device=settings.device,
            disabled=settings.disable_embeddings,
            cache_size=settings.cache_size,
            **kwargs,
        )

    @property
    def model(self) -> Encoder:
        """
        Lazy load the model on first use.

        Concurrent first callers block on the same lock, so the model is
        loaded once. A failed load is not remembered; the next call retries.

        Raises:
            ModelUnavailableError: If disabled or the model fails to load
        """
        if self.disabled:
            raise ModelUnavailableError("Embeddings are disabled")

        model = self._model
        if model is not None:
            return model

        with self._load_lock:
            if self._model is None:
                logger.info(f"Loading embedding model: {self.model_name}")
                try:
                    self._model = self._model_factory(self.model_name, self.device)
                except Exception as e:
                    logger.error(f"Failed to load embedding model {self.model_name}: {e}")
                    raise ModelUnavailableError(
                        f"Failed to load embedding model {self.model_name}: {e}"
                    ) from e
                logger.info(f"Model loaded on device: {getattr(self._model, 'device', 'n/a')}")
            return self._model

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def load(self) -> None:
        """Load the model eagerly (e.g., at service start)."""
        _ = self.model

    def reset(self) -> None:
        """Drop the loaded model and clear the cache."""
        with self._load_lock:
            self._model = None
        self.clear_cache()

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    def cache_info(self) -> dict:
        with self._cache_lock:
            return {"size": len(self._cache), "max_size": self._cache.maxsize}

    def _encode(self, text: str) -> np.ndarray:
        model = self.model
        try:
            embedding = model.encode(text, normalize_embeddings=True)
        except Exception as e:
            raise ModelUnavailableError(f"Embedding inference failed: {e}") from e
        return np.array(embedding, dtype=np.float32)

    def embed(self, text: Any) -> np.ndarray:
        """
        Embed text, using the cache when possible.

        Args:
            text: Text to embed (normalized before use)

        Returns:
            Read-only normalized embedding array of shape (DIMENSION,)

        Raises:
            ModelUnavailableError: If disabled, loading fails or inference fails
        """
        if self.disabled:
            raise ModelUnavailableError("Embeddings are disabled")

        key = normalize_text(text)
        with self._cache_lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        embedding = self._encode(key)
        # Shared by every caller through the cache
        embedding.setflags(write=False)

        with self._cache_lock:
            self._cache[key] = embedding
        return embedding

    def embed_phrase(self, value: Any) -> np.ndarray:
        """Embed a short phrase. Shares embed()'s cache."""
        return self.embed(value)

    def embed_batch(self, texts: list[Any]) -> list[np.ndarray]:
        """Embed several texts; each goes through the cache."""
        return [self.embed(text) for text in texts]
