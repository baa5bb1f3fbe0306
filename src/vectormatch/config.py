"""
Runtime configuration for vectormatch.

Settings are plain pydantic models with sensible defaults. Every field can be
overridden through a ``VECTORMATCH_*`` environment variable via
``Settings.from_env()``, which is how long-running hosts configure the
embedding service without code changes.

Example:
    settings = Settings.from_env()
    pipeline = build_pipeline(settings)
    pipeline.schedule_embedding("candidates", 42, "Portfolio manager, credit")
"""

import os
from typing import Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "VECTORMATCH_"

DEFAULT_MODEL_NAME = "all-MiniLM-L6-v2"
DEFAULT_DIMENSION = 384


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Configuration for the embedding engine, vector store and worker pool."""

    db_path: str = Field("data/vectormatch.db", description="SQLite database path")
    model_name: str = Field(DEFAULT_MODEL_NAME, description="Sentence Transformers model")
    dimension: int = Field(DEFAULT_DIMENSION, ge=1, description="Embedding dimensionality")
    device: Optional[str] = Field(None, description="'cpu', 'cuda', 'mps' or None for auto")
    disable_embeddings: bool = Field(False, description="Short-circuit every model call")
    cache_size: int = Field(10_000, ge=1, description="Max cached embeddings (LRU)")
    workers: int = Field(2, ge=1, description="Background embedding worker threads")
    max_queue_size: int = Field(1000, ge=1, description="Pending background jobs")
    max_attempts: int = Field(3, ge=1, description="Attempts per background job")

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """
        Build settings from ``VECTORMATCH_*`` environment variables.

        Explicit keyword overrides win over the environment, which wins
        over the defaults.

        Args:
            **overrides: Field values that take precedence

        Returns:
            Settings instance
        """
        values: dict = {}
        env = os.environ

        if f"{ENV_PREFIX}DB_PATH" in env:
            values["db_path"] = env[f"{ENV_PREFIX}DB_PATH"]
        if f"{ENV_PREFIX}MODEL_NAME" in env:
            values["model_name"] = env[f"{ENV_PREFIX}MODEL_NAME"]
        if f"{ENV_PREFIX}DIMENSION" in env:
            values["dimension"] = int(env[f"{ENV_PREFIX}DIMENSION"])
        if env.get(f"{ENV_PREFIX}DEVICE"):
            values["device"] = env[f"{ENV_PREFIX}DEVICE"]
        if f"{ENV_PREFIX}DISABLE_EMBEDDINGS" in env:
            values["disable_embeddings"] = _env_bool(env[f"{ENV_PREFIX}DISABLE_EMBEDDINGS"])
        if f"{ENV_PREFIX}CACHE_SIZE" in env:
            values["cache_size"] = int(env[f"{ENV_PREFIX}CACHE_SIZE"])
        if f"{ENV_PREFIX}WORKERS" in env:
            values["workers"] = int(env[f"{ENV_PREFIX}WORKERS"])
        if f"{ENV_PREFIX}MAX_QUEUE_SIZE" in env:
            values["max_queue_size"] = int(env[f"{ENV_PREFIX}MAX_QUEUE_SIZE"])
        if f"{ENV_PREFIX}MAX_ATTEMPTS" in env:
            values["max_attempts"] = int(env[f"{ENV_PREFIX}MAX_ATTEMPTS"])

        values.update(overrides)
        return cls(**values)
