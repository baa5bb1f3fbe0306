"""
Candidate/mandate semantic fit scoring.

Compares a candidate profile with a mandate (requirement) profile by
embedding both as short documents and bucketing their cosine similarity into
four bands. Raw cosine similarity on general-purpose sentence embeddings is
noisy; the bands give a stable signal that combines cleanly with the
deterministic categorical scoring done elsewhere.

This is best-effort enrichment: compute() never raises.
"""

import logging
import time
from typing import Any, Mapping, Union

from ..errors import ModelUnavailableError
from .engine import EmbeddingEngine, cosine, tokenize_keywords
from .models import CandidateProfile, MandateProfile, SemanticFitResult

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = " | "

# (upper bound, score); similarity >= last bound scores 1.0
SIMILARITY_BANDS = (
    (0.60, 0.25),
    (0.75, 0.55),
    (0.85, 0.75),
)
TOP_BAND_SCORE = 1.0

ProfileInput = Union[CandidateProfile, MandateProfile, Mapping[str, Any]]


def similarity_to_score(similarity: float) -> float:
    """Map cosine similarity to its discrete band score."""
    for upper, score in SIMILARITY_BANDS:
        if similarity < upper:
            return score
    return TOP_BAND_SCORE


class SemanticFitScorer:
    """
    Computes semantic fit between a candidate and a mandate.

    Example:
        scorer = SemanticFitScorer(engine)
        fit = scorer.compute(
            {"current_title": "Credit Analyst", "sectors": ["Private Credit"]},
            {"name": "Head of Credit", "sectors": ["Private Credit", "Infrastructure"]},
        )
        print(fit.semantic_score, fit.mismatches)
    """

    def __init__(self, engine: EmbeddingEngine):
        self.engine = engine

    def compute(
        self,
        candidate: ProfileInput,
        mandate: ProfileInput,
    ) -> SemanticFitResult:
        """
        Score how well a candidate matches a mandate.

        Args:
            candidate: CandidateProfile or dict of candidate fields
            mandate: MandateProfile or dict of mandate fields

        Returns:
            SemanticFitResult. When embeddings are disabled, similarity and
            semantic_score are 0 and disabled is True. On any failure the
            partial result is returned with error set.
        """
        start = time.perf_counter()
        result = SemanticFitResult(
            model_id=self.engine.model_name,
            disabled=self.engine.disabled,
        )

        if self.engine.disabled:
            logger.debug("Embeddings disabled, returning semantic_score=0")
            return result

        try:
            candidate_profile = CandidateProfile.model_validate(candidate)
            mandate_profile = MandateProfile.model_validate(mandate)

            candidate_parts = candidate_profile.parts()
            mandate_parts = mandate_profile.parts()

            result.candidate_keywords = tokenize_keywords(candidate_parts)
            result.mandate_keywords = tokenize_keywords(mandate_parts)

            candidate_set = set(result.candidate_keywords)
            result.mismatches = [k for k in result.mandate_keywords if k not in candidate_set]

            candidate_vec = self.engine.embed(FIELD_SEPARATOR.join(candidate_parts))
            mandate_vec = self.engine.embed(FIELD_SEPARATOR.join(mandate_parts))

            result.similarity = cosine(candidate_vec, mandate_vec)
            result.semantic_score = similarity_to_score(result.similarity)
        except ModelUnavailableError as e:
            result.error = str(e)
            logger.warning(f"Semantic fit unavailable: {e}")
        except Exception as e:
            result.error = str(e)
            logger.error(f"Semantic fit failed: {e}", exc_info=True)
        finally:
            result.timing_ms = (time.perf_counter() - start) * 1000

        return result


def compute_semantic_fit(
    engine: EmbeddingEngine,
    candidate: ProfileInput,
    mandate: ProfileInput,
) -> SemanticFitResult:
    """Functional shortcut for SemanticFitScorer(engine).compute()."""
    return SemanticFitScorer(engine).compute(candidate, mandate)
