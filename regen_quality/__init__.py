"""Image-quality verification and adaptive regeneration engine.

Candidates produced by an external image generator are compared with their
original along four axes (structural similarity, perceptual hash distance,
edge quality and subject geometry), classified into P0/P1/P2/OK severity
levels, and fed through a bounded retry loop that tunes generation strength
and prompt style until an acceptable candidate appears.
"""

from regen_quality.pipeline import RegenerationPipeline
from regen_quality.config import (
    EngineConfig,
    LoaderConfig,
    QualityThresholds,
    RerankConfig,
    RetryConfig,
    ScoreWeights,
)
from regen_quality.reranker import CandidateReranker, rerank_candidates
from regen_quality.retry import RegenerationError, RetryManager
from regen_quality.scoring import QualityScorer, score_image_quality, score_multiple_images
from regen_quality.types import (
    ErrorLevel,
    GenerationResult,
    Outcome,
    PromptTemplate,
    QualityResult,
    QualityScores,
    RankedCandidate,
    RasterSample,
    RetryStrategy,
)

__all__ = [
    "RegenerationPipeline",
    "EngineConfig",
    "LoaderConfig",
    "QualityThresholds",
    "RerankConfig",
    "RetryConfig",
    "ScoreWeights",
    "CandidateReranker",
    "rerank_candidates",
    "RegenerationError",
    "RetryManager",
    "QualityScorer",
    "score_image_quality",
    "score_multiple_images",
    "ErrorLevel",
    "GenerationResult",
    "Outcome",
    "PromptTemplate",
    "QualityResult",
    "QualityScores",
    "RankedCandidate",
    "RasterSample",
    "RetryStrategy",
]
