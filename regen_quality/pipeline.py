"""End-to-end regeneration pipeline."""

from __future__ import annotations

from typing import List, Optional, Sequence

from regen_quality.adapters.generator import CandidateGenerator
from regen_quality.adapters.loader import RasterLoader
from regen_quality.config import EngineConfig, QualityThresholds, ScoreWeights
from regen_quality.reranker import CandidateReranker
from regen_quality.retry import RetryManager
from regen_quality.scoring import QualityScorer
from regen_quality.types import GenerationResult, QualityResult, RankedCandidate, RasterRef


class RegenerationPipeline:
    """Wires loading, scoring, reranking and retries from one config.

    Flow:
        1) Generation: the injected generator produces ``k`` candidates for
           the current strength and prompt template.
        2) Verification: each candidate is scored against the original
           (SSIM, perceptual hash, edge quality, subject geometry) and
           classified P0/P1/P2/OK.
        3) Selection: disqualified candidates are dropped and the rest are
           reranked. The best one is accepted, or the strategy planner
           adjusts strength and template and the loop continues.
    """

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self.config = config or EngineConfig()
        self.loader = RasterLoader(self.config.loader)
        self.scorer = QualityScorer(
            thresholds=self.config.thresholds,
            weights=self.config.quality_weights,
            loader=self.loader,
        )
        self.reranker = CandidateReranker(self.scorer, self.config.rerank)
        self.retry_manager = RetryManager(self.config.retry, self.reranker)

    def score(
        self,
        original: RasterRef,
        candidate: RasterRef,
        thresholds: Optional[QualityThresholds] = None,
    ) -> QualityResult:
        return self.scorer.score(original, candidate, thresholds)

    def score_many(
        self,
        original: RasterRef,
        candidates: Sequence[RasterRef],
        thresholds: Optional[QualityThresholds] = None,
    ) -> List[QualityResult]:
        return self.scorer.score_many(original, candidates, thresholds)

    def rerank(
        self,
        original: RasterRef,
        candidates: Sequence[RasterRef],
        weights: Optional[ScoreWeights] = None,
    ) -> List[RankedCandidate]:
        return self.reranker.rerank(original, candidates, weights)

    def __call__(
        self,
        generate_fn: CandidateGenerator,
        original: RasterRef,
        initial_strength: float,
        description: str = "",
        logo_text: str = "",
    ) -> GenerationResult:
        return self.retry_manager.execute_with_retry(
            generate_fn, original, initial_strength, description, logo_text
        )
