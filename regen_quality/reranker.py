"""Candidate reranking.

Every candidate in a batch is scored independently against the same
original on a thread pool. Candidates that fail to load or score, and those
classified P0 or P1, are dropped. Survivors are ordered by a blend that
rewards being different enough while staying structurally consistent.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Union

from regen_quality.adapters.loader import RasterLoader, candidate_id
from regen_quality.config import QualityThresholds, RerankConfig, ScoreWeights
from regen_quality.scoring import QualityScorer, RasterFeatures, composite_score
from regen_quality.types import ErrorLevel, QualityResult, RankedCandidate, RasterRef

logger = logging.getLogger(__name__)

_DISQUALIFYING = (ErrorLevel.P0, ErrorLevel.P1)


def rank_score(result: QualityResult, weights: ScoreWeights) -> float:
    scores = result.scores
    return composite_score(
        scores.ssim_diff, scores.phash_distance, scores.edge_score, scores.geom_delta, weights
    )


class CandidateReranker:
    """Scores candidate batches and orders the acceptable ones."""

    def __init__(
        self,
        scorer: Optional[QualityScorer] = None,
        config: Optional[RerankConfig] = None,
    ) -> None:
        self.scorer = scorer or QualityScorer()
        self.config = config or RerankConfig()

    def prepare(self, original: Union[RasterRef, RasterFeatures]) -> RasterFeatures:
        if isinstance(original, RasterFeatures):
            return original
        return self.scorer.prepare(original)

    def _score_one(
        self,
        original: RasterFeatures,
        index: int,
        ref: RasterRef,
        weights: ScoreWeights,
    ) -> Optional[RankedCandidate]:
        name = candidate_id(ref, index)
        try:
            result = self.scorer.score_prepared(original, ref)
        except Exception as exc:
            logger.warning("Failed to score candidate %s: %s", name, exc)
            return None
        logger.debug("Candidate %s scored %s %s", name, result.error_level.value, result.reasons)
        return RankedCandidate(id=name, score=rank_score(result, weights), quality_result=result)

    def score_candidates(
        self,
        original: Union[RasterRef, RasterFeatures],
        candidates: Sequence[RasterRef],
        weights: Optional[ScoreWeights] = None,
    ) -> List[Optional[RankedCandidate]]:
        """Score every candidate, keeping input order.

        Slots for candidates that could not be loaded or scored are ``None``.
        """

        if not candidates:
            return []
        weights = weights or self.config.weights
        prepared = self.prepare(original)
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = [
                executor.submit(self._score_one, prepared, index, ref, weights)
                for index, ref in enumerate(candidates)
            ]
            return [future.result() for future in futures]

    def rerank(
        self,
        original: Union[RasterRef, RasterFeatures],
        candidates: Sequence[RasterRef],
        weights: Optional[ScoreWeights] = None,
    ) -> List[RankedCandidate]:
        """Return acceptable candidates, best first."""

        scored = self.score_candidates(original, candidates, weights)
        return select_survivors(scored)


def select_survivors(scored: Sequence[Optional[RankedCandidate]]) -> List[RankedCandidate]:
    survivors = [
        candidate
        for candidate in scored
        if candidate is not None and candidate.quality_result.error_level not in _DISQUALIFYING
    ]
    survivors.sort(key=lambda candidate: candidate.score, reverse=True)
    return survivors


def rerank_candidates(
    original: RasterRef,
    candidates: Sequence[RasterRef],
    weights: Optional[ScoreWeights] = None,
    thresholds: Optional[QualityThresholds] = None,
    loader: Optional[RasterLoader] = None,
) -> List[RankedCandidate]:
    """Rerank a batch of candidates against an original."""

    scorer = QualityScorer(thresholds=thresholds, loader=loader)
    return CandidateReranker(scorer).rerank(original, candidates, weights)
