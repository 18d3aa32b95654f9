"""Retry orchestration for candidate regeneration.

The orchestrator runs attempts strictly in sequence, because each
attempt's outcome sets the next one's strength and template:

    Attempting(attempt, strength, template)
        -> Accepted               best survivor is OK or P2
        -> Attempting(attempt+1)  nothing acceptable, budget left
        -> ExhaustedBestEffort    budget spent, a P1 candidate was seen
        -> Failed                 budget spent, nothing usable ever seen

Generator exceptions, timeouts and empty batches each use up one attempt
and leave strength and template unchanged.
"""

from __future__ import annotations

import logging
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import List, Optional, Sequence

from regen_quality.adapters.generator import CandidateGenerator, call_generator
from regen_quality.adapters.loader import describe_ref
from regen_quality.config import RetryConfig
from regen_quality.reranker import CandidateReranker, select_survivors
from regen_quality.scoring import RasterFeatures
from regen_quality.strategy import (
    MAX_STRENGTH,
    MIN_STRENGTH,
    STRENGTH_SCALE,
    adjust_strength_for_retry,
    build_prompt,
    determine_risk_level,
    get_k_samples,
    plan_retry_strategy,
)
from regen_quality.types import (
    ErrorLevel,
    GenerationResult,
    Outcome,
    PromptTemplate,
    RankedCandidate,
    RasterRef,
)

logger = logging.getLogger(__name__)


class RegenerationError(RuntimeError):
    """Raised when a run ends without any usable candidate."""


class _AttemptFailed(RuntimeError):
    pass


@dataclass(frozen=True)
class _Attempt:
    number: int
    strength: float
    template: PromptTemplate


def _lead_severity(scored: Sequence[RankedCandidate]) -> ErrorLevel:
    return min((c.quality_result.error_level for c in scored), key=lambda level: level.severity)


def _best_fallback(scored: Sequence[RankedCandidate]) -> Optional[RankedCandidate]:
    # P0 means the subject itself changed; never hand that back.
    usable = [c for c in scored if c.quality_result.error_level is ErrorLevel.P1]
    if not usable:
        return None
    return max(usable, key=lambda c: c.score)


def _to_result(
    candidate: RankedCandidate,
    original_url: str,
    attempt: _Attempt,
    outcome: Outcome,
) -> GenerationResult:
    result = candidate.quality_result
    scores = result.scores
    difference = scores.ssim_diff * 100
    return GenerationResult(
        url=candidate.id,
        original_url=original_url,
        similarity=100 - difference,
        difference=difference,
        ssim=scores.ssim,
        phash_distance=scores.phash_distance,
        edge_score=scores.edge_score,
        geom_delta=scores.geom_delta,
        quality_score=scores.overall_score,
        error_level=result.error_level,
        error_reasons=result.reasons,
        strength_used=attempt.strength,
        retry_count=attempt.number,
        generation_mode=attempt.template.value,
        outcome=outcome,
    )


class RetryManager:
    """Drives generate -> rerank -> replan until a candidate is accepted."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        reranker: Optional[CandidateReranker] = None,
    ) -> None:
        self.config = config or RetryConfig()
        self.reranker = reranker or CandidateReranker()

    def _run_attempt(
        self,
        generate_fn: CandidateGenerator,
        original: RasterFeatures,
        attempt: _Attempt,
        prompt: str,
        k: int,
    ) -> List[RankedCandidate]:
        timeout = self.config.generation_timeout
        try:
            candidates = call_generator(generate_fn, attempt.strength, prompt, k, timeout)
        except FutureTimeoutError as exc:
            raise _AttemptFailed(f"generation timed out after {timeout}s") from exc
        except Exception as exc:
            raise _AttemptFailed(f"generation failed: {exc}") from exc
        if not candidates:
            raise _AttemptFailed("no candidates generated")

        scored = [c for c in self.reranker.score_candidates(original, candidates) if c is not None]
        if not scored:
            raise _AttemptFailed(f"none of {len(candidates)} candidates could be scored")
        return scored

    def execute_with_retry(
        self,
        generate_fn: CandidateGenerator,
        original: RasterRef,
        initial_strength: float,
        description: str = "",
        logo_text: str = "",
    ) -> GenerationResult:
        """Generate candidates until one is acceptable or retries run out.

        Raises:
            ValueError: If ``initial_strength`` is outside [10, 100].
            RasterLoadError: If the original itself cannot be decoded.
            RegenerationError: If no usable candidate was produced by any
                attempt.
        """

        if not MIN_STRENGTH <= initial_strength <= MAX_STRENGTH:
            raise ValueError(
                f"initial_strength must be in [{MIN_STRENGTH:g}, {MAX_STRENGTH:g}], "
                f"got {initial_strength}"
            )
        config = self.config
        original_url = describe_ref(original, "original")
        prepared = self.reranker.prepare(original)
        k = get_k_samples(determine_risk_level(initial_strength), config)

        attempt = _Attempt(number=0, strength=float(initial_strength), template=PromptTemplate.LIGHT_TEXTURE)
        best_effort: Optional[RankedCandidate] = None
        best_effort_attempt: Optional[_Attempt] = None
        last_error = "no attempts made"

        while True:
            logger.info(
                "Attempt %d: strength=%g, template=%s, k=%d",
                attempt.number + 1,
                attempt.strength,
                attempt.template.value,
                k,
            )
            prompt = build_prompt(attempt.template, description, attempt.strength, logo_text)
            next_attempt = _Attempt(attempt.number + 1, attempt.strength, attempt.template)

            try:
                scored = self._run_attempt(generate_fn, prepared, attempt, prompt, k)
            except _AttemptFailed as exc:
                last_error = str(exc)
                logger.warning("Attempt %d failed: %s", attempt.number + 1, last_error)
            else:
                survivors = select_survivors(scored)
                if survivors:
                    logger.info("Accepted candidate %s on attempt %d", survivors[0].id, attempt.number + 1)
                    return _to_result(survivors[0], original_url, attempt, Outcome.ACCEPTED)

                fallback = _best_fallback(scored)
                if fallback is not None and (best_effort is None or fallback.score > best_effort.score):
                    best_effort = fallback
                    best_effort_attempt = attempt

                level = _lead_severity(scored)
                last_error = level.value
                strategy = plan_retry_strategy(attempt.number, level, config)
                if strategy is not None:
                    logger.info("Retrying: %s", strategy.reason)
                    next_attempt = _Attempt(
                        number=strategy.retry_number,
                        strength=adjust_strength_for_retry(
                            attempt.strength, strategy.strength_adjustment * STRENGTH_SCALE
                        ),
                        template=strategy.prompt_template,
                    )

            if attempt.number >= config.max_retries:
                break
            attempt = next_attempt

        if best_effort is not None and best_effort_attempt is not None:
            logger.info("Max retries reached, returning best effort %s", best_effort.id)
            return _to_result(best_effort, original_url, best_effort_attempt, Outcome.EXHAUSTED_BEST_EFFORT)
        raise RegenerationError(
            f"Failed to generate quality image after {config.max_retries} retries: {last_error}"
        )
