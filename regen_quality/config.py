"""Configuration dataclasses for the regeneration quality engine."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class QualityThresholds:
    """Acceptance thresholds applied when classifying a candidate.

    Attributes:
        ssim_min_diff: Minimum structural difference (1 - SSIM) a candidate
            must show to count as a real modification.
        phash_min_dist: Minimum perceptual-hash Hamming distance.
        geom_max_delta: Maximum tolerated subject geometry drift.
        edge_min_score: Minimum edge-quality score of the candidate.
    """

    ssim_min_diff: float = 0.30
    phash_min_dist: int = 12
    geom_max_delta: float = 0.03
    edge_min_score: float = 0.6

    def __post_init__(self) -> None:
        if not 0.0 <= self.ssim_min_diff <= 1.0:
            raise ValueError(f"ssim_min_diff must be in [0, 1], got {self.ssim_min_diff}")
        if not 0 <= self.phash_min_dist <= 63:
            raise ValueError(f"phash_min_dist must be in [0, 63], got {self.phash_min_dist}")
        if not 0.0 <= self.geom_max_delta <= 1.0:
            raise ValueError(f"geom_max_delta must be in [0, 1], got {self.geom_max_delta}")
        if not 0.0 <= self.edge_min_score <= 1.0:
            raise ValueError(f"edge_min_score must be in [0, 1], got {self.edge_min_score}")


@dataclass(frozen=True)
class ScoreWeights:
    """Weights blending the four quality signals into a single score.

    The geometry term is inverted (``1 - geom_delta``) and the hash distance
    normalized to [0, 1] before weighting.
    """

    ssim: float = 0.3
    phash: float = 0.25
    edge: float = 0.25
    geom: float = 0.2

    def __post_init__(self) -> None:
        for name in ("ssim", "phash", "edge", "geom"):
            if getattr(self, name) < 0:
                raise ValueError(f"Weight '{name}' must be non-negative.")


@dataclass(frozen=True)
class RerankConfig:
    """Settings for candidate reranking.

    Attributes:
        weights: Blend used to order surviving candidates. Kept separate from
            the composite quality weights so the two can diverge.
        max_workers: Thread pool size for scoring a batch. ``None`` lets the
            executor pick a size from the CPU count.
    """

    weights: ScoreWeights = field(default_factory=ScoreWeights)
    max_workers: Optional[int] = None

    def __post_init__(self) -> None:
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError("max_workers must be at least 1.")


@dataclass(frozen=True)
class RetryConfig:
    """Settings for the bounded regeneration loop.

    Attributes:
        max_retries: Retries after the initial attempt.
        strength_step: Strength adjustment per retry, as a fraction of the
            10-100 strength scale.
        k_samples_default: Candidates requested per attempt at low risk.
        k_samples_high_risk: Candidates requested per attempt at high risk.
        generation_timeout: Seconds to wait for the generation callback.
            ``None`` waits indefinitely.
    """

    max_retries: int = 2
    strength_step: float = 0.15
    k_samples_default: int = 3
    k_samples_high_risk: int = 4
    generation_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")
        if self.strength_step <= 0:
            raise ValueError(f"strength_step must be positive, got {self.strength_step}")
        if self.k_samples_default < 1:
            raise ValueError("k_samples_default must be at least 1.")
        if self.k_samples_high_risk < self.k_samples_default:
            raise ValueError("k_samples_high_risk must not be below k_samples_default.")
        if self.generation_timeout is not None and self.generation_timeout <= 0:
            raise ValueError("generation_timeout must be positive when set.")


@dataclass(frozen=True)
class LoaderConfig:
    """Settings for decoding raster references.

    Attributes:
        mode: PIL mode every decoded image is converted to.
        timeout: HTTP timeout in seconds for URL references.
        user_agent: User-Agent header sent with URL fetches.
    """

    mode: str = "RGBA"
    timeout: float = 10.0
    user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


@dataclass(frozen=True)
class EngineConfig:
    """Top-level configuration for the regeneration pipeline."""

    thresholds: QualityThresholds = field(default_factory=QualityThresholds)
    quality_weights: ScoreWeights = field(default_factory=ScoreWeights)
    rerank: RerankConfig = field(default_factory=RerankConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    loader: LoaderConfig = field(default_factory=LoaderConfig)
