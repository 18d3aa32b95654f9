"""Perceptual difference engine.

Each candidate is compared with its original along four independent axes:

    * structural similarity (global, single-window SSIM),
    * perceptual hash distance (DCT fingerprint, Hamming distance),
    * edge quality of the candidate alone (Sobel edge density),
    * subject geometry drift (edge-derived bounding box area and centroid).

The signals are blended into a composite score and classified into the
P0/P1/P2/OK severity levels. Geometry is checked first, so a critical shape
change can never be masked by a milder finding.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from regen_quality.adapters.loader import RasterLoader
from regen_quality.config import QualityThresholds, ScoreWeights
from regen_quality.types import ErrorLevel, QualityResult, QualityScores, RasterRef, RasterSample
from regen_quality.utils.vision import sample_nearest, sobel_magnitude, to_grayscale

logger = logging.getLogger(__name__)

SSIM_C1 = (0.01 * 255) ** 2
SSIM_C2 = (0.03 * 255) ** 2

HASH_BLOCK_SIZE = 32
DCT_SIZE = 8
MAX_PHASH_DISTANCE = DCT_SIZE * DCT_SIZE - 1

EDGE_THRESHOLD = 50
STRONG_EDGE_THRESHOLD = 100
SUBJECT_EDGE_THRESHOLD = 30
SUBJECT_PADDING_RATIO = 0.05

# Geometry term used in composites when no subject was found.
GEOM_NEUTRAL = 0.5

# Rows are frequencies, columns are sample positions of the 32-point block.
_DCT_BASIS = np.cos(
    np.outer(np.arange(DCT_SIZE), 2 * np.arange(HASH_BLOCK_SIZE) + 1) * math.pi / (2 * HASH_BLOCK_SIZE)
)
_DCT_BASIS.setflags(write=False)

_MISMATCH_SCORES = QualityScores(
    ssim=0.0,
    ssim_diff=1.0,
    phash_distance=MAX_PHASH_DISTANCE,
    edge_score=0.0,
    geom_delta=1.0,
    overall_score=0.0,
)

Box = Tuple[int, int, int, int]


@dataclass(frozen=True)
class RasterFeatures:
    """Per-image intermediates reused across comparisons."""

    sample: RasterSample
    gray: np.ndarray
    edges: np.ndarray
    phash: int


def extract_features(sample: RasterSample) -> RasterFeatures:
    gray = to_grayscale(sample.pixels)
    return RasterFeatures(
        sample=sample,
        gray=gray,
        edges=sobel_magnitude(gray),
        phash=perceptual_hash(gray),
    )


def compute_ssim(gray_a: np.ndarray, gray_b: np.ndarray) -> float:
    """Whole-image SSIM of two equally sized grayscale buffers, clamped to [0, 1]."""

    gray_a = np.asarray(gray_a, dtype=np.float64)
    gray_b = np.asarray(gray_b, dtype=np.float64)
    if gray_a.shape != gray_b.shape:
        raise ValueError(f"SSIM needs equal shapes, got {gray_a.shape} and {gray_b.shape}.")
    mean_a = float(gray_a.mean())
    mean_b = float(gray_b.mean())
    var_a = float(np.mean(gray_a * gray_a)) - mean_a * mean_a
    var_b = float(np.mean(gray_b * gray_b)) - mean_b * mean_b
    cov = float(np.mean(gray_a * gray_b)) - mean_a * mean_b
    ssim = ((2 * mean_a * mean_b + SSIM_C1) * (2 * cov + SSIM_C2)) / (
        (mean_a * mean_a + mean_b * mean_b + SSIM_C1) * (var_a + var_b + SSIM_C2)
    )
    return max(0.0, min(1.0, ssim))


def perceptual_hash(gray: np.ndarray) -> int:
    """63-bit DCT fingerprint of a grayscale buffer.

    The image is sampled down to 32x32. An 8x8 DCT is taken, the DC term
    dropped, and each AC coefficient becomes 1 when above the AC mean.
    Bits are packed most significant first in row-major frequency order.
    """

    block = sample_nearest(gray, (HASH_BLOCK_SIZE, HASH_BLOCK_SIZE))
    coefficients = (_DCT_BASIS @ block @ _DCT_BASIS.T).ravel()[1:]
    bits = coefficients > coefficients.mean()
    packed = np.packbits(np.concatenate(([False], bits)))
    return int.from_bytes(packed.tobytes(), "big")


def hamming_distance(hash_a: int, hash_b: int) -> int:
    return bin(hash_a ^ hash_b).count("1")


def phash_distance(gray_a: np.ndarray, gray_b: np.ndarray) -> int:
    return hamming_distance(perceptual_hash(gray_a), perceptual_hash(gray_b))


def edge_quality(edges: np.ndarray) -> float:
    """Edge density score of a single image from its Sobel magnitudes."""

    present = int(np.count_nonzero(edges > EDGE_THRESHOLD))
    strong = int(np.count_nonzero(edges > STRONG_EDGE_THRESHOLD))
    edge_ratio = present / edges.size
    strong_ratio = strong / max(1, present)
    return min(1.0, edge_ratio * 10 * (0.5 + 0.5 * strong_ratio))


def subject_box(edges: np.ndarray) -> Optional[Box]:
    """Padded bounding box ``(x0, y0, x1, y1)`` of edge pixels, inclusive.

    Returns ``None`` when the image has no edges above the subject threshold.
    """

    mask = edges > SUBJECT_EDGE_THRESHOLD
    rows = np.flatnonzero(mask.any(axis=1))
    if rows.size == 0:
        return None
    cols = np.flatnonzero(mask.any(axis=0))
    height, width = edges.shape
    pad = int(min(width, height) * SUBJECT_PADDING_RATIO)
    return (
        max(0, int(cols[0]) - pad),
        max(0, int(rows[0]) - pad),
        min(width - 1, int(cols[-1]) + pad),
        min(height - 1, int(rows[-1]) + pad),
    )


def _box_area_center(box: Box) -> Tuple[int, float, float]:
    x0, y0, x1, y1 = box
    area = (x1 - x0 + 1) * (y1 - y0 + 1)
    return area, (x0 + x1) / 2.0, (y0 + y1) / 2.0


def geometry_delta(edges_a: np.ndarray, edges_b: np.ndarray) -> Optional[float]:
    """Normalized subject drift between two images, or ``None`` if indeterminate."""

    box_a = subject_box(edges_a)
    box_b = subject_box(edges_b)
    if box_a is None or box_b is None:
        return None
    area_a, cx_a, cy_a = _box_area_center(box_a)
    area_b, cx_b, cy_b = _box_area_center(box_b)
    height, width = edges_a.shape
    area_delta = abs(area_a - area_b) / max(area_a, area_b)
    center_delta = math.hypot(cx_a - cx_b, cy_a - cy_b) / math.hypot(width, height)
    return (area_delta + center_delta) / 2


def composite_score(
    ssim_diff: float,
    phash: int,
    edge_score: float,
    geom_delta: Optional[float],
    weights: ScoreWeights,
) -> float:
    normalized_phash = min(1.0, phash / 64)
    geom_term = GEOM_NEUTRAL if geom_delta is None else 1.0 - geom_delta
    return (
        weights.ssim * ssim_diff
        + weights.phash * normalized_phash
        + weights.edge * edge_score
        + weights.geom * geom_term
    )


def classify(scores: QualityScores, thresholds: QualityThresholds) -> QualityResult:
    """Apply the ordered threshold rules to a set of scores."""

    reasons: List[str] = []
    level = ErrorLevel.OK

    if scores.geom_delta is not None and scores.geom_delta > thresholds.geom_max_delta:
        reasons.append(
            f"Geometry changed too much: {scores.geom_delta * 100:.1f}% "
            f"(max {thresholds.geom_max_delta * 100:.1f}%)"
        )
        level = ErrorLevel.P0

    if scores.ssim_diff < thresholds.ssim_min_diff:
        reasons.append(
            f"Not different enough: {scores.ssim_diff * 100:.1f}% difference "
            f"(min {thresholds.ssim_min_diff * 100:.1f}%)"
        )
        if level is ErrorLevel.OK:
            level = ErrorLevel.P1

    if scores.phash_distance < thresholds.phash_min_dist:
        reasons.append(
            f"Perceptual hash too similar: {scores.phash_distance} distance "
            f"(min {thresholds.phash_min_dist})"
        )
        if level is ErrorLevel.OK:
            level = ErrorLevel.P1

    if scores.edge_score < thresholds.edge_min_score:
        reasons.append(
            f"Poor edge quality: {scores.edge_score * 100:.1f}% "
            f"(min {thresholds.edge_min_score * 100:.1f}%)"
        )
        if level is ErrorLevel.OK:
            level = ErrorLevel.P2

    return QualityResult(
        passed=level.is_acceptable,
        error_level=level,
        reasons=tuple(reasons),
        scores=scores,
    )


def dimension_mismatch_result(original: RasterSample, candidate: RasterSample) -> QualityResult:
    return QualityResult(
        passed=False,
        error_level=ErrorLevel.P1,
        reasons=(
            "Image dimensions do not match "
            f"({original.width}x{original.height} vs {candidate.width}x{candidate.height})",
        ),
        scores=_MISMATCH_SCORES,
    )


def difference_percentage(similarity: float) -> float:
    """Difference (0-100) implied by a similarity percentage."""

    return max(0.0, 100.0 - similarity)


def meets_minimum_difference(similarity: float, threshold: float = 70.0) -> bool:
    return similarity < threshold


class QualityScorer:
    """Scores candidates against an original with fixed weights and defaults."""

    def __init__(
        self,
        thresholds: Optional[QualityThresholds] = None,
        weights: Optional[ScoreWeights] = None,
        loader: Optional[RasterLoader] = None,
    ) -> None:
        self.thresholds = thresholds or QualityThresholds()
        self.weights = weights or ScoreWeights()
        self.loader = loader or RasterLoader()

    def prepare(self, ref: RasterRef) -> RasterFeatures:
        """Decode a reference and compute its reusable intermediates."""

        return extract_features(self.loader.load(ref))

    def compare(
        self,
        original: RasterFeatures,
        candidate: RasterFeatures,
        thresholds: Optional[QualityThresholds] = None,
    ) -> QualityResult:
        thresholds = thresholds or self.thresholds
        if original.sample.size != candidate.sample.size:
            return dimension_mismatch_result(original.sample, candidate.sample)

        ssim = compute_ssim(original.gray, candidate.gray)
        ssim_diff = 1.0 - ssim
        distance = hamming_distance(original.phash, candidate.phash)
        edge_score = edge_quality(candidate.edges)
        geom_delta = geometry_delta(original.edges, candidate.edges)
        if geom_delta is None:
            logger.debug("No subject edges found; geometry check skipped.")

        scores = QualityScores(
            ssim=ssim,
            ssim_diff=ssim_diff,
            phash_distance=distance,
            edge_score=edge_score,
            geom_delta=geom_delta,
            overall_score=composite_score(ssim_diff, distance, edge_score, geom_delta, self.weights),
        )
        return classify(scores, thresholds)

    def score_prepared(
        self,
        original: RasterFeatures,
        candidate: RasterRef,
        thresholds: Optional[QualityThresholds] = None,
    ) -> QualityResult:
        return self.compare(original, self.prepare(candidate), thresholds)

    def score(
        self,
        original: RasterRef,
        candidate: RasterRef,
        thresholds: Optional[QualityThresholds] = None,
    ) -> QualityResult:
        return self.score_prepared(self.prepare(original), candidate, thresholds)

    def score_many(
        self,
        original: RasterRef,
        candidates: Sequence[RasterRef],
        thresholds: Optional[QualityThresholds] = None,
    ) -> List[QualityResult]:
        prepared = self.prepare(original)
        return [self.score_prepared(prepared, candidate, thresholds) for candidate in candidates]


def score_image_quality(
    original: RasterRef,
    candidate: RasterRef,
    thresholds: Optional[QualityThresholds] = None,
    loader: Optional[RasterLoader] = None,
) -> QualityResult:
    """Score one candidate against its original."""

    return QualityScorer(thresholds=thresholds, loader=loader).score(original, candidate)


def score_multiple_images(
    original: RasterRef,
    candidates: Sequence[RasterRef],
    thresholds: Optional[QualityThresholds] = None,
    loader: Optional[RasterLoader] = None,
) -> List[QualityResult]:
    """Score several candidates against one original, preserving order."""

    return QualityScorer(thresholds=thresholds, loader=loader).score_many(original, candidates)
