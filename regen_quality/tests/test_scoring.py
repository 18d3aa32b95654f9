import unittest

import numpy as np

from regen_quality.config import QualityThresholds, ScoreWeights
from regen_quality.scoring import (
    GEOM_NEUTRAL,
    MAX_PHASH_DISTANCE,
    QualityScorer,
    classify,
    composite_score,
    compute_ssim,
    difference_percentage,
    edge_quality,
    geometry_delta,
    hamming_distance,
    meets_minimum_difference,
    perceptual_hash,
    score_image_quality,
    score_multiple_images,
    subject_box,
)
from regen_quality.testing import blank, product_shot
from regen_quality.types import ErrorLevel, QualityScores, RasterSample
from regen_quality.utils.vision import sobel_magnitude, to_grayscale

_LENIENT = QualityThresholds(ssim_min_diff=0.0, phash_min_dist=0)


def _scores(**overrides) -> QualityScores:
    values = dict(
        ssim=0.5,
        ssim_diff=0.5,
        phash_distance=30,
        edge_score=0.9,
        geom_delta=0.0,
        overall_score=0.7,
    )
    values.update(overrides)
    return QualityScores(**values)


class MetricTest(unittest.TestCase):
    def test_ssim_is_symmetric(self) -> None:
        rng = np.random.default_rng(7)
        a = rng.integers(0, 256, size=(40, 30)).astype("float64")
        b = rng.integers(0, 256, size=(40, 30)).astype("float64")

        self.assertAlmostEqual(compute_ssim(a, b), compute_ssim(b, a), places=12)

    def test_ssim_accepts_uint8_buffers(self) -> None:
        rng = np.random.default_rng(3)
        a = rng.integers(0, 256, size=(64, 64)).astype(np.uint8)
        b = np.clip(a.astype(np.int16) + 20, 0, 255).astype(np.uint8)

        expected = compute_ssim(a.astype("float64"), b.astype("float64"))

        self.assertLess(expected, 1.0)
        self.assertAlmostEqual(compute_ssim(a, b), expected, places=12)

    def test_ssim_rejects_shape_mismatch(self) -> None:
        with self.assertRaises(ValueError):
            compute_ssim(np.zeros((4, 4)), np.zeros((4, 5)))

    def test_ssim_clamps_anticorrelated_images_to_zero(self) -> None:
        gray = to_grayscale(product_shot(64).pixels)

        self.assertEqual(compute_ssim(gray, 255.0 - gray), 0.0)

    def test_perceptual_hash_fits_in_63_bits(self) -> None:
        gray = to_grayscale(product_shot(128).pixels)

        value = perceptual_hash(gray)

        self.assertGreaterEqual(value, 0)
        self.assertLess(value, 1 << 63)
        self.assertEqual(value, perceptual_hash(gray.copy()))

    def test_hamming_distance(self) -> None:
        self.assertEqual(hamming_distance(0b1011, 0b0001), 2)
        self.assertEqual(hamming_distance(5, 5), 0)

    def test_edge_quality_of_blank_image_is_zero(self) -> None:
        edges = sobel_magnitude(np.full((16, 16), 200.0))

        self.assertEqual(edge_quality(edges), 0.0)

    def test_edge_quality_saturates_on_dense_edges(self) -> None:
        edges = sobel_magnitude(to_grayscale(product_shot(128).pixels))

        self.assertEqual(edge_quality(edges), 1.0)

    def test_subject_box_is_padded_and_clipped(self) -> None:
        edges = sobel_magnitude(to_grayscale(product_shot(128).pixels))

        # Subject spans [32, 96); edges reach one pixel outside; padding is 6.
        self.assertEqual(subject_box(edges), (25, 25, 102, 102))
        self.assertIsNone(subject_box(np.zeros((8, 8))))

    def test_geometry_delta_detects_shrunken_subject(self) -> None:
        edges_a = sobel_magnitude(to_grayscale(product_shot(128).pixels))
        edges_b = sobel_magnitude(to_grayscale(product_shot(128, 255, subject_scale=0.25).pixels))

        delta = geometry_delta(edges_a, edges_b)

        self.assertGreater(delta, 0.3)
        self.assertEqual(geometry_delta(edges_a, edges_a), 0.0)

    def test_geometry_delta_is_indeterminate_without_edges(self) -> None:
        edges = sobel_magnitude(to_grayscale(product_shot(64).pixels))

        self.assertIsNone(geometry_delta(edges, np.zeros_like(edges)))

    def test_composite_uses_neutral_geometry_when_indeterminate(self) -> None:
        weights = ScoreWeights()

        score = composite_score(0.0, 0, 0.0, None, weights)

        self.assertAlmostEqual(score, weights.geom * GEOM_NEUTRAL)

    def test_difference_helpers(self) -> None:
        self.assertEqual(difference_percentage(65.0), 35.0)
        self.assertEqual(difference_percentage(120.0), 0.0)
        self.assertTrue(meets_minimum_difference(60.0))
        self.assertFalse(meets_minimum_difference(70.0))


class ClassifyTest(unittest.TestCase):
    def test_geometry_outranks_everything_and_all_reasons_are_kept(self) -> None:
        scores = _scores(geom_delta=0.2, ssim_diff=0.1, phash_distance=3, edge_score=0.1)

        result = classify(scores, QualityThresholds())

        self.assertEqual(result.error_level, ErrorLevel.P0)
        self.assertFalse(result.passed)
        self.assertEqual(len(result.reasons), 4)
        self.assertTrue(result.reasons[0].startswith("Geometry changed too much"))
        self.assertTrue(result.reasons[1].startswith("Not different enough"))
        self.assertTrue(result.reasons[2].startswith("Perceptual hash too similar"))
        self.assertTrue(result.reasons[3].startswith("Poor edge quality"))

    def test_insufficient_difference_is_p1(self) -> None:
        result = classify(_scores(phash_distance=4, edge_score=0.2), QualityThresholds())

        self.assertEqual(result.error_level, ErrorLevel.P1)
        self.assertEqual(len(result.reasons), 2)

    def test_edge_only_is_p2_and_passes(self) -> None:
        result = classify(_scores(edge_score=0.2), QualityThresholds())

        self.assertEqual(result.error_level, ErrorLevel.P2)
        self.assertTrue(result.passed)

    def test_clean_scores_are_ok(self) -> None:
        result = classify(_scores(), QualityThresholds())

        self.assertEqual(result.error_level, ErrorLevel.OK)
        self.assertEqual(result.reasons, ())

    def test_indeterminate_geometry_never_triggers_p0(self) -> None:
        result = classify(_scores(geom_delta=None), QualityThresholds())

        self.assertEqual(result.error_level, ErrorLevel.OK)

    def test_raising_geometry_limit_never_increases_severity(self) -> None:
        original = product_shot(128)
        candidate = product_shot(128, 255, subject_scale=0.25)
        scorer = QualityScorer()

        strict = scorer.score(original, candidate, QualityThresholds(geom_max_delta=0.03))
        relaxed = scorer.score(original, candidate, QualityThresholds(geom_max_delta=0.9))

        self.assertEqual(strict.error_level, ErrorLevel.P0)
        self.assertNotEqual(relaxed.error_level, ErrorLevel.P0)
        self.assertLessEqual(relaxed.error_level.severity, strict.error_level.severity)


class ScoreImageQualityTest(unittest.TestCase):
    def test_identity(self) -> None:
        image = product_shot(128)

        result = score_image_quality(image, image)
        scores = result.scores

        self.assertAlmostEqual(scores.ssim, 1.0, delta=1e-6)
        self.assertAlmostEqual(scores.ssim_diff, 0.0, delta=1e-6)
        self.assertEqual(scores.phash_distance, 0)
        self.assertEqual(scores.geom_delta, 0.0)
        # An unchanged candidate is "not different enough" by default.
        self.assertEqual(result.error_level, ErrorLevel.P1)
        self.assertEqual(score_image_quality(image, image, _LENIENT).error_level, ErrorLevel.OK)

    def test_dimension_mismatch_is_a_result_not_an_error(self) -> None:
        small = RasterSample.from_array(np.zeros((100, 100, 4), dtype=np.uint8))
        large = RasterSample.from_array(np.zeros((200, 200, 4), dtype=np.uint8))

        result = score_image_quality(small, large)

        self.assertEqual(result.error_level, ErrorLevel.P1)
        self.assertFalse(result.passed)
        self.assertEqual(len(result.reasons), 1)
        self.assertIn("dimensions do not match", result.reasons[0])
        self.assertEqual(result.scores.phash_distance, MAX_PHASH_DISTANCE)
        self.assertEqual(result.scores.overall_score, 0.0)

    def test_background_swap_keeps_geometry_and_passes(self) -> None:
        original = product_shot(512, background=0)
        candidate = product_shot(512, background=255)

        result = score_image_quality(original, candidate)
        scores = result.scores

        self.assertAlmostEqual(scores.geom_delta, 0.0, places=6)
        self.assertGreater(scores.ssim_diff, QualityThresholds().ssim_min_diff)
        self.assertGreaterEqual(scores.phash_distance, QualityThresholds().phash_min_dist)
        self.assertGreaterEqual(scores.edge_score, QualityThresholds().edge_min_score)
        self.assertEqual(result.error_level, ErrorLevel.OK)
        self.assertTrue(result.passed)

    def test_blank_images_skip_geometry(self) -> None:
        result = score_image_quality(blank(64), product_shot(64, 255))

        self.assertIsNone(result.scores.geom_delta)
        self.assertNotEqual(result.error_level, ErrorLevel.P0)
        self.assertFalse(any(reason.startswith("Geometry") for reason in result.reasons))

    def test_score_multiple_images_preserves_order(self) -> None:
        original = product_shot(128)
        candidates = [product_shot(128, 255), original, product_shot(128, 255, subject_scale=0.25)]

        results = score_multiple_images(original, candidates)

        self.assertEqual(
            [r.error_level for r in results],
            [ErrorLevel.OK, ErrorLevel.P1, ErrorLevel.P0],
        )

    def test_scorer_uses_bound_weights(self) -> None:
        original = product_shot(128)
        candidate = product_shot(128, 255)
        weights = ScoreWeights(ssim=1.0, phash=0.0, edge=0.0, geom=0.0)

        result = QualityScorer(weights=weights).score(original, candidate)

        self.assertAlmostEqual(result.scores.overall_score, result.scores.ssim_diff)


if __name__ == "__main__":
    unittest.main()
