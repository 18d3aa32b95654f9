import dataclasses
import unittest

from regen_quality.config import EngineConfig, QualityThresholds, RerankConfig, RetryConfig, ScoreWeights
from regen_quality.pipeline import RegenerationPipeline
from regen_quality.testing import RecordingGenerator, product_shot
from regen_quality.types import ErrorLevel, Outcome


class ConfigValidationTest(unittest.TestCase):
    def test_defaults(self) -> None:
        thresholds = QualityThresholds()
        retry = RetryConfig()

        self.assertEqual(thresholds.ssim_min_diff, 0.30)
        self.assertEqual(thresholds.phash_min_dist, 12)
        self.assertEqual(thresholds.geom_max_delta, 0.03)
        self.assertEqual(thresholds.edge_min_score, 0.6)
        self.assertEqual(retry.max_retries, 2)
        self.assertEqual(retry.strength_step, 0.15)

    def test_invalid_values_fail_at_construction(self) -> None:
        with self.assertRaises(ValueError):
            RetryConfig(max_retries=-1)
        with self.assertRaises(ValueError):
            RetryConfig(k_samples_default=5, k_samples_high_risk=4)
        with self.assertRaises(ValueError):
            QualityThresholds(geom_max_delta=-0.1)
        with self.assertRaises(ValueError):
            QualityThresholds(phash_min_dist=64)
        with self.assertRaises(ValueError):
            ScoreWeights(edge=-1.0)
        with self.assertRaises(ValueError):
            RerankConfig(max_workers=0)

    def test_configs_are_immutable(self) -> None:
        with self.assertRaises(dataclasses.FrozenInstanceError):
            QualityThresholds().ssim_min_diff = 0.5

    def test_engine_configs_do_not_share_instances(self) -> None:
        self.assertIsNot(EngineConfig().thresholds, EngineConfig().thresholds)


class RegenerationPipelineTest(unittest.TestCase):
    def test_wires_components_from_config(self) -> None:
        config = EngineConfig(retry=RetryConfig(max_retries=1))
        pipeline = RegenerationPipeline(config)

        self.assertIs(pipeline.scorer.loader, pipeline.loader)
        self.assertIs(pipeline.reranker.scorer, pipeline.scorer)
        self.assertIs(pipeline.retry_manager.reranker, pipeline.reranker)
        self.assertEqual(pipeline.retry_manager.config.max_retries, 1)

    def test_end_to_end_with_in_memory_candidates(self) -> None:
        original = product_shot(128, background=0)
        candidate = product_shot(128, background=255)
        generator = RecordingGenerator([[original], [candidate]])
        pipeline = RegenerationPipeline()

        result = pipeline(generator, original, 60, description="ceramic mug")

        self.assertEqual(result.outcome, Outcome.ACCEPTED)
        self.assertEqual(result.url, "candidate_0")
        self.assertEqual(result.retry_count, 1)
        self.assertEqual(result.generation_mode, "new_background")
        self.assertIn("ceramic mug", generator.calls[0]["prompt"])

    def test_score_and_rerank_helpers(self) -> None:
        original = product_shot(128, background=0)
        candidates = [original, product_shot(128, background=255)]
        pipeline = RegenerationPipeline()

        self.assertEqual(pipeline.score(original, candidates[1]).error_level, ErrorLevel.OK)
        self.assertEqual(
            [r.error_level for r in pipeline.score_many(original, candidates)],
            [ErrorLevel.P1, ErrorLevel.OK],
        )
        self.assertEqual([c.id for c in pipeline.rerank(original, candidates)], ["candidate_1"])


if __name__ == "__main__":
    unittest.main()
