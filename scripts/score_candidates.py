import argparse
import json
import logging
import os
import sys
from typing import List, Optional

import cv2

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from regen_quality.config import EngineConfig, QualityThresholds, RerankConfig
from regen_quality.pipeline import RegenerationPipeline
from regen_quality.reranker import select_survivors
from regen_quality.types import RasterSample


def _load_rgba(path: str) -> RasterSample:
    image = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise FileNotFoundError(f"Unable to read image: {path}")
    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    elif image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    else:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
    return RasterSample.from_array(image)


def _build_config(args: argparse.Namespace) -> EngineConfig:
    thresholds = QualityThresholds(
        ssim_min_diff=args.ssim_min_diff,
        phash_min_dist=args.phash_min_dist,
        geom_max_delta=args.geom_max_delta,
        edge_min_score=args.edge_min_score,
    )
    return EngineConfig(thresholds=thresholds, rerank=RerankConfig(max_workers=args.workers))


def _report(path: str, candidate) -> dict:
    if candidate is None:
        return {"path": path, "error": "could not be scored"}
    result = candidate.quality_result
    scores = result.scores
    return {
        "path": path,
        "rank_score": round(candidate.score, 4),
        "error_level": result.error_level.value,
        "passed": result.passed,
        "reasons": list(result.reasons),
        "ssim": round(scores.ssim, 4),
        "phash_distance": scores.phash_distance,
        "edge_score": round(scores.edge_score, 4),
        "geom_delta": None if scores.geom_delta is None else round(scores.geom_delta, 4),
        "overall_score": round(scores.overall_score, 4),
    }


def _ranking(paths: List[str], scored) -> List[str]:
    paths_by_candidate = {id(candidate): path for path, candidate in zip(paths, scored) if candidate is not None}
    return [paths_by_candidate[id(candidate)] for candidate in select_survivors(scored)]


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Score and rerank generated candidates against an original")
    parser.add_argument("--original", required=True, help="Original image path")
    parser.add_argument("candidates", nargs="+", help="Candidate image paths")
    parser.add_argument("--ssim-min-diff", type=float, default=0.30)
    parser.add_argument("--phash-min-dist", type=int, default=12)
    parser.add_argument("--geom-max-delta", type=float, default=0.03)
    parser.add_argument("--edge-min-score", type=float, default=0.6)
    parser.add_argument("--workers", type=int, default=None, help="Scoring threads")
    parser.add_argument("--output", default=None, help="Optional JSON report path")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    pipeline = RegenerationPipeline(_build_config(args))
    original = _load_rgba(args.original)
    samples = [_load_rgba(path) for path in args.candidates]
    scored = pipeline.reranker.score_candidates(original, samples)

    report = [_report(path, candidate) for path, candidate in zip(args.candidates, scored)]
    ranking = _ranking(args.candidates, scored)
    payload = {
        "original": args.original,
        "candidates": report,
        "ranking": ranking,
    }

    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as handle:
            handle.write(text + "\n")
    print(text)


if __name__ == "__main__":
    main()
