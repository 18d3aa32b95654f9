"""Testing utilities for code that embeds the regeneration engine.

``product_shot`` builds deterministic synthetic images: a flat background
with a centered, high-contrast checkered "product". Changing only the
background yields a candidate that differs strongly from the original while
keeping the subject geometry intact.

``InMemoryLoader`` resolves string candidate ids without touching disk or
network, and ``RecordingGenerator`` is a scripted stand-in for the external
generation call.

Example:
    >>> from regen_quality import CandidateReranker, QualityScorer, RetryManager
    >>> original = product_shot(128, background=0)
    >>> loader = InMemoryLoader({"ok": product_shot(128, background=255)})
    >>> generator = RecordingGenerator([["ok"]])
    >>> manager = RetryManager(reranker=CandidateReranker(QualityScorer(loader=loader)))
    >>> manager.execute_with_retry(generator, original, 50).outcome
    <Outcome.ACCEPTED: 'accepted'>
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from regen_quality.adapters.loader import RasterLoader
from regen_quality.config import LoaderConfig
from regen_quality.types import RasterRef, RasterSample

SUBJECT_DARK = 96
SUBJECT_LIGHT = 224


def product_shot(
    size: int = 128,
    background: int = 0,
    subject_scale: float = 0.5,
) -> RasterSample:
    """Square RGBA image with a checkered subject on a flat background.

    Args:
        size: Width and height in pixels. Multiples of 64 keep the checker
            cells aligned with the perceptual-hash sampling grid.
        background: Gray level of everything outside the subject.
        subject_scale: Subject side length as a fraction of ``size``.
    """

    cell = max(1, size // 64)
    lo = int(size * (1.0 - subject_scale) / 2)
    hi = size - lo
    ys, xs = np.mgrid[0:size, 0:size]
    checker = np.where(((xs // cell) + (ys // cell)) % 2 == 1, SUBJECT_LIGHT, SUBJECT_DARK)
    inside = (xs >= lo) & (xs < hi) & (ys >= lo) & (ys < hi)
    gray = np.where(inside, checker, background).astype(np.uint8)
    pixels = np.dstack([gray, gray, gray, np.full_like(gray, 255)])
    return RasterSample.from_array(pixels)


def blank(size: int = 128, level: int = 128) -> RasterSample:
    """Uniform RGBA image with no edges at all."""

    return RasterSample.from_array(np.full((size, size, 4), level, dtype=np.uint8))


class InMemoryLoader(RasterLoader):
    """Loader that resolves registered string ids before falling back."""

    def __init__(self, images: Dict[str, RasterRef], config: Optional[LoaderConfig] = None) -> None:
        super().__init__(config)
        self.images = dict(images)

    def load(self, ref: RasterRef) -> RasterSample:
        if isinstance(ref, str) and ref in self.images:
            return super().load(self.images[ref])
        return super().load(ref)


Step = Union[Sequence[RasterRef], BaseException]


@dataclass
class RecordingGenerator:
    """Scripted generator returning (or raising) one step per call.

    The last step repeats once the script runs out.
    """

    steps: List[Step]
    calls: List[Dict[str, object]] = field(default_factory=list)

    def __call__(self, strength: float, prompt: str, k: int) -> Sequence[RasterRef]:
        self.calls.append({"strength": strength, "prompt": prompt, "k": k})
        step = self.steps[min(len(self.calls), len(self.steps)) - 1]
        if isinstance(step, BaseException):
            raise step
        return list(step)
