"""Shared type definitions for the regeneration quality engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

import numpy as np
from PIL import Image


class ErrorLevel(str, Enum):
    """Severity of a scored candidate, from critical to accepted."""

    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    OK = "OK"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @property
    def is_acceptable(self) -> bool:
        return self in (ErrorLevel.OK, ErrorLevel.P2)


_SEVERITY = {ErrorLevel.P0: 3, ErrorLevel.P1: 2, ErrorLevel.P2: 1, ErrorLevel.OK: 0}


class PromptTemplate(str, Enum):
    """Generation prompt styles the retry planner can switch between."""

    LIGHT_TEXTURE = "light_texture"
    NEW_BACKGROUND = "new_background"
    STRONG_LIGHTING = "strong_lighting"


class Outcome(str, Enum):
    """States of one orchestration run.

    ``FAILED`` is never returned; it is raised as ``RegenerationError``.
    """

    ATTEMPTING = "attempting"
    ACCEPTED = "accepted"
    EXHAUSTED_BEST_EFFORT = "exhausted_best_effort"
    FAILED = "failed"


@dataclass(frozen=True)
class RasterSample:
    """A decoded image with one byte per channel."""

    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.ndim not in (2, 3):
            raise ValueError(f"Expected HxW or HxWxC pixels, got shape {self.pixels.shape}.")
        if self.pixels.shape[:2] != (self.height, self.width):
            raise ValueError(
                f"Pixel buffer shape {self.pixels.shape[:2]} does not match "
                f"{self.height}x{self.width}."
            )
        if self.pixels.ndim == 3 and self.pixels.shape[-1] not in (1, 3, 4):
            raise ValueError(f"Unsupported channel count: {self.pixels.shape[-1]}")

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "RasterSample":
        pixels = np.asarray(pixels)
        if pixels.dtype != np.uint8:
            pixels = np.clip(pixels, 0, 255).astype(np.uint8)
        return cls(width=int(pixels.shape[1]), height=int(pixels.shape[0]), pixels=pixels)

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height


RasterRef = Union[RasterSample, np.ndarray, Image.Image, bytes, str, os.PathLike]


@dataclass(frozen=True)
class QualityScores:
    """Scores from comparing one candidate with its original.

    ``geom_delta`` is ``None`` when no subject could be located in either
    image, so geometry gives no signal either way.
    """

    ssim: float
    ssim_diff: float
    phash_distance: int
    edge_score: float
    geom_delta: Optional[float]
    overall_score: float


@dataclass(frozen=True)
class QualityResult:
    """Classification of one candidate against the active thresholds."""

    passed: bool
    error_level: ErrorLevel
    reasons: Tuple[str, ...]
    scores: QualityScores


@dataclass(frozen=True)
class RetryStrategy:
    """Parameters for the next generation attempt."""

    retry_number: int
    strength_adjustment: float
    prompt_template: PromptTemplate
    reason: str


@dataclass(frozen=True)
class RankedCandidate:
    """A scored candidate with its rerank score."""

    id: str
    score: float
    quality_result: QualityResult


@dataclass(frozen=True)
class GenerationResult:
    """Final output of one regeneration run."""

    url: str
    original_url: str
    similarity: float
    difference: float
    ssim: float
    phash_distance: int
    edge_score: float
    geom_delta: Optional[float]
    quality_score: float
    error_level: ErrorLevel
    error_reasons: Tuple[str, ...]
    strength_used: float
    retry_count: int
    generation_mode: str
    outcome: Outcome
