"""Adapters for external collaborators: image decoding and generation."""

from regen_quality.adapters.generator import CandidateGenerator, call_generator
from regen_quality.adapters.loader import RasterLoadError, RasterLoader, candidate_id

__all__ = [
    "CandidateGenerator",
    "call_generator",
    "RasterLoadError",
    "RasterLoader",
    "candidate_id",
]
