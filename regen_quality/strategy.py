"""Retry strategy planning.

Pure decision functions: how many candidates to request, how to move the
generation strength after a failed attempt, and which prompt template to use
next. Strength lives on a 10-100 scale; planner adjustments are fractions of
that scale.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional

from regen_quality.config import RetryConfig
from regen_quality.types import ErrorLevel, PromptTemplate, RetryStrategy

MIN_STRENGTH = 10.0
MAX_STRENGTH = 100.0
STRENGTH_SCALE = 100.0


@dataclass(frozen=True)
class TemplateDetails:
    description: str
    emphasis: str


PROMPT_TEMPLATES: Dict[PromptTemplate, TemplateDetails] = {
    PromptTemplate.LIGHT_TEXTURE: TemplateDetails(
        description="Subtle adjustments with light texture variations",
        emphasis="minimal changes, preserve original style",
    ),
    PromptTemplate.NEW_BACKGROUND: TemplateDetails(
        description="Complete background replacement with new setting",
        emphasis="dramatic background change, maintain product identity",
    ),
    PromptTemplate.STRONG_LIGHTING: TemplateDetails(
        description="Dramatic lighting changes and shadow adjustments",
        emphasis="creative lighting, high contrast, professional photography style",
    ),
}


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def determine_risk_level(modification_level: float) -> RiskLevel:
    """Map a modification intensity (10-100) to a risk level."""

    if modification_level >= 75:
        return RiskLevel.HIGH
    if modification_level >= 50:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def get_k_samples(risk_level: RiskLevel, config: Optional[RetryConfig] = None) -> int:
    """Number of candidates to request per attempt at a given risk level."""

    config = config or RetryConfig()
    if risk_level is RiskLevel.HIGH:
        return config.k_samples_high_risk
    if risk_level is RiskLevel.MEDIUM:
        return math.ceil((config.k_samples_default + config.k_samples_high_risk) / 2)
    return config.k_samples_default


def adjust_strength_for_retry(current_strength: float, adjustment: float) -> float:
    """Apply a strength adjustment in scale points, clamped to [10, 100]."""

    return max(MIN_STRENGTH, min(MAX_STRENGTH, current_strength + adjustment))


def plan_retry_strategy(
    current_attempt: int,
    last_error: ErrorLevel,
    config: Optional[RetryConfig] = None,
) -> Optional[RetryStrategy]:
    """Decide the next attempt after a rejected one.

    Returns ``None`` once the retry budget is spent. Only P0 and P1 are
    retried; acceptable levels never reach the planner.
    """

    config = config or RetryConfig()
    if last_error.is_acceptable:
        raise ValueError(f"Acceptable level {last_error.value} does not need a retry.")
    if current_attempt >= config.max_retries:
        return None

    retry_number = current_attempt + 1
    if last_error is ErrorLevel.P0:
        return RetryStrategy(
            retry_number=retry_number,
            strength_adjustment=-config.strength_step,
            prompt_template=PromptTemplate.LIGHT_TEXTURE,
            reason="Critical error: geometry/shape changed",
        )
    if retry_number == 1:
        return RetryStrategy(
            retry_number=retry_number,
            strength_adjustment=config.strength_step,
            prompt_template=PromptTemplate.NEW_BACKGROUND,
            reason="Not different enough: increase strength",
        )
    return RetryStrategy(
        retry_number=retry_number,
        strength_adjustment=config.strength_step * 1.5,
        prompt_template=PromptTemplate.STRONG_LIGHTING,
        reason="Still not different: try dramatic lighting",
    )


def describe_modification(modification_level: float) -> str:
    if modification_level <= 25:
        return (
            "Subtle adjustments: slightly different lighting angle, minor color temperature "
            "shift in background only, subtle background blur or texture variation. Product "
            "appearance must be 95%+ identical."
        )
    if modification_level <= 50:
        return (
            "Moderate changes: different background color or pattern, adjusted lighting "
            "direction and intensity affecting shadows only. Product packaging design, colors, "
            "and shape must remain 90%+ identical."
        )
    if modification_level <= 75:
        return (
            "Significant changes: completely new background setting, dramatic lighting changes, "
            "slightly adjusted camera angle (max 15 degrees). Product itself must remain 85%+ "
            "recognizable."
        )
    return (
        "Major transformation: entirely different background scene, creative lighting setup, "
        "varied composition perspective. Product physical appearance must remain 80%+ "
        "identical: same container, same design elements, same proportions."
    )


def _tier(modification_level: float, low: str, medium: str, high: str) -> str:
    if modification_level < 50:
        return low
    if modification_level < 75:
        return medium
    return high


def build_prompt(
    template: PromptTemplate,
    description: str,
    modification_level: float,
    logo_text: str = "",
) -> str:
    """Render the generation prompt for a template and strength."""

    details = PROMPT_TEMPLATES[template]
    background = _tier(modification_level, "subtle", "moderate", "dramatic")
    lighting = _tier(modification_level, "minimal", "noticeable", "creative")
    if logo_text:
        logo_section = (
            "3. LOGO HANDLING:\n"
            "   - Remove ALL existing logos from product\n"
            f'   - Add "{logo_text}" as new professional logo\n'
            "   - Ensure high contrast and readability"
        )
    else:
        logo_section = (
            "3. LOGO REMOVAL:\n"
            "   - Remove ALL existing logos and brand text\n"
            "   - Keep product surface clean and generic"
        )
    return "\n".join(
        [
            "TASK: MINIMAL IMAGE EDITING - PRESERVE PRODUCT APPEARANCE",
            "",
            f"Template: {details.description}",
            f"Emphasis: {details.emphasis}",
            "",
            "1. PRODUCT PRESERVATION:",
            "   - Keep the exact same product container, design elements and proportions",
            "   - Only modify the background environment and lighting/shadows",
            "",
            "2. MODIFICATION FOCUS:",
            f"   - {details.emphasis}",
            f"   - Background changes allowed: {background}",
            f"   - Lighting adjustments allowed: {lighting}",
            f"   - {describe_modification(modification_level)}",
            "",
            logo_section,
            "",
            f'Reference description: "{description}"',
            "",
            f"OUTPUT = Same product + {details.emphasis}",
        ]
    )


@dataclass(frozen=True)
class ReviewStrategy:
    """Regeneration plan derived from human review feedback."""

    name: str
    strength_adjustment: float


_SHAPE_ERRORS = {"product_shape_changed", "product_color_changed", "product_size_wrong"}
_TEXT_ERRORS = {"text_missing", "logo_not_removed"}


def plan_review_regeneration(error_types: Iterable[str]) -> ReviewStrategy:
    """Pick a regeneration strategy from reviewer error tags.

    Product drift wins over everything else, then insufficient background
    change, then text problems.
    """

    errors = set(error_types)
    if errors & _SHAPE_ERRORS:
        return ReviewStrategy(name="conservative", strength_adjustment=-0.2)
    if "background_insufficient" in errors:
        return ReviewStrategy(name="aggressive", strength_adjustment=0.2)
    if errors & _TEXT_ERRORS:
        return ReviewStrategy(name="text_protection", strength_adjustment=0.0)
    return ReviewStrategy(name="balanced", strength_adjustment=0.0)
