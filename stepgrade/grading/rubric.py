"""Reconcile an AI grader's category breakdown with an author-defined rubric."""

import logging
import math
import re
from typing import Any, Dict, Mapping, Optional

from .models import AIGradingResponse, AIQuestionResult, Rubric
from .settings import GradingSettings

LOG = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r'[^a-z0-9]')


def normalize_key(key: Any) -> str:
    """Lowercase a category name and strip everything but ASCII letters and digits."""
    return _NON_ALNUM.sub('', str(key).lower())


def coerce_score(value: Any) -> float:
    """Read a number out of a breakdown score or rubric weight ("80", "80%", 80.0)."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip('%').strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _lookup(norm_key: str, normalized: Dict[str, float]) -> Optional[float]:
    if norm_key in normalized:
        return normalized[norm_key]
    if not norm_key:
        return None
    # Fuzzy: the first breakdown key contained in, or containing, the rubric key.
    for key, score in normalized.items():
        if key and (key in norm_key or norm_key in key):
            LOG.debug("Fuzzy matched rubric category %r to breakdown key %r", norm_key, key)
            return score
    return None


def normalize_rubric_score(rubric: Optional[Rubric], breakdown: Optional[Mapping[str, Any]]) -> float:
    """
    Compute the weighted 0-100 aggregate of ``breakdown`` under ``rubric``.

    Category names are matched after normalization, then by substring
    containment. Rubric categories without a match score 0. Weights that do
    not sum to 100 are rescaled. If the rubric yields exactly 0 while the
    breakdown holds real scores, the plain mean of the breakdown is used
    instead. The unrounded result is clamped to [0, 100].
    """
    rubric = rubric or {}
    breakdown = breakdown or {}

    normalized: Dict[str, float] = {}
    for key, value in breakdown.items():
        normalized[normalize_key(key)] = coerce_score(value)

    weighted_score = 0.0
    total_weight = 0.0
    for category, weight in rubric.items():
        score = _lookup(normalize_key(category), normalized)
        if score is None:
            LOG.debug("No breakdown score for rubric category %r", category)
            score = 0.0
        weight = coerce_score(weight)
        weighted_score += (score / 100) * weight
        total_weight += weight

    final_score = weighted_score
    if total_weight > 0 and total_weight != 100:
        final_score = (weighted_score / total_weight) * 100

    raw_scores = [coerce_score(v) for v in breakdown.values()]
    if final_score == 0 and any(s != 0 for s in raw_scores):
        LOG.debug("Rubric matched nothing, falling back to the breakdown mean")
        final_score = sum(raw_scores) / len(raw_scores)

    return min(100.0, max(0.0, final_score))


def is_rejection(feedback: Any, sentinel: str = "VALIDATION_FAILED") -> bool:
    """True when the grader's feedback starts with the rejection sentinel."""
    if not isinstance(feedback, str):
        return False
    marker = normalize_key(sentinel)
    return bool(marker) and normalize_key(feedback).startswith(marker)


def score_ai_response(rubric: Optional[Rubric], response: AIGradingResponse,
                      settings: Optional[GradingSettings] = None) -> AIQuestionResult:
    """Turn an AI grading response into the aggregate result for one question."""
    settings = settings or GradingSettings()

    if is_rejection(response.feedback, settings.rejection_sentinel):
        LOG.warning("AI grader rejected the submission: %s", response.feedback)
        return AIQuestionResult(
            score=0.0,
            total_score=0,
            is_correct=False,
            feedback=response.feedback,
            breakdown=dict(response.breakdown),
            rejected=True,
        )

    score = normalize_rubric_score(rubric or settings.default_rubric, response.breakdown)
    return AIQuestionResult(
        score=score,
        total_score=round_half_up(score),
        is_correct=score >= settings.pass_threshold,
        feedback=response.feedback or "Grading complete.",
        breakdown=dict(response.breakdown),
    )
