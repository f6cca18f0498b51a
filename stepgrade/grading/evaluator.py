"""Correctness checks for individual sub-question answers."""

import logging
import math
from typing import Any, Dict, FrozenSet, Mapping, Optional

from .models import McqAnswer, NumericalAnswer, QuestionSpec, SubQuestionSpec, TextAnswer, Verdict
from .settings import GradingSettings
from .units import convert_to_base, parse_unit_and_value

LOG = logging.getLogger(__name__)


def normalize_option_ids(answer: Any, *, split: bool = True) -> FrozenSet[str]:
    """
    Canonicalize an MCQ submission into a set of option ids.

    Accepts a single id, a list/tuple/set of ids, or (when ``split`` is
    true) a comma-joined string. Blank ids are dropped.
    """
    if answer is None:
        return frozenset()
    if isinstance(answer, str):
        parts = answer.split(',') if split else [answer]
    elif isinstance(answer, (list, tuple, set, frozenset)):
        parts = [part for part in answer if isinstance(part, (str, int)) and not isinstance(part, bool)]
    else:
        return frozenset()
    return frozenset(str(part).strip() for part in parts if str(part).strip())


def _numeric_text(answer: Any) -> Optional[str]:
    if isinstance(answer, str):
        return answer
    if isinstance(answer, (int, float)) and not isinstance(answer, bool):
        return repr(answer) if isinstance(answer, float) else str(answer)
    return None


def check_numerical(spec: NumericalAnswer, answer: Any, *, allow_unit_fallback: bool = True) -> bool:
    """Compare a numeric answer (with optional unit) against the expected value."""
    parsed = parse_unit_and_value(_numeric_text(answer))
    if parsed is None:
        LOG.debug("Unparsable numerical answer %r", answer)
        return False
    value, unit = parsed

    tolerance = abs(spec.tolerance_value / 100 * spec.correct_value)
    converted = convert_to_base(value, unit, spec.base_unit or 'unitless')
    if math.isnan(converted):
        if not allow_unit_fallback:
            return False
        LOG.debug("Unit %r not convertible to %r, comparing raw value", unit, spec.base_unit)
        converted = value

    return abs(converted - spec.correct_value) <= tolerance


def check_mcq(spec: McqAnswer, answer: Any) -> bool:
    """Single-select must match the sole correct option; multi-select needs set equality."""
    correct = frozenset(spec.correct_options)
    if spec.is_multi_correct:
        submitted = normalize_option_ids(answer)
        if not submitted:
            return False
        return len(submitted) == len(correct) and submitted <= correct

    submitted = normalize_option_ids(answer, split=False)
    if len(submitted) != 1 or not spec.correct_options:
        return False
    return next(iter(submitted)) == spec.correct_options[0]


def check_text(spec: TextAnswer, answer: Any) -> bool:
    """Match free text against the declared keywords using the configured logic."""
    if not isinstance(answer, str) or not answer.strip():
        return False

    keywords = [k.strip() for k in spec.keywords if isinstance(k, str) and k.strip()]
    if not keywords:
        return False

    text = answer if spec.case_sensitive else answer.lower()
    if not spec.case_sensitive:
        keywords = [k.lower() for k in keywords]

    if spec.match_logic == 'all':
        return all(k in text for k in keywords)
    if spec.match_logic == 'exact':
        return text.strip() in keywords
    return any(k in text for k in keywords)


def _is_blank(answer: Any) -> bool:
    if answer is None:
        return True
    if isinstance(answer, str):
        return not answer.strip()
    if isinstance(answer, (list, tuple, set, frozenset, dict)):
        return len(answer) == 0
    return False


def evaluate_sub_question(spec: SubQuestionSpec, answer: Any,
                          settings: Optional[GradingSettings] = None) -> bool:
    """
    Decide whether ``answer`` is correct for ``spec``.

    Never raises: missing, malformed or ungradable answers are incorrect.
    """
    if _is_blank(answer):
        return False
    settings = settings or GradingSettings()

    try:
        if spec.answer_type == 'numerical' and spec.numerical_answer is not None:
            return check_numerical(
                spec.numerical_answer, answer,
                allow_unit_fallback=settings.allow_unit_fallback,
            )
        if spec.answer_type == 'mcq' and spec.mcq_answer is not None:
            return check_mcq(spec.mcq_answer, answer)
        if spec.answer_type == 'text' and spec.text_answer is not None:
            return check_text(spec.text_answer, answer)
    except (TypeError, ValueError, AttributeError) as e:
        LOG.debug("Could not evaluate answer for %s: %s", spec.id, e)
        return False

    LOG.debug("Sub-question %s has no usable %s answer spec", spec.id, spec.answer_type)
    return False


def unwrap_answer(entry: Any) -> Any:
    """Accept both raw answers and persisted ``{"answer": ...}`` entries."""
    if isinstance(entry, dict) and 'answer' in entry:
        return entry['answer']
    return entry


def evaluate_question(question: QuestionSpec, answers: Mapping[str, Any],
                      settings: Optional[GradingSettings] = None) -> Dict[str, Verdict]:
    """Evaluate every sub-question of a system-graded question."""
    verdicts = {}
    for sub_question in question.sub_questions():
        is_correct = evaluate_sub_question(sub_question, unwrap_answer(answers.get(sub_question.id)), settings)
        verdicts[sub_question.id] = Verdict(
            is_correct=is_correct,
            score=float(sub_question.marks) if is_correct else 0.0,
        )
    return verdicts
