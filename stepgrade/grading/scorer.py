"""Aggregate sub-question verdicts and AI scores into attempt totals and rewards."""

import logging
import math
from collections import defaultdict
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from .evaluator import evaluate_question
from .models import AIQuestionResult, AttemptScore, QuestionScore, QuestionSpec, Verdict
from .settings import GradingSettings

LOG = logging.getLogger(__name__)

# Currency that pays its rewards in another currency at a reduced rate.
SPARK_CURRENCY = 'spark'
SPARK_PAYOUT_CURRENCY = 'coin'

AIScore = Union[AIQuestionResult, float, int]


def _is_correct(verdict: Any) -> bool:
    if isinstance(verdict, Verdict):
        return verdict.is_correct
    if isinstance(verdict, Mapping):
        return bool(verdict.get('is_correct', verdict.get('isCorrect', False)))
    return verdict is True


def _aggregate_of(result: AIScore) -> float:
    if isinstance(result, AIQuestionResult):
        return 0.0 if result.rejected else result.score
    value = float(result)
    if not math.isfinite(value):
        return 0.0
    return min(100.0, max(0.0, value))


def score_question(question: QuestionSpec,
                   verdicts: Mapping[str, Any],
                   ai_result: Optional[AIScore] = None,
                   error_message: Optional[str] = None) -> QuestionScore:
    """
    Earned and maximum marks for a single question.

    An AI question without a result earns nothing and is marked ``ungraded``,
    or ``failed`` when ``error_message`` says why the grading call failed.
    Its max marks still count toward the attempt.
    """
    sub_questions = question.sub_questions()
    max_marks = float(sum(sq.marks for sq in sub_questions))
    sub_scores: Dict[str, float] = {}
    status = 'graded'

    if question.grading_mode == 'ai' and ai_result is None:
        status = 'failed' if error_message else 'ungraded'
        LOG.debug("AI question %s is %s", question.id, status)
        earned = 0.0
        sub_scores = {sq.id: 0.0 for sq in sub_questions}
    elif question.grading_mode == 'ai':
        earned = (_aggregate_of(ai_result) / 100) * max_marks
        for sq in sub_questions:
            weight = sq.marks / max_marks if max_marks > 0 else 0.0
            sub_scores[sq.id] = earned * weight
    else:
        earned = 0.0
        for sq in sub_questions:
            marks = float(sq.marks) if _is_correct(verdicts.get(sq.id)) else 0.0
            sub_scores[sq.id] = marks
            earned += marks

    return QuestionScore(
        question_id=question.id,
        grading_mode=question.grading_mode,
        currency_type=question.currency_type,
        earned_marks=earned,
        max_marks=max_marks,
        sub_question_scores=sub_scores,
        status=status,
        error_message=error_message if status == 'failed' else None,
    )


def calculate_rewards(question_scores: Sequence[QuestionScore],
                      settings: Optional[GradingSettings] = None) -> Dict[str, float]:
    """
    Sum rewards per currency.

    Spark questions pay ``floor(earned * spark_coin_rate)`` coins; every other
    currency pays its earned marks 1:1. Currencies totalling 0 are omitted.
    """
    settings = settings or GradingSettings()
    totals: Dict[str, float] = defaultdict(float)
    for qs in question_scores:
        if qs.earned_marks <= 0:
            continue
        if qs.currency_type == SPARK_CURRENCY:
            totals[SPARK_PAYOUT_CURRENCY] += math.floor(qs.earned_marks * settings.spark_coin_rate)
        else:
            totals[qs.currency_type] += qs.earned_marks
    return {currency: amount for currency, amount in totals.items() if amount > 0}


def score_attempt(questions: Sequence[QuestionSpec],
                  verdicts: Mapping[str, Any],
                  ai_results: Optional[Mapping[str, AIScore]] = None,
                  settings: Optional[GradingSettings] = None,
                  ai_errors: Optional[Mapping[str, str]] = None) -> AttemptScore:
    """
    Total marks, percentage and rewards for a worksheet attempt.

    ``verdicts`` maps sub-question id to a Verdict (or ``{"isCorrect": ...}``)
    for system-graded questions; ``ai_results`` maps question id to an
    AIQuestionResult or a bare 0-100 aggregate for AI-graded questions;
    ``ai_errors`` maps question id to the reason its AI grading call failed.
    Pure: repeated calls with the same inputs give the same result.
    """
    ai_results = ai_results or {}
    ai_errors = ai_errors or {}
    question_scores = [
        score_question(question, verdicts, ai_results.get(question.id), ai_errors.get(question.id))
        for question in questions
    ]
    total = sum(qs.earned_marks for qs in question_scores)
    max_marks = sum(qs.max_marks for qs in question_scores)
    percentage = (total / max_marks) * 100 if max_marks > 0 else 0.0
    LOG.debug("Scored attempt: %s / %s", total, max_marks)
    pending = [qs.question_id for qs in question_scores if qs.status != 'graded']
    if pending:
        LOG.warning("Attempt has questions without a final AI score: %s", ", ".join(pending))

    return AttemptScore(
        total_marks=total,
        max_marks=max_marks,
        percentage=percentage,
        rewards=calculate_rewards(question_scores, settings),
        questions=question_scores,
    )


def grade_attempt(questions: Sequence[QuestionSpec],
                  answers: Mapping[str, Any],
                  ai_results: Optional[Mapping[str, AIScore]] = None,
                  settings: Optional[GradingSettings] = None,
                  ai_errors: Optional[Mapping[str, str]] = None) -> AttemptScore:
    """Evaluate raw answers for system-graded questions, then score the attempt."""
    verdicts: Dict[str, Verdict] = {}
    for question in questions:
        if question.grading_mode == 'system':
            verdicts.update(evaluate_question(question, answers, settings))
    return score_attempt(questions, verdicts, ai_results, settings, ai_errors)
