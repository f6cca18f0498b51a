"""Answer evaluation and grading engine."""

from .models import (
    AIGradingResponse, AIQuestionResult, AttemptScore, McqAnswer, McqOption,
    NumericalAnswer, QuestionScore, QuestionSpec, SolutionStep, SubQuestionSpec,
    TextAnswer, Verdict,
)
from .settings import GradingSettings
from .units import convert_to_base, parse_unit_and_value
from .evaluator import evaluate_question, evaluate_sub_question, normalize_option_ids
from .rubric import normalize_key, normalize_rubric_score, score_ai_response
from .scorer import calculate_rewards, grade_attempt, score_attempt, score_question
from .ai_grader import AIGrader, AIGradingError

__all__ = [
    'AIGradingResponse',
    'AIQuestionResult',
    'AttemptScore',
    'McqAnswer',
    'McqOption',
    'NumericalAnswer',
    'QuestionScore',
    'QuestionSpec',
    'SolutionStep',
    'SubQuestionSpec',
    'TextAnswer',
    'Verdict',
    'GradingSettings',
    'convert_to_base',
    'parse_unit_and_value',
    'evaluate_question',
    'evaluate_sub_question',
    'normalize_option_ids',
    'normalize_key',
    'normalize_rubric_score',
    'score_ai_response',
    'calculate_rewards',
    'grade_attempt',
    'score_attempt',
    'score_question',
    'AIGrader',
    'AIGradingError',
]
