"""Pydantic models for questions, answers and grading results."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

AnswerType = Literal['numerical', 'mcq', 'text']
GradingMode = Literal['system', 'ai']
MatchLogic = Literal['any', 'all', 'exact']
CurrencyType = Literal['spark', 'coin', 'gold', 'diamond', 'aiCredits']
# graded: scored normally; ungraded: AI question with no result yet;
# failed: the AI grading call failed outright.
ScoreStatus = Literal['graded', 'ungraded', 'failed']

# Rubric: category name -> weight. Breakdown: category name -> 0-100 score.
Rubric = Dict[str, Any]
AIBreakdown = Dict[str, Any]


class DocumentModel(BaseModel):
    """Base model accepting both snake_case and camelCase (persisted) field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NumericalAnswer(DocumentModel):
    """Expected numeric answer with a percentage tolerance."""
    correct_value: float = Field(description="Expected value expressed in the base unit")
    tolerance_value: float = Field(default=0, ge=0, description="Tolerance as a percentage of the correct value")
    base_unit: str = Field(default='', description="Unit the answer is evaluated in")


class McqOption(DocumentModel):
    id: str
    text: str = ''


class McqAnswer(DocumentModel):
    """Multiple choice answer specification."""
    options: List[McqOption] = Field(default_factory=list)
    correct_options: List[str] = Field(default_factory=list)
    is_multi_correct: bool = False
    shuffle_options: bool = False

    @model_validator(mode='after')
    def _check_options(self) -> 'McqAnswer':
        ids = [opt.id for opt in self.options]
        if len(ids) != len(set(ids)):
            raise ValueError("MCQ option ids must be unique")
        unknown = set(self.correct_options) - set(ids)
        if unknown:
            raise ValueError(f"Correct options not among the options: {sorted(unknown)}")
        return self


class TextAnswer(DocumentModel):
    """Keyword based free-text answer specification."""
    keywords: List[str] = Field(default_factory=list)
    match_logic: MatchLogic = 'any'
    case_sensitive: bool = False


class SubQuestionSpec(DocumentModel):
    """The smallest gradable unit of a question."""
    id: str
    question_text: str = ''
    answer_type: AnswerType
    marks: int = Field(gt=0)
    numerical_answer: Optional[NumericalAnswer] = None
    mcq_answer: Optional[McqAnswer] = None
    text_answer: Optional[TextAnswer] = None

    @model_validator(mode='before')
    @classmethod
    def _upgrade_legacy_keywords(cls, data: Any) -> Any:
        # Older documents keep text keywords directly on the sub-question.
        if isinstance(data, dict) and 'textAnswerKeywords' in data:
            data = dict(data)
            keywords = data.pop('textAnswerKeywords') or []
            answer_type = data.get('answerType', data.get('answer_type'))
            if answer_type == 'text' and not (data.get('textAnswer') or data.get('text_answer')):
                data['textAnswer'] = {'keywords': keywords}
        return data

    @model_validator(mode='after')
    def _check_answer_spec(self) -> 'SubQuestionSpec':
        populated = {
            name for name, value in (
                ('numerical', self.numerical_answer),
                ('mcq', self.mcq_answer),
                ('text', self.text_answer),
            ) if value is not None
        }
        if populated != {self.answer_type}:
            raise ValueError(
                f"Sub-question {self.id} of type '{self.answer_type}' must define exactly "
                f"the matching answer spec (found: {sorted(populated) or 'none'})"
            )
        return self


class SolutionStep(DocumentModel):
    id: str
    title: str = ''
    sub_questions: List[SubQuestionSpec] = Field(default_factory=list)


class QuestionSpec(DocumentModel):
    """A multi-step question as stored by the persistence layer."""
    id: str
    name: str = ''
    main_question_text: str = ''
    currency_type: CurrencyType = 'coin'
    grading_mode: GradingMode = 'system'
    solution_steps: List[SolutionStep] = Field(default_factory=list)
    ai_rubric: Optional[Rubric] = None
    ai_feedback_patterns: List[str] = Field(default_factory=list)

    def sub_questions(self) -> List[SubQuestionSpec]:
        """All sub-questions in step order."""
        return [sq for step in self.solution_steps for sq in step.sub_questions]

    def max_marks(self) -> float:
        return sum(sq.marks for sq in self.sub_questions())


class Verdict(BaseModel):
    """Correctness outcome for one sub-question."""
    model_config = ConfigDict(frozen=True)

    is_correct: bool
    score: Optional[float] = None


class AIGradingResponse(BaseModel):
    """Raw JSON returned by the external AI grader."""
    breakdown: AIBreakdown = Field(default_factory=dict)
    feedback: str = ''


class AIQuestionResult(BaseModel):
    """Aggregate score for one AI-graded question."""
    score: float = Field(description="Unrounded 0-100 aggregate, used for thresholds")
    total_score: int = Field(description="Aggregate rounded for presentation")
    is_correct: bool
    feedback: str = ''
    breakdown: AIBreakdown = Field(default_factory=dict)
    rejected: bool = Field(default=False, description="The grader refused the submitted content")


class QuestionScore(BaseModel):
    """Marks for one question. Non-graded questions earn 0 but keep their max marks."""
    question_id: str
    grading_mode: GradingMode
    currency_type: CurrencyType
    earned_marks: float
    max_marks: float
    sub_question_scores: Dict[str, float] = Field(default_factory=dict)
    status: ScoreStatus = 'graded'
    error_message: Optional[str] = None


class AttemptScore(BaseModel):
    """Totals and rewards for a worksheet attempt."""
    total_marks: float
    max_marks: float
    percentage: float
    rewards: Dict[str, float] = Field(
        default_factory=dict,
        description="Reward amount per currency; zero amounts are omitted"
    )
    questions: List[QuestionScore] = Field(default_factory=list)

    def pending_questions(self) -> List[str]:
        """Ids of questions whose marks are not final (ungraded or failed)."""
        return [q.question_id for q in self.questions if q.status != 'graded']

    def to_yaml_dict(self) -> dict:
        """Convert to dictionary suitable for YAML serialization."""
        questions = []
        for q in self.questions:
            entry = {
                'question_id': q.question_id,
                'grading_mode': q.grading_mode,
                'currency_type': q.currency_type,
                'status': q.status,
                'earned_marks': q.earned_marks,
                'max_marks': q.max_marks,
                'sub_question_scores': dict(q.sub_question_scores),
            }
            if q.error_message:
                entry['error_message'] = q.error_message
            questions.append(entry)

        pending = self.pending_questions()
        return {
            'total_marks': self.total_marks,
            'max_marks': self.max_marks,
            'percentage': round(self.percentage, 2),
            'rewards': dict(self.rewards),
            'complete': not pending,
            'pending_questions': pending,
            'questions': questions,
        }
