"""AI grading of handwritten solutions using pydantic-ai."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic_ai import BinaryContent

from stepgrade.libs.config_loader import ConfigType, get_config
from stepgrade.libs.llm import create_agent
from .models import AIGradingResponse, AIQuestionResult, QuestionSpec, Rubric
from .rubric import score_ai_response
from .settings import GradingSettings

LOG = logging.getLogger(__name__)

FEEDBACK_PATTERN_TITLES = {
    'givenRequiredMapping': 'Given Data & Required Mapping',
    'conceptualMisconception': 'Conceptual Understanding & Misconceptions',
    'stepSequence': 'Step Sequence & Method Flow',
    'calculationMistake': 'Calculation Accuracy & Arithmetic',
    'unitsDimensions': 'Units & Dimensions',
    'commonPitfalls': 'Common Pitfalls',
    'answerPresentation': 'Final Answer Presentation',
    'nextSteps': 'How you can improve?',
}

IMAGE_MEDIA_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.webp': 'image/webp',
    '.gif': 'image/gif',
}


class AIGradingError(Exception):
    """The AI grading service failed or returned no usable result."""


def extract_json(text: str) -> str:
    """Return the outermost ``{...}`` block of a model reply, or the text unchanged."""
    try:
        json.loads(text)
        return text
    except (TypeError, ValueError):
        pass
    first_open = text.find('{')
    last_close = text.rfind('}')
    if first_open != -1 and last_close > first_open:
        return text[first_open:last_close + 1]
    return text


def create_ai_grading_agent(configs: ConfigType,
                            model: Optional[str] = None,
                            settings_dict: Optional[Dict[str, Any]] = None) -> Any:
    """Create a pydantic-ai Agent with the grading system prompt."""
    system_prompt = (
        "You are an expert academic grader. Analyze the student's handwritten "
        "solution, compare it against the question, and evaluate it strictly "
        "using the weighted rubric provided. If the image is unreadable or is "
        "not an attempt at the question, reply with feedback starting with "
        "VALIDATION_FAILED."
    )
    return create_agent(
        configs=configs,
        model=model,
        settings_dict=settings_dict,
        system_prompt=system_prompt,
    )


class AIGrader:
    """Grade AI-mode questions and score the result against the question rubric."""

    def __init__(self, configs: ConfigType,
                 model: Optional[str] = None, settings: Optional[Dict[str, Any]] = None):
        """
        Initialize the grader.

        Args:
            configs: Configuration dictionary (required)
            model: Model to use (overrides config value)
            settings: Pydantic AI settings dict (overrides config values)
        """
        self.configs = configs
        self.model_name = model
        self.settings = settings
        self.grading_settings = GradingSettings.from_config(configs)

        self.agent = create_ai_grading_agent(configs, model=model, settings_dict=settings)
        fallback_model = get_config("openai.fallback_model", configs, default=None)
        self.fallback_agent = None
        if fallback_model and fallback_model != model:
            self.fallback_agent = create_ai_grading_agent(
                configs, model=fallback_model, settings_dict=settings
            )

    def resolve_rubric(self, rubric: Optional[Rubric]) -> Rubric:
        if isinstance(rubric, dict) and rubric:
            return rubric
        return dict(self.grading_settings.default_rubric)

    def _build_prompt(self, question_text: str, rubric: Rubric, max_marks: float,
                      feedback_patterns: Optional[List[str]] = None) -> str:
        """Build the grading prompt for one question."""
        rubric_lines = "\n".join(
            f"- {category}: Weightage {weight}" for category, weight in rubric.items()
        )
        if feedback_patterns:
            focus = "\n".join(f"- {FEEDBACK_PATTERN_TITLES.get(p, p)}" for p in feedback_patterns)
        else:
            focus = "- General Step-by-Step Review"

        return f"""Analyze the student's handwritten solution.

QUESTION: "{question_text}"
MAX MARKS: {max_marks}
RUBRIC:
{rubric_lines}
FEEDBACK FOCUS:
{focus}

INSTRUCTIONS:
1. Score (0-100) for each rubric criterion.
2. Feedback as a markdown list. Use bold titles (e.g. "**Title:**").

OUTPUT JSON (Strictly JSON only):
{{ "breakdown": {{ "Criteria": number }}, "feedback": "markdown string" }}"""

    async def _run(self, agent: Any, prompt_parts: List[Any]) -> str:
        result = await agent.run(prompt_parts)
        if hasattr(result, 'output'):
            return str(result.output)
        if hasattr(result, 'data'):
            return str(result.data)
        return str(result)

    async def request_breakdown_async(self, question_text: str, rubric: Rubric, max_marks: float,
                                      image: Optional[bytes] = None,
                                      media_type: str = 'image/jpeg',
                                      feedback_patterns: Optional[List[str]] = None) -> AIGradingResponse:
        """
        Ask the model for a per-category breakdown.

        Raises:
            AIGradingError: If every configured model fails or no JSON comes back
        """
        prompt_parts: List[Any] = [self._build_prompt(question_text, rubric, max_marks, feedback_patterns)]
        if image is not None:
            prompt_parts.append(BinaryContent(data=image, media_type=media_type))

        try:
            response_text = await self._run(self.agent, prompt_parts)
        except Exception as e:  # pylint: disable=broad-except
            if self.fallback_agent is None:
                LOG.error("AI grading failed: %s", e)
                raise AIGradingError("AI Service Unavailable") from e
            LOG.warning("Primary model failed, switching to fallback: %s", e)
            try:
                response_text = await self._run(self.fallback_agent, prompt_parts)
            except Exception as fallback_error:  # pylint: disable=broad-except
                LOG.error("Fallback model also failed: %s", fallback_error)
                raise AIGradingError("AI Service Unavailable") from fallback_error

        try:
            data = json.loads(extract_json(response_text))
        except json.JSONDecodeError as e:
            LOG.error("AI did not return valid JSON. Raw response: %s", response_text[:500])
            raise AIGradingError("AI did not return valid JSON") from e
        if not isinstance(data, dict):
            raise AIGradingError("AI did not return a JSON object")

        breakdown = data.get('breakdown') or {}
        if not isinstance(breakdown, dict):
            breakdown = {}
        feedback = data.get('feedback') or ''
        return AIGradingResponse(breakdown=breakdown, feedback=str(feedback))

    async def grade_question_async(self, question: QuestionSpec,
                                   image: Optional[bytes] = None,
                                   media_type: str = 'image/jpeg') -> AIQuestionResult:
        """Grade one AI-mode question end to end."""
        rubric = self.resolve_rubric(question.ai_rubric)
        response = await self.request_breakdown_async(
            question.main_question_text,
            rubric,
            question.max_marks(),
            image=image,
            media_type=media_type,
            feedback_patterns=question.ai_feedback_patterns,
        )
        return score_ai_response(rubric, response, self.grading_settings)

    def grade_question(self, question: QuestionSpec, image: Optional[bytes] = None,
                       media_type: str = 'image/jpeg') -> AIQuestionResult:
        """Synchronous wrapper for grade_question_async."""
        return asyncio.run(self.grade_question_async(question, image, media_type))

    async def grade_image_file_async(self, question: QuestionSpec, image_path: Path) -> AIQuestionResult:
        """Grade a question from an image on disk."""
        media_type = IMAGE_MEDIA_TYPES.get(image_path.suffix.lower(), 'image/jpeg')
        return await self.grade_question_async(question, image_path.read_bytes(), media_type)
