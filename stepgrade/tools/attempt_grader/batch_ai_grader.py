"""Grade the AI-mode questions of a worksheet attempt concurrently."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from tqdm.asyncio import tqdm

from stepgrade.libs.config_loader import ConfigType, get_config
from stepgrade.grading.ai_grader import IMAGE_MEDIA_TYPES, AIGrader, AIGradingError
from stepgrade.grading.models import AIQuestionResult, QuestionSpec

LOG = logging.getLogger(__name__)


@dataclass
class BatchAIResult:
    """Outcome of grading one AI-mode question."""
    question_id: str
    success: bool
    result: Optional[AIQuestionResult] = None
    error_message: Optional[str] = None
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        data: Dict[str, Any] = {
            'question_id': self.question_id,
            'success': self.success,
            'timestamp': self.timestamp,
        }
        if self.error_message:
            data['error_message'] = self.error_message
        if self.result:
            data['total_score'] = self.result.total_score
            data['is_correct'] = self.result.is_correct
            data['rejected'] = self.result.rejected
            data['breakdown'] = dict(self.result.breakdown)
            data['feedback'] = self.result.feedback
        return data


def find_question_images(images_dir: Path, questions: Sequence[QuestionSpec]) -> Dict[str, Path]:
    """Map AI-mode question ids to ``<question_id>.<image ext>`` files in ``images_dir``."""
    images: Dict[str, Path] = {}
    wanted = {q.id for q in questions if q.grading_mode == 'ai'}
    for item in sorted(images_dir.iterdir()):
        if item.is_file() and item.suffix.lower() in IMAGE_MEDIA_TYPES and item.stem in wanted:
            if item.stem in images:
                LOG.warning("Multiple images for question %s, using %s", item.stem, images[item.stem].name)
                continue
            images[item.stem] = item
    return images


class BatchAIGrader:
    """Grade several AI-mode questions in parallel using async/await."""

    def __init__(self, configs: ConfigType, model: Optional[str] = None,
                 settings: Optional[Dict[str, Any]] = None, max_concurrent: Optional[int] = None):
        """
        Initialize the batch grader.

        Args:
            configs: Configuration dictionary
            model: Optional model override
            settings: Optional pydantic-ai settings override
            max_concurrent: Maximum number of concurrent grading calls (overrides config)
        """
        self.configs = configs
        self.model = model
        self.settings = settings

        if max_concurrent is not None:
            self.max_concurrent = max_concurrent
        else:
            self.max_concurrent = get_config("tools.max_threads", configs, default=4)

        LOG.info("BatchAIGrader initialized with max_concurrent=%s", self.max_concurrent)

    async def _grade_single_question_async(self, grader: AIGrader, question: QuestionSpec,
                                           image_path: Path) -> BatchAIResult:
        LOG.debug("Grading question %s from %s", question.id, image_path.name)
        try:
            result = await grader.grade_image_file_async(question, image_path)
        except (AIGradingError, OSError) as e:
            LOG.error("Error grading question %s: %s", question.id, e)
            return BatchAIResult(question_id=question.id, success=False, error_message=str(e))
        return BatchAIResult(question_id=question.id, success=True, result=result)

    async def grade_questions_async(self, questions: Sequence[QuestionSpec], images: Dict[str, Path],
                                    continue_on_error: bool = True) -> List[BatchAIResult]:
        """
        Grade every AI-mode question that has an image.

        Args:
            questions: Questions of the worksheet
            images: Question id -> answer image
            continue_on_error: Keep going when a question fails to grade

        Raises:
            AIGradingError: On the first failure when continue_on_error is False
        """
        targets = [q for q in questions if q.grading_mode == 'ai' and q.id in images]
        if not targets:
            LOG.info("No AI-graded questions with answer images")
            return []

        grader = AIGrader(configs=self.configs, model=self.model, settings=self.settings)
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def grade_with_semaphore(question: QuestionSpec) -> BatchAIResult:
            async with semaphore:
                return await self._grade_single_question_async(grader, question, images[question.id])

        tasks = [asyncio.ensure_future(grade_with_semaphore(q)) for q in targets]

        results = []
        for coro in tqdm.as_completed(tasks, total=len(tasks), desc="Grading AI questions"):
            batch_result = await coro
            results.append(batch_result)
            if batch_result.success:
                LOG.debug("Completed: %s - %s", batch_result.question_id, batch_result.result.total_score)
                continue

            LOG.warning("Failed: %s - %s", batch_result.question_id, batch_result.error_message)
            if not continue_on_error:
                for task in tasks:
                    if not task.done():
                        task.cancel()
                raise AIGradingError(
                    f"Grading failed for question {batch_result.question_id}: {batch_result.error_message}"
                )

        results.sort(key=lambda r: r.question_id)
        return results

    def grade_questions(self, questions: Sequence[QuestionSpec], images: Dict[str, Path],
                        continue_on_error: bool = True) -> List[BatchAIResult]:
        """Synchronous wrapper for grade_questions_async."""
        return asyncio.run(self.grade_questions_async(questions, images, continue_on_error))
