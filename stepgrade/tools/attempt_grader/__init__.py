"""Grade a full worksheet attempt, including AI-graded questions."""

from .batch_ai_grader import BatchAIGrader, BatchAIResult

__all__ = [
    'BatchAIGrader',
    'BatchAIResult',
]
