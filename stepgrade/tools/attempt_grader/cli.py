#!/usr/bin/env python3
"""Command-line interface for grading a worksheet attempt."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from stepgrade.libs.config_loader import load_all_configs
from stepgrade.grading.ai_grader import AIGradingError
from stepgrade.grading.evaluator import evaluate_question
from stepgrade.grading.models import AIGradingResponse, AIQuestionResult, QuestionSpec
from stepgrade.grading.rubric import score_ai_response
from stepgrade.grading.scorer import score_attempt
from stepgrade.grading.settings import GradingSettings
from .batch_ai_grader import BatchAIGrader, find_question_images

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
LOG = logging.getLogger(__name__)


def load_yaml(path: Path) -> Any:
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f)


def load_questions(path: Path) -> List[QuestionSpec]:
    """Read question documents from a worksheet YAML (``{questions: [...]}`` or a list)."""
    data = load_yaml(path)
    if isinstance(data, dict):
        data = data.get('questions', [])
    if not isinstance(data, list):
        raise ValueError(f"Worksheet file {path} must contain a list of questions")
    return [QuestionSpec.model_validate(doc) for doc in data]


def load_answers(path: Path) -> Dict[str, Any]:
    data = load_yaml(path) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Answers file {path} must map sub-question ids to answers")
    return {str(k): v for k, v in data.items()}


def load_ai_results(path: Path, questions: List[QuestionSpec],
                    settings: GradingSettings) -> Dict[str, AIQuestionResult]:
    """Score pre-computed AI responses (question id -> {breakdown, feedback})."""
    data = load_yaml(path) or {}
    if not isinstance(data, dict):
        raise ValueError(f"AI results file {path} must map question ids to responses")
    by_id = {q.id: q for q in questions}
    results = {}
    for question_id, raw in data.items():
        question = by_id.get(str(question_id))
        if question is None:
            LOG.warning("Ignoring AI result for unknown question %s", question_id)
            continue
        response = AIGradingResponse.model_validate(raw or {})
        results[question.id] = score_ai_response(question.ai_rubric, response, settings)
    return results


def build_report(questions: List[QuestionSpec], answers: Dict[str, Any],
                 ai_results: Dict[str, AIQuestionResult], settings: GradingSettings,
                 ai_errors: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Score the attempt; failed AI questions are reported with their error, never as a plain zero."""
    ai_errors = ai_errors or {}
    verdicts = {}
    for question in questions:
        if question.grading_mode == 'system':
            verdicts.update(evaluate_question(question, answers, settings))

    attempt = score_attempt(questions, verdicts, ai_results, settings, ai_errors)
    report = attempt.to_yaml_dict()
    report['verdicts'] = {sq_id: v.is_correct for sq_id, v in verdicts.items()}
    report['ai_results'] = {
        question_id: {
            'success': True,
            'total_score': result.total_score,
            'is_correct': result.is_correct,
            'rejected': result.rejected,
            'feedback': result.feedback,
        }
        for question_id, result in ai_results.items()
    }
    for question_id, error_message in ai_errors.items():
        report['ai_results'][question_id] = {'success': False, 'error_message': error_message}
    return report


def main():
    """Main entry point for grade-attempt command."""
    parser = argparse.ArgumentParser(
        description='Grade a worksheet attempt and compute currency rewards',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Grade system-marked questions
  grade-attempt --worksheet worksheet.yaml --answers answers.yaml

  # Include already-returned AI breakdowns
  grade-attempt --worksheet worksheet.yaml --answers answers.yaml --ai-results ai.yaml

  # Send answer photos (named <question_id>.jpg) to the AI grader
  grade-attempt --worksheet worksheet.yaml --answers answers.yaml --images-dir photos/
        """
    )

    parser.add_argument('--worksheet', '-w', type=Path, required=True,
                        help='YAML file with the question documents of the worksheet')
    parser.add_argument('--answers', '-a', type=Path, required=True,
                        help='YAML file mapping sub-question ids to answers')
    parser.add_argument('--ai-results', type=Path, default=None,
                        help='YAML file mapping question ids to AI {breakdown, feedback} responses')
    parser.add_argument('--images-dir', '-i', type=Path, default=None,
                        help='Directory of answer images for AI-graded questions')
    parser.add_argument('--output', '-o', type=Path, default=None,
                        help='Where to write the YAML report (default: stdout)')
    parser.add_argument('--config', '-c', type=str, default=None,
                        help='Extra YAML config file merged over config/')
    parser.add_argument('--model', '-m', type=str, default=None,
                        help='OpenAI model to use (overrides config value)')
    parser.add_argument('--max-threads', '-t', type=int, default=None,
                        help='Maximum number of concurrent AI grading calls (overrides config value)')
    parser.add_argument('--continue-on-error', action='store_true',
                        help='Continue grading even if some AI questions fail')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    for path in (args.worksheet, args.answers, args.ai_results):
        if path is not None and not path.is_file():
            LOG.error(f"File does not exist: {path}")
            sys.exit(1)
    if args.images_dir is not None and not args.images_dir.is_dir():
        LOG.error(f"Images directory does not exist: {args.images_dir}")
        sys.exit(1)

    try:
        config = load_all_configs(*([args.config] if args.config else []))
    except Exception as e:
        LOG.error(f"Failed to load configuration: {e}")
        sys.exit(1)
    settings = GradingSettings.from_config(config)

    try:
        questions = load_questions(args.worksheet)
        answers = load_answers(args.answers)
        ai_results = load_ai_results(args.ai_results, questions, settings) if args.ai_results else {}
    except (ValidationError, ValueError, yaml.YAMLError) as e:
        LOG.error(f"Invalid input: {e}")
        sys.exit(1)

    ai_errors: Dict[str, str] = {}
    if args.images_dir is not None:
        pending = [q for q in questions if q.id not in ai_results]
        images = find_question_images(args.images_dir, pending)
        LOG.info(f"Found {len(images)} answer images for AI grading")
        try:
            batch_grader = BatchAIGrader(configs=config, model=args.model, max_concurrent=args.max_threads)
            batch_results = batch_grader.grade_questions(
                pending, images, continue_on_error=args.continue_on_error
            )
        except (AIGradingError, KeyError) as e:
            LOG.error(f"AI grading failed: {e}")
            sys.exit(1)
        for batch_result in batch_results:
            if batch_result.success:
                ai_results[batch_result.question_id] = batch_result.result
            else:
                ai_errors[batch_result.question_id] = batch_result.error_message or "AI grading failed"

    report = build_report(questions, answers, ai_results, settings, ai_errors)
    text = yaml.dump(report, default_flow_style=False, sort_keys=False, allow_unicode=True)
    if args.output:
        args.output.write_text(text, encoding='utf-8')
        LOG.info(f"Report saved to {args.output}")
    else:
        print(text)


if __name__ == '__main__':
    main()
