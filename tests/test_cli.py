"""Tests for the grade-attempt command line tool."""

import tempfile
from pathlib import Path

import pytest
import yaml
from unittest.mock import patch

from stepgrade.grading.models import AIQuestionResult
from stepgrade.tools.attempt_grader import cli
from stepgrade.tools.attempt_grader.batch_ai_grader import BatchAIResult


WORKSHEET = {
    "questions": [
        {
            "id": "q1",
            "currencyType": "spark",
            "gradingMode": "system",
            "solutionSteps": [{
                "id": "s1",
                "subQuestions": [
                    {"id": "sq1", "answerType": "numerical", "marks": 6,
                     "numericalAnswer": {"correctValue": 100, "toleranceValue": 5, "baseUnit": "N"}},
                    {"id": "sq2", "answerType": "mcq", "marks": 4,
                     "mcqAnswer": {"options": [{"id": "a"}, {"id": "b"}, {"id": "c"}],
                                   "correctOptions": ["a", "c"], "isMultiCorrect": True}},
                ],
            }],
        },
        {
            "id": "q2",
            "currencyType": "gold",
            "gradingMode": "ai",
            "aiRubric": {"Method": 50, "Final Answer": 50},
            "solutionSteps": [{
                "id": "s1",
                "subQuestions": [
                    {"id": "sq3", "answerType": "text", "marks": 8, "textAnswer": {"keywords": ["x"]}},
                ],
            }],
        },
    ]
}


@pytest.fixture
def workspace():
    with tempfile.TemporaryDirectory() as tmpdir:
        tmpdir = Path(tmpdir)
        (tmpdir / "worksheet.yaml").write_text(yaml.dump(WORKSHEET))
        (tmpdir / "answers.yaml").write_text(yaml.dump({"sq1": "0.1 kN", "sq2": "c,a"}))
        yield tmpdir


def run_cli(argv):
    with patch('sys.argv', ['grade-attempt'] + argv), \
            patch.object(cli, 'load_all_configs', return_value={"grading": {"pass_threshold": 50}}):
        cli.main()


def test_grades_system_questions(workspace):
    output = workspace / "report.yaml"
    run_cli(['--worksheet', str(workspace / "worksheet.yaml"),
             '--answers', str(workspace / "answers.yaml"),
             '--output', str(output)])

    report = yaml.safe_load(output.read_text())
    assert report['total_marks'] == 10
    assert report['max_marks'] == 18
    assert report['rewards'] == {'coin': 5}
    assert report['verdicts'] == {'sq1': True, 'sq2': True}
    assert report['ai_results'] == {}
    assert report['complete'] is False
    assert report['pending_questions'] == ['q2']
    assert report['questions'][1]['status'] == 'ungraded'


def test_includes_ai_results_file(workspace):
    (workspace / "ai.yaml").write_text(yaml.dump({
        "q2": {"breakdown": {"method": 100, "final answer": 50}, "feedback": "Good"},
    }))
    output = workspace / "report.yaml"
    run_cli(['--worksheet', str(workspace / "worksheet.yaml"),
             '--answers', str(workspace / "answers.yaml"),
             '--ai-results', str(workspace / "ai.yaml"),
             '--output', str(output)])

    report = yaml.safe_load(output.read_text())
    assert report['total_marks'] == pytest.approx(16)
    assert report['rewards'] == {'coin': 5, 'gold': pytest.approx(6)}
    assert report['ai_results']['q2']['total_score'] == 75


def test_rejected_ai_result_scores_zero(workspace):
    (workspace / "ai.yaml").write_text(yaml.dump({
        "q2": {"breakdown": {"method": 100}, "feedback": "VALIDATION_FAILED"},
    }))
    output = workspace / "report.yaml"
    run_cli(['--worksheet', str(workspace / "worksheet.yaml"),
             '--answers', str(workspace / "answers.yaml"),
             '--ai-results', str(workspace / "ai.yaml"),
             '--output', str(output)])

    report = yaml.safe_load(output.read_text())
    assert report['ai_results']['q2']['rejected'] is True
    assert report['total_marks'] == 10


@patch('stepgrade.tools.attempt_grader.cli.BatchAIGrader')
def test_images_dir_uses_batch_grader(mock_batch_class, workspace):
    images = workspace / "images"
    images.mkdir()
    (images / "q2.jpg").write_bytes(b"jpg")
    mock_batch_class.return_value.grade_questions.return_value = [
        BatchAIResult(question_id="q2", success=True,
                      result=AIQuestionResult(score=50, total_score=50, is_correct=True)),
    ]
    output = workspace / "report.yaml"
    run_cli(['--worksheet', str(workspace / "worksheet.yaml"),
             '--answers', str(workspace / "answers.yaml"),
             '--images-dir', str(images),
             '--output', str(output)])

    report = yaml.safe_load(output.read_text())
    assert report['total_marks'] == pytest.approx(14)
    args = mock_batch_class.return_value.grade_questions.call_args[0]
    assert list(args[1]) == ["q2"]


def test_missing_worksheet_exits(workspace):
    with pytest.raises(SystemExit) as exc_info:
        run_cli(['--worksheet', str(workspace / "missing.yaml"),
                 '--answers', str(workspace / "answers.yaml")])
    assert exc_info.value.code == 1


def test_invalid_question_document_exits(workspace):
    (workspace / "bad.yaml").write_text(yaml.dump({"questions": [{"id": "q", "solutionSteps": [
        {"id": "s", "subQuestions": [{"id": "x", "answerType": "numerical", "marks": 1}]},
    ]}]}))
    with pytest.raises(SystemExit) as exc_info:
        run_cli(['--worksheet', str(workspace / "bad.yaml"),
                 '--answers', str(workspace / "answers.yaml")])
    assert exc_info.value.code == 1


@patch('stepgrade.tools.attempt_grader.cli.BatchAIGrader')
def test_failed_ai_grading_is_reported(mock_batch_class, workspace):
    images = workspace / "images"
    images.mkdir()
    (images / "q2.jpg").write_bytes(b"jpg")
    mock_batch_class.return_value.grade_questions.return_value = [
        BatchAIResult(question_id="q2", success=False, error_message="AI Service Unavailable"),
    ]
    output = workspace / "report.yaml"
    run_cli(['--worksheet', str(workspace / "worksheet.yaml"),
             '--answers', str(workspace / "answers.yaml"),
             '--images-dir', str(images),
             '--continue-on-error',
             '--output', str(output)])

    report = yaml.safe_load(output.read_text())
    assert report['ai_results']['q2'] == {'success': False, 'error_message': 'AI Service Unavailable'}
    assert report['complete'] is False
    assert report['pending_questions'] == ['q2']
    q2 = report['questions'][1]
    assert q2['status'] == 'failed'
    assert q2['error_message'] == 'AI Service Unavailable'
    assert q2['earned_marks'] == 0
    assert report['total_marks'] == 10
    assert report['max_marks'] == 18
    assert mock_batch_class.return_value.grade_questions.call_args[1]['continue_on_error'] is True


def test_graded_report_is_complete(workspace):
    (workspace / "ai.yaml").write_text(yaml.dump({
        "q2": {"breakdown": {"method": 40, "final answer": 60}},
    }))
    output = workspace / "report.yaml"
    run_cli(['--worksheet', str(workspace / "worksheet.yaml"),
             '--answers', str(workspace / "answers.yaml"),
             '--ai-results', str(workspace / "ai.yaml"),
             '--output', str(output)])

    report = yaml.safe_load(output.read_text())
    assert report['complete'] is True
    assert report['pending_questions'] == []
    assert report['ai_results']['q2']['success'] is True
    assert all(q['status'] == 'graded' for q in report['questions'])
