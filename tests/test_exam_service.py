from datetime import datetime, timedelta, timezone

from exam_client.models.question_model import ExamDefinition, Question
from exam_client.models.session_state import SessionState
from exam_client.services.exam_service import (
    build_summary,
    format_time,
    is_passed,
    progress_percentage,
    question_palette,
    remaining_seconds,
    summarize_result,
)

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def _state(n: int = 4, **kwargs) -> SessionState:
    questions = [
        Question.model_validate({"id": 10 + i, "text": f"Q{i}", "type": "ESSAY"})
        for i in range(n)
    ]
    return SessionState(presentation_order=questions, **kwargs)


def test_remaining_seconds():
    assert remaining_seconds(NOW - timedelta(minutes=35), 30, NOW) == 0
    assert remaining_seconds(NOW - timedelta(minutes=10), 30, NOW) == 1200
    assert remaining_seconds(NOW - timedelta(seconds=0.5), 1, NOW) == 59
    assert remaining_seconds(None, 30, NOW) == 1800


def test_remaining_seconds_treats_naive_start_as_utc():
    naive = datetime(2025, 3, 1, 8, 50)
    assert remaining_seconds(naive, 30, NOW) == 1200


def test_format_time():
    assert format_time(1800) == "30:00"
    assert format_time(59) == "00:59"
    assert format_time(-3) == "00:00"
    assert format_time(5400) == "90:00"


def test_progress_percentage():
    assert progress_percentage(0, 4) == 25.0
    assert progress_percentage(2, 3) == 100.0
    assert progress_percentage(0, 0) == 0.0


def test_build_summary_ignores_blank_and_foreign_answers():
    state = _state(
        answers={10: "text", 11: "", 12: {"k": "v"}, 999: "ghost"},
        marked_for_review={3},
        unsaved_question_ids={12},
    )
    summary = build_summary(state)
    assert summary.total == 4
    assert summary.answered == 2
    assert summary.unanswered == 2
    assert summary.marked == 1
    assert summary.unsaved == 1
    assert summary.percentage == 50


def test_question_palette_statuses_and_locks():
    state = _state(current_question_index=2, answers={10: "a"}, marked_for_review={1})
    palette = question_palette(state, allow_previous_navigation=False)
    assert [p["status"] for p in palette] == ["answered", "marked", "current", "unanswered"]
    assert [p["locked"] for p in palette] == [True, True, False, False]
    assert palette[0]["number"] == 1
    assert palette[0]["question_id"] == 10

    unlocked = question_palette(state, allow_previous_navigation=True)
    assert not any(p["locked"] for p in unlocked)


def test_is_passed():
    assert is_passed(40.0, 40.0)
    assert not is_passed(39.99, 40.0)


def test_summarize_result():
    exam = ExamDefinition.model_validate({
        "quiz_id": 1,
        "total_marks": 20,
        "settings": {"passPercentage": 50, "resultReleaseTime": "2025-03-02T00:00:00Z"},
    })
    result = summarize_result(8, {"score": 9}, exam)
    assert result.attempt_id == 8
    assert result.percentage == 45.0
    assert result.passed is False
    assert result.result_release_time.year == 2025

    empty = summarize_result(8, {}, exam)
    assert empty.percentage is None
    assert empty.passed is None
