"""
services/exam_service.py

남은 시간, 제출 요약, 문제 번호판, 결과 요약 계산.
순수 Python 함수로 구성되며 UI 코드나 전역 상태 변경이 없다.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from exam_client.models.question_model import ExamDefinition
from exam_client.models.session_state import CompletionResult, SessionState, SubmissionSummary
from exam_client.services.presentation import is_answered


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def remaining_seconds(
    start_time: Optional[datetime],
    time_limit_minutes: float,
    now: datetime,
) -> int:
    """
    진행 중인 응시의 남은 시간(초, 내림)을 계산한다.

    Args:
        start_time:         응시 시작 시각. 시간대 정보가 없으면 UTC로 본다.
                            None이면 아직 시간이 흐르지 않은 것으로 간주.
        time_limit_minutes: 시험 제한 시간 (분).
        now:                현재 시각 (시간대 포함).

    Returns:
        0 이상의 정수. 0이면 시간 초과.
    """
    limit = time_limit_minutes * 60
    if start_time is None:
        return max(0, math.floor(limit))
    if start_time.tzinfo is None:
        start_time = start_time.replace(tzinfo=timezone.utc)
    elapsed = (now - start_time).total_seconds()
    return max(0, math.floor(limit - elapsed))


def answered_count(state: SessionState) -> int:
    question_ids = {q.id for q in state.presentation_order}
    return sum(
        1 for qid, answer in state.answers.items()
        if qid in question_ids and is_answered(answer)
    )


def build_summary(state: SessionState) -> SubmissionSummary:
    """제출 전 요약 (답함/미답/검토 표시 수, 응답률)."""
    total = state.total_questions
    answered = answered_count(state)
    return SubmissionSummary(
        total=total,
        answered=answered,
        unanswered=max(0, total - answered),
        marked=len(state.marked_for_review),
        unsaved=len(state.unsaved_question_ids),
        percentage=round(answered / total * 100) if total else 0,
    )


def format_time(seconds: int) -> str:
    """남은 시간을 MM:SS 문자열로 (60분 이상이면 분 자리가 늘어난다)."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def progress_percentage(index: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round((index + 1) / total * 100, 1)


def question_palette(state: SessionState, allow_previous_navigation: bool) -> List[Dict[str, Any]]:
    """
    문제 번호판.

    상태 우선순위: current > marked > answered > unanswered.
    이전 문제 이동이 막힌 시험이면 현재보다 앞 번호는 locked.
    """
    palette = []
    current = state.current_question_index
    for idx, q in enumerate(state.presentation_order):
        if idx == current:
            status = "current"
        elif idx in state.marked_for_review:
            status = "marked"
        elif is_answered(state.answers.get(q.id)):
            status = "answered"
        else:
            status = "unanswered"
        palette.append({
            "index": idx,
            "number": idx + 1,
            "question_id": q.id,
            "status": status,
            "locked": idx < current and not allow_previous_navigation,
        })
    return palette


def is_passed(percentage: float, pass_percentage: float) -> bool:
    """
    합격 여부를 반환한다.

    Returns:
        percentage >= pass_percentage 이면 True, 아니면 False.
    """
    return percentage >= pass_percentage


def summarize_result(
    attempt_id: int,
    payload: Mapping[str, Any],
    exam: ExamDefinition,
) -> CompletionResult:
    """
    complete-attempt 응답을 결과 요약으로 정리한다.

    점수와 총점이 모두 있으면 백분율과 합격 여부까지 계산한다.
    응답 필드는 백엔드마다 다를 수 있어 없는 값은 None으로 둔다.
    """
    score = payload.get("score")
    total_marks = payload.get("total_marks", exam.total_marks)
    percentage = payload.get("percentage")
    if percentage is None and score is not None and total_marks:
        percentage = round(float(score) / float(total_marks) * 100, 2)

    passed = None
    if percentage is not None:
        passed = is_passed(float(percentage), exam.settings.pass_percentage)

    return CompletionResult(
        attempt_id=attempt_id,
        score=score,
        total_marks=total_marks,
        percentage=percentage,
        passed=passed,
        result_release_time=exam.settings.result_release_time,
    )
