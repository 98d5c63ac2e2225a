"""
models/session_state.py

시험 진행 상태를 담는 OMR 카드 모델과 컨트롤러가 뷰에 넘기는 신호 모델.
Pydantic BaseModel 기반. UI 코드 없음.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional, Set

from pydantic import BaseModel, Field

from exam_client.models.question_model import Answer, Question


class Phase(str, Enum):
    """시험 세션 단계."""

    PREVIEW = "preview"
    STARTING = "starting"
    IN_PROGRESS = "in_progress"
    SUMMARY = "summary"          # 제출 전 요약 확인 (타이머는 계속 진행)
    SUBMITTING = "submitting"
    COMPLETED = "completed"


class PresentedOption(BaseModel):
    """화면에 표시되는 보기 하나."""

    label: str = Field(..., description="표시 위치 기준 라벨 (A, B, C ...)")
    value: str = Field(..., description="백엔드로 보내는 원래 보기 키")
    text: str


class MatchItems(BaseModel):
    left: List[str] = Field(default_factory=list)
    right: List[str] = Field(default_factory=list)


class Notice(BaseModel):
    """사용자에게 보여줄 비차단 알림 (토스트)."""

    title: str
    description: str = ""
    variant: Literal["default", "destructive"] = "default"


class Redirect(BaseModel):
    """뷰 계층에 전달하는 화면 이동 신호."""

    target: Literal["results", "tests", "login"]
    attempt_id: Optional[int] = None
    not_before: datetime

    def is_due(self, now: datetime) -> bool:
        return now >= self.not_before


class SubmissionSummary(BaseModel):
    total: int
    answered: int
    unanswered: int
    marked: int
    unsaved: int = 0
    percentage: int


class CompletionResult(BaseModel):
    """complete-attempt 응답 요약."""

    attempt_id: int
    score: Optional[float] = None
    total_marks: Optional[float] = None
    percentage: Optional[float] = None
    passed: Optional[bool] = None
    result_release_time: Optional[datetime] = None


class SessionState(BaseModel):
    """
    한 번의 응시 동안 컨트롤러가 단독으로 소유하는 상태.

    Attributes:
        phase:                  현재 단계.
        attempt_id:             진행 중인 응시 ID.
        current_question_index: presentation_order 기준 현재 문제 인덱스 (0-based).
        answers:                답안지. {question.id: 답안}
        marked_for_review:      검토 표시된 presentation 인덱스 집합.
        time_left_seconds:      남은 시간 (초). 진행 중에는 감소만 한다.
        presentation_order:     (섞였을 수 있는) 출제 순서. 시작/재개 시 한 번만 계산.
        presentation_options:   {question.id: 표시 보기 리스트}. 시작/재개 시 한 번만 계산.
        is_submitting:          제출 요청 진행 중 래치.
    """

    phase: Phase = Phase.PREVIEW
    attempt_id: Optional[int] = None
    current_question_index: int = Field(default=0, ge=0)
    answers: Dict[int, Answer] = Field(default_factory=dict)
    marked_for_review: Set[int] = Field(default_factory=set)
    time_left_seconds: int = Field(default=0, ge=0)
    presentation_order: List[Question] = Field(default_factory=list)
    presentation_options: Dict[int, List[PresentedOption]] = Field(default_factory=dict)
    is_submitting: bool = False
    warned_thresholds: Set[int] = Field(default_factory=set)
    unsaved_question_ids: Set[int] = Field(
        default_factory=set,
        description="마지막 자동 저장이 실패한 문제 ID",
    )
    result: Optional[CompletionResult] = None

    @property
    def total_questions(self) -> int:
        return len(self.presentation_order)

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_question_index < len(self.presentation_order):
            return self.presentation_order[self.current_question_index]
        return None
