"""
models/question_model.py

시험 정의(문제, 설정, 응시 기록) 모델.
백엔드 응답 JSON을 그대로 검증하는 Pydantic v2 모델이며 UI 코드는 없다.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

import config


def _drop_nulls(data):
    """null 값은 기본값으로 대체되도록 키째 제거한다."""
    if isinstance(data, dict):
        return {k: v for k, v in data.items() if v is not None}
    return data


class QuestionType(str, Enum):
    """문제 유형. 백엔드의 자유 형식 문자열은 반드시 이 다섯 가지 중 하나로 정규화된다."""

    MCQ = "MCQ"
    TRUE_FALSE = "TRUE_FALSE"
    FILL_IN_THE_BLANK = "FILL_IN_THE_BLANK"
    MATCH = "MATCH"
    ESSAY = "ESSAY"


_TYPE_ALIASES: Dict[str, QuestionType] = {
    "MCQ": QuestionType.MCQ,
    "CHOICE_BASED": QuestionType.MCQ,
    "TRUE_FALSE": QuestionType.TRUE_FALSE,
    "FILL_IN_THE_BLANK": QuestionType.FILL_IN_THE_BLANK,
    "FILL_IN_THE_BLANKS": QuestionType.FILL_IN_THE_BLANK,
    "MATCH": QuestionType.MATCH,
    "ESSAY": QuestionType.ESSAY,
    "DESCRIPTIVE": QuestionType.ESSAY,
    "SHORT_ANSWER": QuestionType.ESSAY,
    "LONG_ANSWER": QuestionType.ESSAY,
    "TEXT": QuestionType.ESSAY,
}

# 답안: 단일 문자열 또는 다항목(빈칸 여러 개, 짝짓기) 키-값 매핑
Answer = Union[str, Dict[str, str]]


class Question(BaseModel):
    """
    시험 문제 모델.
    백엔드는 본문을 'text' 또는 'question_text'로 보낸다.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(..., description="문제 고유 ID")
    question_text: str = Field(
        "",
        validation_alias=AliasChoices("question_text", "text"),
        description="문제 본문",
    )
    type: QuestionType = Field(..., description="문제 유형")
    options: Optional[Union[List[str], Dict[str, str]]] = Field(
        None,
        description="보기. 순서 있는 리스트 또는 {키: 보기} 매핑",
    )
    marks: Optional[float] = None
    left_side: Optional[str] = Field(None, description="짝짓기 왼쪽 항목 (쉼표 구분)")
    right_side: Optional[str] = Field(None, description="짝짓기 오른쪽 항목 (쉼표 구분)")
    order: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _nulls(cls, data):
        return _drop_nulls(data)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v) -> QuestionType:
        if isinstance(v, QuestionType):
            return v
        key = str(v).strip().upper().replace("-", "_").replace(" ", "_")
        if key not in _TYPE_ALIASES:
            raise ValueError(f"알 수 없는 문제 유형입니다: {v!r}")
        return _TYPE_ALIASES[key]

    @field_validator("options", mode="before")
    @classmethod
    def stringify_options(cls, v):
        # 숫자 보기 등은 문자열로 맞춘다 (Pydantic v2는 int → str 자동 변환을 하지 않음)
        if isinstance(v, list):
            return [str(item) for item in v]
        if isinstance(v, dict):
            return {str(k): str(val) for k, val in v.items()}
        return v


class ExamSettings(BaseModel):
    """시험 진행 설정. 백엔드의 camelCase 키를 그대로 받는다."""

    model_config = ConfigDict(populate_by_name=True)

    shuffle_questions: bool = Field(False, alias="shuffleQuestions")
    shuffle_options: bool = Field(False, alias="shuffleOptions")
    show_immediate_result: bool = Field(False, alias="showImmediateResult")
    negative_marks: bool = Field(False, alias="negativeMarks")
    negative_mark_value: float = Field(0.0, alias="negativeMarkValue")
    allow_revisit: bool = Field(True, alias="allowRevisit")
    show_correct_answers: bool = Field(False, alias="showCorrectAnswers")
    allow_previous_navigation: bool = Field(True, alias="allowPreviousNavigation")
    result_release_time: Optional[datetime] = Field(None, alias="resultReleaseTime")
    pass_percentage: float = Field(config.DEFAULT_PASS_PERCENTAGE, alias="passPercentage")

    @model_validator(mode="before")
    @classmethod
    def _nulls(cls, data):
        return _drop_nulls(data)


class Attempt(BaseModel):
    """학생 한 명의 시험 응시 기록."""

    attempt_id: int = Field(..., validation_alias=AliasChoices("attempt_id", "id"))
    score: Optional[float] = None
    is_completed: bool = False
    created_at: Optional[datetime] = None
    start_time: Optional[datetime] = None
    submit_time: Optional[datetime] = None
    time_taken: Optional[float] = None
    accuracy: Optional[float] = None
    correct_answers: Optional[int] = None
    wrong_answers: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _nulls(cls, data):
        return _drop_nulls(data)


class ExamDefinition(BaseModel):
    """
    시험 정의. 한 세션 동안은 불변으로 취급한다.

    attempts에는 현재 학생의 응시 기록이 0~1개(완료 기록 포함 시 그 이상) 들어 있다.
    """

    id: Optional[int] = Field(None, validation_alias=AliasChoices("id", "quiz_id", "test_id"))
    title: str = ""
    description: Optional[str] = None
    type: Optional[str] = None
    time_limit_minutes: float = Field(0.0, ge=0)
    total_marks: Optional[float] = None
    total_questions: Optional[int] = None
    marks_per_question: Optional[float] = None
    has_negative_marking: bool = False
    negative_marks: Optional[float] = None
    passing_marks: Optional[float] = None
    pass_percentage: Optional[float] = None
    scheduled_at: Optional[datetime] = None
    questions: List[Question] = Field(default_factory=list)
    attempts: List[Attempt] = Field(default_factory=list)
    settings: ExamSettings = Field(default_factory=ExamSettings)

    @model_validator(mode="before")
    @classmethod
    def _nulls(cls, data):
        return _drop_nulls(data)

    @property
    def completed_attempt(self) -> Optional[Attempt]:
        return next((a for a in self.attempts if a.is_completed), None)

    @property
    def open_attempt(self) -> Optional[Attempt]:
        return next((a for a in self.attempts if not a.is_completed), None)

    @property
    def time_limit_seconds(self) -> int:
        return int(self.time_limit_minutes * 60)

    def question(self, question_id: int) -> Optional[Question]:
        return next((q for q in self.questions if q.id == question_id), None)


class StartedAttempt(BaseModel):
    """start-attempt 응답: 새 응시 ID + 시험 정의 스냅샷."""

    attempt_id: int
    exam: ExamDefinition = Field(..., validation_alias=AliasChoices("test", "exam"))


class SavedAnswer(BaseModel):
    """saved-answers 응답 항목."""

    question_id: int = Field(..., validation_alias=AliasChoices("question_id", "questionId"))
    answer_text: Optional[str] = None
