import asyncio
import random
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from exam_client.models.question_model import ExamDefinition, SavedAnswer, StartedAttempt
from exam_client.services.presentation import encode_answer
from exam_client.services.session_controller import ExamSessionController

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def exam_payload(n: int = 5, time_limit: float = 30, settings: Optional[dict] = None,
                 attempts: Optional[list] = None, questions: Optional[list] = None) -> dict:
    if questions is None:
        questions = [
            {
                "id": 100 + i,
                "text": f"Question {i}",
                "type": "MCQ",
                "options": ["w", "x", "y", "z"],
                "marks": 1,
            }
            for i in range(n)
        ]
    return {
        "quiz_id": 7,
        "title": "Sample Test",
        "description": "desc",
        "type": "MOCK",
        "time_limit_minutes": time_limit,
        "total_marks": len(questions),
        "questions": questions,
        "settings": settings or {},
        "attempts": attempts or [],
    }


class FakeBackend:
    """ExamBackend와 같은 메서드를 가진 인메모리 백엔드. 호출 기록을 남긴다."""

    def __init__(self, details: dict, *, details_error=None, start_error=None,
                 save_error=None, saved_error=None, complete_error=None,
                 saved: Optional[Dict[int, str]] = None, attempt_id: int = 55):
        self.details = details
        self.details_error = details_error
        self.start_error = start_error
        self.save_error = save_error
        self.saved_error = saved_error
        self.complete_error = complete_error
        self.saved: Dict[int, str] = dict(saved or {})
        self.attempt_id = attempt_id
        self.calls: List[tuple] = []

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def get_exam_details(self, exam_id):
        self.calls.append(("details", exam_id))
        if self.details_error:
            raise self.details_error
        return ExamDefinition.model_validate(self.details)

    async def start_attempt(self, exam_id):
        self.calls.append(("start", exam_id))
        if self.start_error:
            raise self.start_error
        snapshot = {k: self.details[k] for k in ("questions", "settings", "time_limit_minutes")}
        return StartedAttempt.model_validate({"attempt_id": self.attempt_id, "test": snapshot})

    async def submit_answer(self, attempt_id, question_id, answer):
        self.calls.append(("answer", attempt_id, question_id, answer))
        await asyncio.sleep(0)
        if self.save_error:
            raise self.save_error
        self.saved[question_id] = encode_answer(answer)

    async def get_saved_answers(self, attempt_id):
        self.calls.append(("saved", attempt_id))
        if self.saved_error:
            raise self.saved_error
        return [
            SavedAnswer.model_validate({"question_id": qid, "answer_text": text})
            for qid, text in self.saved.items()
        ]

    async def complete_attempt(self, attempt_id):
        self.calls.append(("complete", attempt_id))
        await asyncio.sleep(0)
        if self.complete_error:
            raise self.complete_error
        return {"score": 3, "total_marks": 5}


def make_controller(backend, seed: int = 0, now: datetime = NOW,
                    tick_interval: float = 3600, **kwargs) -> ExamSessionController:
    return ExamSessionController(
        7,
        backend,
        rng=random.Random(seed),
        clock=lambda: now,
        tick_interval=tick_interval,
        **kwargs,
    )


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def backend():
    return FakeBackend(exam_payload())
